import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from booster_engine.app_container import BoosterContainer, build_booster_service
from booster_engine.config import (
    DEFAULT_CONFIG_DIR,
    Config,
    load_config,
    purge_env,
)
from booster_engine.domain.contracts import AuthorizationState, BatchResult, Command, CommandResult
from booster_engine.services.error_codes import describe_command_result, describe_outcome
from booster_engine.util import truncate

DEFAULT_REQUEST_ID = 1000
_INFO_PREVIEW_CHARS = 50


def _configure_logging(level: str) -> None:
    level = (level or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _prompt_consent(request_id: int) -> bool:
    print("booster-engine wants to run system commands through the privileged broker.")
    answer = input(f"Grant permission (request {request_id})? Type YES to allow: ").strip()
    return answer == "YES"


def _print_config(config: Config) -> None:
    print(f"Config dir: {config.config_dir}")
    print(f"Env file: {config.env_path}")
    print(f"Broker prefix: {' '.join(config.broker_prefix) or '(none)'}")
    print(f"Command timeout: {config.command_timeout_sec if config.command_timeout_sec else 'none'}")
    print(f"Wait for completion: {'yes' if config.wait_for_completion else 'no'}")
    print(f"Background apps: {', '.join(config.background_apps) or '(none)'}")


def _print_command_result(result: CommandResult) -> int:
    if result.stdout.strip():
        print(result.stdout.rstrip())
    if result.succeeded:
        return 0
    print(describe_command_result(result), file=sys.stderr)
    return 1


def _print_batch(title: str, batch: BatchResult) -> int:
    for entry in batch.entries:
        mark = "ok" if entry.result.succeeded else "FAILED"
        print(f"  [{mark}] {entry.command.display()}")
        if not entry.result.succeeded:
            print(f"         {describe_command_result(entry.result)}")
    print(f"{title}: {batch.success_count}/{batch.total_count} commands")
    return 0 if batch.succeeded else 1


async def _authorize(container: BoosterContainer, request_id: int, timeout_sec: float) -> int:
    service = container.service
    current = service.authorization_state()
    if current == AuthorizationState.GRANTED:
        print("Permission already granted.")
        return 0
    try:
        state = await asyncio.wait_for(service.wait_for_authorization(request_id), timeout=timeout_sec)
    except asyncio.TimeoutError:
        print("No answer from the consent flow.", file=sys.stderr)
        return 1
    if state == AuthorizationState.GRANTED:
        print("Permission granted!")
        return 0
    print("Permission denied.", file=sys.stderr)
    return 1


async def _run(args: argparse.Namespace, container: BoosterContainer) -> int:
    try:
        return await _dispatch(args, container)
    finally:
        await container.executor.drain_background()


async def _dispatch(args: argparse.Namespace, container: BoosterContainer) -> int:
    service = container.service
    command = args.command

    if command == "status":
        status = service.status()
        print(f"Broker: {status['broker']}")
        print(f"Authorization: {status['authorization']}")
        print(f"Last applied: {status['last_applied'] or '-'}")
        return 0

    if command == "authorize":
        return await _authorize(container, args.request_id, args.timeout)

    if command == "profiles":
        last = service.last_applied_profile()
        for profile in service.list_profiles():
            marker = "*" if profile.id == last else " "
            print(f"{marker} {profile.icon} {profile.id:<10} {profile.name} ({len(profile.commands)} commands)")
            if profile.description:
                print(f"      {profile.description}")
        return 0

    if command == "apply":
        outcome = await service.apply(args.profile)
        if outcome.batch_result is not None:
            _print_batch(f"Profile {outcome.profile_id}", outcome.batch_result)
        print(describe_outcome(outcome), file=sys.stdout if outcome.succeeded else sys.stderr)
        return 0 if outcome.succeeded else 1

    if command == "run":
        return _print_command_result(await service.run_ad_hoc_command(Command.of(args.program, *args.args)))

    if command == "clear-cache":
        result = await service.clear_app_cache(args.package)
        if result.succeeded:
            print("System cache cleared!")
        return _print_command_result(result)

    if command == "force-stop":
        return _print_command_result(await service.force_stop_app(args.package))

    if command == "boost-memory":
        result = await service.boost_memory()
        if result.succeeded:
            print("Memory optimized!")
        return _print_command_result(result)

    if command == "kill-apps":
        packages: Optional[List[str]] = args.packages or None
        return _print_batch("Background apps stopped", await service.kill_background_apps(packages))

    if command == "optimize-network":
        return _print_batch("Network optimized", await service.optimize_network())

    if command == "system-info":
        info = await service.system_info()
        print("System Status:")
        for key, value in info.items():
            preview = value if args.full else truncate(value.replace("\n", " "), _INFO_PREVIEW_CHARS)
            print(f"• {key}: {preview or '(unavailable)'}")
        return 0

    if command == "custom":
        if args.custom_action == "set":
            text = Path(args.file).read_text(encoding="utf-8") if args.file != "-" else sys.stdin.read()
            service.set_custom_commands(text.splitlines())
        profile = service.get_profile("custom")
        for line in service.get_custom_commands():
            print(line)
        print(f"Custom profile: {len(profile.commands) if profile else 0} commands", file=sys.stderr)
        return 0

    return 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Apply performance profiles through a privileged broker")
    parser.add_argument(
        "--config-dir",
        default=str(DEFAULT_CONFIG_DIR),
        help="Directory holding .env and state.db (default: ~/.config/booster-engine)",
    )
    parser.add_argument("--print-config", action="store_true", help="Print active config summary")
    parser.add_argument("--purge", action="store_true", help="Delete .env")
    parser.add_argument("--log-level", default=os.environ.get("LOG_LEVEL", "WARNING"))

    sub = parser.add_subparsers(dest="command")
    sub.add_parser("status", help="Show broker and permission state")
    authorize = sub.add_parser("authorize", help="Request broker permission")
    authorize.add_argument("--request-id", type=int, default=DEFAULT_REQUEST_ID)
    authorize.add_argument("--timeout", type=float, default=120.0, help="Seconds to wait for consent")
    sub.add_parser("profiles", help="List profiles")
    apply_cmd = sub.add_parser("apply", help="Apply a profile")
    apply_cmd.add_argument("profile")
    run = sub.add_parser("run", help="Run one command through the broker")
    run.add_argument("program")
    run.add_argument("args", nargs=argparse.REMAINDER)
    clear = sub.add_parser("clear-cache", help="Clear an app's cache")
    clear.add_argument("package", nargs="?", default="com.android.settings")
    stop = sub.add_parser("force-stop", help="Force-stop an app")
    stop.add_argument("package")
    sub.add_parser("boost-memory", help="Flush filesystem buffers")
    kill = sub.add_parser("kill-apps", help="Force-stop background apps")
    kill.add_argument("packages", nargs="*")
    sub.add_parser("optimize-network", help="Turn off background radios and flush route cache")
    info = sub.add_parser("system-info", help="Show system status")
    info.add_argument("--full", action="store_true", help="Print full probe output")
    custom = sub.add_parser("custom", help="Show or replace the custom profile")
    custom.add_argument("custom_action", choices=["show", "set"])
    custom.add_argument("file", nargs="?", default="-", help="File with one command per line ('-' for stdin)")
    center = sub.add_parser("control-center", help="Run the local HTTP control center")
    center.add_argument("--host", default="127.0.0.1")
    center.add_argument("--port", type=int, default=8766)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    config_dir = Path(args.config_dir).expanduser().resolve()

    _configure_logging(args.log_level)

    if args.purge:
        purge_env(config_dir)
        print("Purged .env.", file=sys.stderr)
        return 0

    config = load_config(config_dir)
    if args.print_config:
        _print_config(config)
        return 0

    if not args.command:
        parser.print_help()
        return 2

    # The HTTP server cannot prompt on a terminal; it relies on AUTO_GRANT instead.
    interactive = args.command != "control-center"
    container = build_booster_service(config, consent_handler=_prompt_consent if interactive else None)
    try:
        if args.command == "control-center":
            from booster_engine.control_center.app import create_app
            import uvicorn

            app = create_app(container.service, api_key=os.environ.get("CONTROL_CENTER_API_KEY"))
            uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())
            return 0
        return asyncio.run(_run(args, container))
    finally:
        container.close()


if __name__ == "__main__":
    sys.exit(main())
