import logging
from typing import Dict, List, Optional, Sequence, Tuple

from booster_engine.domain.contracts import (
    ApplyOutcome,
    AuthorizationCallback,
    AuthorizationState,
    BatchResult,
    BrokerAvailability,
    Command,
    CommandResult,
    PreferenceStore,
    Profile,
)
from booster_engine.execution.authorization import AuthorizationGate
from booster_engine.execution.batch import BatchRunner
from booster_engine.execution.profiles import ProfileRegistry
from booster_engine.persistence.sqlite_store import KEY_CUSTOM_COMMANDS, KEY_LAST_APPLIED
from booster_engine.services.profile_applier import ProfileApplier

logger = logging.getLogger(__name__)

DEFAULT_CACHE_PACKAGE = "com.android.settings"

NETWORK_COMMANDS: Tuple[Command, ...] = (
    Command.setting("global", "mobile_data_always_on", "0"),
    Command.setting("global", "wifi_scan_always_enabled", "0"),
    Command.of("ip", "route", "flush", "cache"),
)

SYSTEM_INFO_PROBES: Tuple[Tuple[str, Command], ...] = (
    ("kernel", Command.of("uname", "-r")),
    ("uptime", Command.of("uptime")),
    ("memory", Command.of("cat", "/proc/meminfo")),
    ("battery", Command.of("dumpsys", "battery")),
)


class BoosterService:
    """Entry point for UI and automation callers.

    Every method returns data; guard failures and per-command failures are
    reported in the returned outcome rather than raised.
    """

    def __init__(
        self,
        gate: AuthorizationGate,
        registry: ProfileRegistry,
        batch_runner: BatchRunner,
        store: PreferenceStore,
        background_apps: Optional[Sequence[str]] = None,
    ):
        self._gate = gate
        self._registry = registry
        self._batch_runner = batch_runner
        self._store = store
        self._applier = ProfileApplier(gate=gate, registry=registry, batch_runner=batch_runner)
        self._background_apps = list(background_apps or [])

    @property
    def gate(self) -> AuthorizationGate:
        return self._gate

    def broker_availability(self) -> BrokerAvailability:
        return self._gate.availability()

    def authorization_state(self) -> AuthorizationState:
        return self._gate.current_authorization()

    def is_authorized(self) -> bool:
        return self._gate.is_broker_reachable() and self._gate.is_authorized()

    def request_authorization(self, request_id: int, callback: AuthorizationCallback) -> None:
        self._gate.request_authorization(request_id, callback)

    async def wait_for_authorization(self, request_id: int) -> AuthorizationState:
        return await self._gate.wait_for_authorization(request_id)

    def status(self) -> Dict[str, object]:
        return {
            "broker": self.broker_availability().value,
            "authorization": self.authorization_state().value,
            "last_applied": self.last_applied_profile(),
            "pending_requests": self._gate.pending_request_ids(),
        }

    async def apply(self, profile_id: str) -> ApplyOutcome:
        outcome = await self._applier.apply(profile_id)
        if outcome.succeeded:
            self._store.set(KEY_LAST_APPLIED, outcome.profile_id)
        return outcome

    def list_profiles(self) -> List[Profile]:
        return self._registry.list_all()

    def get_profile(self, profile_id: str) -> Optional[Profile]:
        return self._registry.lookup(profile_id)

    def last_applied_profile(self) -> str:
        return self._store.get(KEY_LAST_APPLIED, "")

    def get_custom_commands(self) -> List[str]:
        return self._store.get_lines(KEY_CUSTOM_COMMANDS)

    def set_custom_commands(self, lines: Sequence[str]) -> None:
        self._store.set_lines(KEY_CUSTOM_COMMANDS, [line.rstrip("\r") for line in lines])

    async def run_ad_hoc_command(self, command: Command) -> CommandResult:
        batch = await self._batch_runner.run_all([command], label="adhoc")
        return batch.entries[0].result

    async def clear_app_cache(self, package: str = DEFAULT_CACHE_PACKAGE) -> CommandResult:
        return await self.run_ad_hoc_command(Command.of("pm", "clear", "--cache-only", package))

    async def force_stop_app(self, package: str) -> CommandResult:
        return await self.run_ad_hoc_command(Command.of("am", "force-stop", package))

    async def boost_memory(self) -> CommandResult:
        return await self.run_ad_hoc_command(Command.of("sync"))

    async def kill_background_apps(self, packages: Optional[Sequence[str]] = None) -> BatchResult:
        targets = list(packages) if packages is not None else list(self._background_apps)
        commands = [Command.of("am", "force-stop", package) for package in targets]
        return await self._batch_runner.run_all(commands, label="kill_background_apps")

    async def optimize_network(self) -> BatchResult:
        return await self._batch_runner.run_all(NETWORK_COMMANDS, label="optimize_network")

    async def system_info(self) -> Dict[str, str]:
        # Always waits, whatever the runner default.
        batch = await self._batch_runner.run_all(
            [command for _, command in SYSTEM_INFO_PROBES],
            label="system_info",
            wait_for_completion=True,
        )
        info: Dict[str, str] = {}
        for (key, _), entry in zip(SYSTEM_INFO_PROBES, batch.entries):
            info[key] = entry.result.stdout.strip() if entry.result.succeeded else ""
        return info
