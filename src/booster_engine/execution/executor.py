import asyncio
import contextlib
import logging
from typing import Dict, Optional, Set

from booster_engine.domain.contracts import (
    BrokerPermissionError,
    BrokerProcess,
    Command,
    CommandResult,
    FailureReason,
    PrivilegedBroker,
)
from booster_engine.observability.structured_log import log_json

logger = logging.getLogger(__name__)

_READ_CHUNK = 64 * 1024


class BrokerCommandExecutor:
    """Runs one command through the broker and captures its outcome.

    Both output streams are drained concurrently with the exit wait so a
    chatty child never stalls on a full pipe while we wait for it to exit.
    """

    def __init__(
        self,
        broker: PrivilegedBroker,
        default_timeout_sec: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
        workdir: Optional[str] = None,
    ):
        self._broker = broker
        self._default_timeout_sec = default_timeout_sec
        self._env = dict(env) if env else None
        self._workdir = workdir
        self._background: Set[asyncio.Task] = set()

    async def run(
        self,
        command: Command,
        wait_for_completion: bool = True,
        timeout_sec: Optional[float] = None,
    ) -> CommandResult:
        try:
            proc = await self._broker.spawn_process(command.argv, env=self._env, workdir=self._workdir)
        except BrokerPermissionError as exc:
            log_json(logger, "command.denied", level=logging.WARNING, argv=command.argv, error=str(exc))
            return CommandResult.failure(FailureReason.PERMISSION_DENIED, stderr=str(exc))
        except Exception as exc:
            log_json(logger, "command.spawn_failed", level=logging.WARNING, argv=command.argv, error=str(exc))
            return CommandResult.failure(FailureReason.SPAWN_FAILED, stderr=str(exc) or type(exc).__name__)

        _close_stdin(proc)
        if not wait_for_completion:
            task = asyncio.ensure_future(self._reap(command, proc))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            return CommandResult(succeeded=True)

        deadline = timeout_sec if timeout_sec is not None else self._default_timeout_sec
        collected = asyncio.gather(_drain(proc.stdout), _drain(proc.stderr), proc.wait())
        try:
            if deadline is None:
                stdout, stderr, exit_code = await collected
            else:
                stdout, stderr, exit_code = await asyncio.wait_for(collected, timeout=deadline)
        except asyncio.TimeoutError:
            await _kill(proc)
            log_json(logger, "command.timeout", level=logging.WARNING, argv=command.argv, timeout_sec=deadline)
            return CommandResult.failure(FailureReason.TIMEOUT, stderr="Execution timeout.")
        except Exception as exc:
            await _kill(proc)
            log_json(logger, "command.io_failed", level=logging.WARNING, argv=command.argv, error=str(exc))
            return CommandResult.failure(FailureReason.SPAWN_FAILED, stderr=str(exc) or type(exc).__name__)

        out = _decode(stdout)
        err = _decode(stderr)
        if exit_code != 0:
            return CommandResult.failure(FailureReason.NON_ZERO_EXIT, stderr=err, exit_code=exit_code, stdout=out)
        return CommandResult(succeeded=True, exit_code=exit_code, stdout=out, stderr=err)

    async def drain_background(self) -> None:
        """Wait for fire-and-forget children to finish. Used on shutdown and in tests."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _reap(self, command: Command, proc: BrokerProcess) -> None:
        try:
            _, _, exit_code = await asyncio.gather(_drain(proc.stdout), _drain(proc.stderr), proc.wait())
        except Exception as exc:
            logger.warning("background command %s failed while reaping: %s", command.display(), exc)
            return
        log_json(logger, "command.background_exit", argv=command.argv, exit_code=exit_code)


async def _drain(reader: Optional[asyncio.StreamReader]) -> bytes:
    if reader is None:
        return b""
    chunks = []
    while True:
        chunk = await reader.read(_READ_CHUNK)
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)


def _close_stdin(proc: BrokerProcess) -> None:
    stdin = getattr(proc, "stdin", None)
    if stdin is None:
        return
    with contextlib.suppress(Exception):
        stdin.close()


async def _kill(proc: BrokerProcess) -> None:
    with contextlib.suppress(ProcessLookupError):
        proc.kill()
    with contextlib.suppress(Exception):
        await asyncio.wait_for(proc.wait(), timeout=5)


def _decode(raw: bytes) -> str:
    return raw.decode(errors="replace") if raw else ""
