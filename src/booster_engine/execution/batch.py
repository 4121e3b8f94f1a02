import logging
from typing import List, Optional, Sequence

from booster_engine.domain.contracts import (
    BatchEntry,
    BatchResult,
    Command,
    CommandExecutor,
    CommandResult,
    FailureReason,
)
from booster_engine.observability.structured_log import log_json
from booster_engine.util import truncate

logger = logging.getLogger(__name__)

_LOG_OUTPUT_CHARS = 300


class BatchRunner:
    def __init__(
        self,
        executor: CommandExecutor,
        wait_for_completion: bool = True,
        timeout_sec: Optional[float] = None,
    ):
        self._executor = executor
        self._wait_for_completion = wait_for_completion
        self._timeout_sec = timeout_sec

    async def run_all(
        self,
        commands: Sequence[Command],
        label: str = "",
        wait_for_completion: Optional[bool] = None,
    ) -> BatchResult:
        """Run every command in order. A failing command never stops its siblings."""
        wait = self._wait_for_completion if wait_for_completion is None else wait_for_completion
        entries: List[BatchEntry] = []
        for index, command in enumerate(commands):
            result = await self._run_one(command, wait)
            entries.append(BatchEntry(command=command, result=result))
            log_json(
                logger,
                "batch.command",
                level=logging.INFO if result.succeeded else logging.WARNING,
                label=label,
                index=index,
                argv=command.argv,
                succeeded=result.succeeded,
                exit_code=result.exit_code,
                failure_reason=result.failure_reason,
                stderr=truncate(result.stderr.strip(), _LOG_OUTPUT_CHARS),
            )
        batch = BatchResult(entries=tuple(entries))
        log_json(
            logger,
            "batch.completed",
            label=label,
            success_count=batch.success_count,
            total_count=batch.total_count,
            succeeded=batch.succeeded,
        )
        return batch

    async def _run_one(self, command: Command, wait: bool) -> CommandResult:
        try:
            return await self._executor.run(
                command,
                wait_for_completion=wait,
                timeout_sec=self._timeout_sec,
            )
        except Exception as exc:
            logger.exception("executor raised for %s", command.display())
            return CommandResult.failure(FailureReason.SPAWN_FAILED, stderr=str(exc) or type(exc).__name__)
