from dataclasses import dataclass
from typing import Dict, List, Optional, Union

from booster_engine.domain.contracts import ApplyFailure, ApplyOutcome, CommandResult, FailureReason


@dataclass(frozen=True)
class RecoveryAction:
    action_id: str
    label: str
    description: str


@dataclass(frozen=True)
class ErrorCatalogEntry:
    code: str
    title: str
    user_message: str
    actions: List[RecoveryAction]


ERR_UNKNOWN = "ERR_UNKNOWN"

ERROR_CATALOG: List[ErrorCatalogEntry] = [
    ErrorCatalogEntry(
        code="ERR_BROKER_UNREACHABLE",
        title="Broker not running",
        user_message="The privileged broker is not reachable. Start it and try again.",
        actions=[
            RecoveryAction("start_broker", "Start broker", "Launch the broker service, then refresh status."),
            RecoveryAction("check_status", "Check status", "Run `booster-engine status`."),
        ],
    ),
    ErrorCatalogEntry(
        code="ERR_NOT_AUTHORIZED",
        title="Permission required",
        user_message="This app has not been granted access to the broker.",
        actions=[
            RecoveryAction("request_permission", "Grant permission", "Run `booster-engine authorize`."),
        ],
    ),
    ErrorCatalogEntry(
        code="ERR_UNKNOWN_PROFILE",
        title="Unknown profile",
        user_message="No profile with that name exists.",
        actions=[
            RecoveryAction("list_profiles", "List profiles", "Run `booster-engine profiles`."),
        ],
    ),
    ErrorCatalogEntry(
        code="ERR_NO_COMMAND_APPLIED",
        title="Profile not applied",
        user_message="Failed to apply profile: none of its commands succeeded.",
        actions=[
            RecoveryAction("check_status", "Check status", "Confirm the broker grant is still active."),
            RecoveryAction("inspect_logs", "Inspect logs", "Per-command stderr is logged at WARNING."),
        ],
    ),
    ErrorCatalogEntry(
        code="ERR_PERMISSION_DENIED",
        title="Command refused",
        user_message="The broker refused to run the command.",
        actions=[
            RecoveryAction("request_permission", "Grant permission", "Run `booster-engine authorize`."),
        ],
    ),
    ErrorCatalogEntry(
        code="ERR_SPAWN_FAILED",
        title="Command could not start",
        user_message="The broker could not start the command.",
        actions=[
            RecoveryAction("check_command", "Check command", "Verify the program exists on the device."),
        ],
    ),
    ErrorCatalogEntry(
        code="ERR_TIMEOUT",
        title="Command timed out",
        user_message="The command exceeded its deadline and was stopped.",
        actions=[
            RecoveryAction("raise_timeout", "Raise timeout", "Increase COMMAND_TIMEOUT_SEC."),
        ],
    ),
    ErrorCatalogEntry(
        code="ERR_NON_ZERO_EXIT",
        title="Command failed",
        user_message="The command ran but exited with an error.",
        actions=[
            RecoveryAction("inspect_stderr", "Inspect output", "Read the command's stderr."),
        ],
    ),
    ErrorCatalogEntry(
        code=ERR_UNKNOWN,
        title="Unknown error",
        user_message="An unknown error occurred.",
        actions=[],
    ),
]

_SUCCESS_MESSAGES: Dict[str, str] = {
    "gaming": "Gaming mode activated! 🎮",
    "battery": "Battery saver activated! 🔋",
    "balanced": "Balanced mode activated! ⚖️",
    "custom": "Custom profile applied! ⚙️",
}


def error_code_for(reason: Optional[Union[ApplyFailure, FailureReason]]) -> str:
    if reason is None:
        return ERR_UNKNOWN
    return f"ERR_{reason.value.upper()}"


def get_catalog_entry(code: str) -> ErrorCatalogEntry:
    for entry in ERROR_CATALOG:
        if entry.code == code:
            return entry
    return next(entry for entry in ERROR_CATALOG if entry.code == ERR_UNKNOWN)


def describe_outcome(outcome: ApplyOutcome) -> str:
    if outcome.succeeded:
        message = _SUCCESS_MESSAGES.get(outcome.profile_id, f"Profile '{outcome.profile_id}' applied.")
        batch = outcome.batch_result
        if batch is not None and batch.success_count < batch.total_count:
            message += f" ({batch.success_count}/{batch.total_count} commands)"
        return message
    return get_catalog_entry(error_code_for(outcome.reason)).user_message


def describe_command_result(result: CommandResult) -> str:
    if result.succeeded:
        return "OK"
    entry = get_catalog_entry(error_code_for(result.failure_reason))
    detail = (result.stderr or "").strip()
    if result.failure_reason == FailureReason.NON_ZERO_EXIT:
        detail = f"exit code {result.exit_code}" + (f": {detail}" if detail else "")
    return f"{entry.user_message} {detail}".strip()
