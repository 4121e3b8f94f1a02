import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple


class BrokerAvailability(str, Enum):
    UNREACHABLE = "unreachable"
    REACHABLE = "reachable"


class AuthorizationState(str, Enum):
    NOT_REQUESTED = "not_requested"
    DENIED = "denied"
    GRANTED = "granted"


class FailureReason(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    SPAWN_FAILED = "spawn_failed"
    TIMEOUT = "timeout"
    NON_ZERO_EXIT = "non_zero_exit"


class ApplyFailure(str, Enum):
    BROKER_UNREACHABLE = "broker_unreachable"
    NOT_AUTHORIZED = "not_authorized"
    UNKNOWN_PROFILE = "unknown_profile"
    NO_COMMAND_APPLIED = "no_command_applied"


class BrokerError(Exception):
    """Raised by broker adapters when a request cannot be served."""


class BrokerPermissionError(BrokerError, PermissionError):
    """The broker refused the request because this client holds no grant."""


@dataclass(frozen=True)
class Command:
    program: str
    args: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.program or not self.program.strip():
            raise ValueError("Command program must be a non-empty string.")
        # Accept lists from callers; the stored value is always a tuple.
        object.__setattr__(self, "args", tuple(str(a) for a in self.args))

    @property
    def argv(self) -> List[str]:
        return [self.program, *self.args]

    def display(self) -> str:
        return " ".join(self.argv)

    @classmethod
    def of(cls, *argv: str) -> "Command":
        if not argv:
            raise ValueError("Command requires at least a program name.")
        return cls(program=argv[0], args=tuple(argv[1:]))

    @classmethod
    def parse(cls, line: str) -> Optional["Command"]:
        """Split a stored line on whitespace. Blank lines yield None."""
        tokens = (line or "").split()
        if not tokens:
            return None
        if any("\x00" in token for token in tokens):
            raise ValueError("Command line contains a NUL byte.")
        return cls(program=tokens[0], args=tuple(tokens[1:]))

    @classmethod
    def setting(cls, namespace: str, key: str, value: str) -> "Command":
        return cls(program="settings", args=("put", namespace, key, value))


@dataclass(frozen=True)
class CommandResult:
    succeeded: bool
    exit_code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    failure_reason: Optional[FailureReason] = None

    @classmethod
    def failure(cls, reason: FailureReason, stderr: str = "", exit_code: Optional[int] = None, stdout: str = "") -> "CommandResult":
        return cls(succeeded=False, exit_code=exit_code, stdout=stdout, stderr=stderr, failure_reason=reason)


@dataclass(frozen=True)
class BatchEntry:
    command: Command
    result: CommandResult


@dataclass(frozen=True)
class BatchResult:
    entries: Tuple[BatchEntry, ...] = ()

    @property
    def total_count(self) -> int:
        return len(self.entries)

    @property
    def success_count(self) -> int:
        return sum(1 for entry in self.entries if entry.result.succeeded)

    @property
    def succeeded(self) -> bool:
        # Partial application still counts: one applied setting is a success.
        return self.success_count > 0

    @property
    def commands(self) -> List[Command]:
        return [entry.command for entry in self.entries]

    def failures(self) -> List[BatchEntry]:
        return [entry for entry in self.entries if not entry.result.succeeded]


@dataclass(frozen=True)
class SettingChange:
    namespace: str
    key: str
    value: str

    def to_command(self) -> Command:
        return Command.setting(self.namespace, self.key, self.value)


@dataclass(frozen=True)
class Profile:
    id: str
    name: str
    commands: Tuple[Command, ...] = ()
    description: str = ""
    icon: str = ""
    cpu_max_freq: str = ""
    gpu_max_freq: str = ""
    thermal_profile: str = ""

    def metadata(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "cpu_max_freq": self.cpu_max_freq,
            "gpu_max_freq": self.gpu_max_freq,
            "thermal_profile": self.thermal_profile,
            "command_count": len(self.commands),
        }


@dataclass(frozen=True)
class ApplyOutcome:
    succeeded: bool
    profile_id: str
    batch_result: Optional[BatchResult] = None
    reason: Optional[ApplyFailure] = None

    @classmethod
    def fail(cls, profile_id: str, reason: ApplyFailure) -> "ApplyOutcome":
        return cls(succeeded=False, profile_id=profile_id, batch_result=None, reason=reason)


PermissionResultListener = Callable[[int, bool], None]
BinderDiedListener = Callable[[], None]
AuthorizationCallback = Callable[[AuthorizationState], None]


class BrokerProcess(Protocol):
    stdin: Optional[asyncio.StreamWriter]
    stdout: Optional[asyncio.StreamReader]
    stderr: Optional[asyncio.StreamReader]

    async def wait(self) -> int:
        ...

    def kill(self) -> None:
        ...


class PrivilegedBroker(Protocol):
    def ping_binder(self) -> bool:
        ...

    def check_self_permission(self) -> bool:
        ...

    def should_show_request_permission_rationale(self) -> bool:
        ...

    def request_permission(self, request_id: int) -> None:
        ...

    def add_permission_result_listener(self, listener: PermissionResultListener) -> None:
        ...

    def remove_permission_result_listener(self, listener: PermissionResultListener) -> None:
        ...

    def add_binder_died_listener(self, listener: BinderDiedListener) -> None:
        ...

    def remove_binder_died_listener(self, listener: BinderDiedListener) -> None:
        ...

    async def spawn_process(
        self,
        argv: Sequence[str],
        env: Optional[Dict[str, str]] = None,
        workdir: Optional[str] = None,
    ) -> BrokerProcess:
        ...


class CommandExecutor(Protocol):
    async def run(
        self,
        command: Command,
        wait_for_completion: bool = True,
        timeout_sec: Optional[float] = None,
    ) -> CommandResult:
        ...


class PreferenceStore(Protocol):
    def get(self, key: str, default: str = "") -> str:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def get_lines(self, key: str) -> List[str]:
        ...

    def set_lines(self, key: str, lines: Sequence[str]) -> None:
        ...
