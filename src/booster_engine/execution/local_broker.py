import asyncio
import logging
import os
import shlex
import shutil
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from booster_engine.domain.contracts import (
    BinderDiedListener,
    BrokerError,
    BrokerPermissionError,
    BrokerProcess,
    PermissionResultListener,
    PreferenceStore,
)
from booster_engine.persistence.sqlite_store import KEY_AUTHORIZATION

logger = logging.getLogger(__name__)

GRANT_GRANTED = "granted"
GRANT_DENIED = "denied"

# Prefixes whose remote end re-parses argv through a shell.
_REMOTE_SHELL_PROGRAMS = {"adb", "ssh"}

ConsentHandler = Callable[[int], bool]


class LocalProcessBroker:
    """Broker adapter that spawns processes on this host.

    With a prefix such as ``adb shell`` every command runs in the device's
    shell user context, which is the privilege level the booster needs.
    The grant is stored in the preference store and only changes through
    ``request_permission`` (consent handler) or ``revoke``.
    """

    def __init__(
        self,
        prefix: Optional[Sequence[str]] = None,
        store: Optional[PreferenceStore] = None,
        consent_handler: Optional[ConsentHandler] = None,
    ):
        self._prefix: List[str] = list(prefix or [])
        self._store = store
        self._grant = ""
        self._consent_handler = consent_handler
        self._permission_listeners: List[PermissionResultListener] = []
        self._died_listeners: List[BinderDiedListener] = []
        self._consent_threads: List[threading.Thread] = []
        self._lock = threading.Lock()

    def set_consent_handler(self, handler: Optional[ConsentHandler]) -> None:
        self._consent_handler = handler

    def ping_binder(self) -> bool:
        if not self._prefix:
            return True
        program = self._prefix[0]
        if os.path.sep in program:
            return Path(program).exists()
        return shutil.which(program) is not None

    def check_self_permission(self) -> bool:
        return self._read_grant() == GRANT_GRANTED

    def should_show_request_permission_rationale(self) -> bool:
        return self._read_grant() == GRANT_DENIED

    def request_permission(self, request_id: int) -> None:
        """Start the consent flow and return at once.

        The handler runs on a worker thread and the result reaches
        permission-result listeners from that thread.
        """
        if not self.ping_binder():
            raise BrokerError("Broker is not reachable.")
        thread = threading.Thread(
            target=self._run_consent,
            args=(request_id,),
            name=f"broker-consent-{request_id}",
            daemon=True,
        )
        with self._lock:
            self._consent_threads = [t for t in self._consent_threads if t.is_alive()]
            self._consent_threads.append(thread)
        thread.start()

    def wait_for_consent(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            threads = list(self._consent_threads)
        for thread in threads:
            thread.join(timeout)

    def _run_consent(self, request_id: int) -> None:
        granted = False
        handler = self._consent_handler
        if handler is not None:
            try:
                granted = bool(handler(request_id))
            except Exception as exc:
                logger.warning("consent handler failed for request %s: %s", request_id, exc)
                granted = False
        self._write_grant(GRANT_GRANTED if granted else GRANT_DENIED)
        with self._lock:
            listeners = list(self._permission_listeners)
        for listener in listeners:
            listener(request_id, granted)

    def revoke(self) -> None:
        self._write_grant("")

    def add_permission_result_listener(self, listener: PermissionResultListener) -> None:
        with self._lock:
            self._permission_listeners.append(listener)

    def remove_permission_result_listener(self, listener: PermissionResultListener) -> None:
        with self._lock:
            if listener in self._permission_listeners:
                self._permission_listeners.remove(listener)

    def add_binder_died_listener(self, listener: BinderDiedListener) -> None:
        with self._lock:
            self._died_listeners.append(listener)

    def remove_binder_died_listener(self, listener: BinderDiedListener) -> None:
        with self._lock:
            if listener in self._died_listeners:
                self._died_listeners.remove(listener)

    def notify_binder_died(self) -> None:
        with self._lock:
            listeners = list(self._died_listeners)
        for listener in listeners:
            listener()

    async def spawn_process(
        self,
        argv: Sequence[str],
        env: Optional[Dict[str, str]] = None,
        workdir: Optional[str] = None,
    ) -> BrokerProcess:
        if not self.check_self_permission():
            raise BrokerPermissionError("Broker permission has not been granted.")
        if not argv:
            raise BrokerError("Empty command.")
        full_argv = self.build_argv(argv)
        merged_env = None
        if env:
            merged_env = dict(os.environ)
            merged_env.update(env)
        return await asyncio.create_subprocess_exec(
            *full_argv,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=workdir,
            env=merged_env,
        )

    def build_argv(self, argv: Sequence[str]) -> List[str]:
        if not self._prefix:
            return list(argv)
        if Path(self._prefix[0]).name in _REMOTE_SHELL_PROGRAMS:
            return self._prefix + [shlex.quote(str(token)) for token in argv]
        return self._prefix + list(argv)

    def _read_grant(self) -> str:
        if self._store is not None:
            return self._store.get(KEY_AUTHORIZATION, "")
        return self._grant

    def _write_grant(self, value: str) -> None:
        if self._store is not None:
            self._store.set(KEY_AUTHORIZATION, value)
        else:
            self._grant = value
