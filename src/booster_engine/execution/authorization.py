import asyncio
import logging
import threading
from typing import Dict, List

from booster_engine.domain.contracts import (
    AuthorizationCallback,
    AuthorizationState,
    BrokerAvailability,
    PrivilegedBroker,
)
from booster_engine.observability.structured_log import log_json

logger = logging.getLogger(__name__)


class AuthorizationGate:
    """Tracks broker reachability and this client's capability grant.

    The only state held here is the table of pending permission callbacks,
    keyed by request id. An entry is removed when its result is delivered.
    """

    def __init__(self, broker: PrivilegedBroker):
        self._broker = broker
        self._pending: Dict[int, AuthorizationCallback] = {}
        self._lock = threading.Lock()
        self._attached = False

    def is_broker_reachable(self) -> bool:
        try:
            return bool(self._broker.ping_binder())
        except Exception as exc:
            logger.warning("broker ping failed: %s", exc)
            return False

    def availability(self) -> BrokerAvailability:
        if self.is_broker_reachable():
            return BrokerAvailability.REACHABLE
        return BrokerAvailability.UNREACHABLE

    def current_authorization(self) -> AuthorizationState:
        try:
            if self._broker.check_self_permission():
                return AuthorizationState.GRANTED
            if self._broker.should_show_request_permission_rationale():
                return AuthorizationState.DENIED
            return AuthorizationState.NOT_REQUESTED
        except Exception as exc:
            logger.warning("broker permission check failed: %s", exc)
            return AuthorizationState.DENIED

    def is_authorized(self) -> bool:
        return self.current_authorization() == AuthorizationState.GRANTED

    def request_authorization(self, request_id: int, callback: AuthorizationCallback) -> None:
        with self._lock:
            if request_id in self._pending:
                raise ValueError(f"Permission request {request_id} is already pending.")
            self._pending[request_id] = callback
        log_json(logger, "authorization.requested", request_id=request_id)
        try:
            self._broker.request_permission(request_id)
        except Exception as exc:
            logger.warning("broker permission request %s failed: %s", request_id, exc)
            self._deliver(request_id, granted=False)

    async def wait_for_authorization(self, request_id: int) -> AuthorizationState:
        """Request a grant and suspend until the consent result arrives.

        The consent flow may never finish; wrap this in ``asyncio.wait_for``
        when a bound is needed. A cancelled wait leaves the table clean.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def _resolve(state: AuthorizationState) -> None:
            loop.call_soon_threadsafe(_set_result, future, state)

        self.request_authorization(request_id, _resolve)
        try:
            return await future
        finally:
            self.discard_request(request_id)

    def on_permission_result(self, request_id: int, granted: bool) -> None:
        if not self._deliver(request_id, granted=granted):
            logger.info("ignoring permission result for unknown request %s", request_id)

    def on_binder_died(self) -> None:
        with self._lock:
            pending = list(self._pending.items())
            self._pending.clear()
        log_json(logger, "authorization.binder_died", level=logging.WARNING, pending=len(pending))
        for request_id, callback in pending:
            _invoke(callback, AuthorizationState.DENIED, request_id)

    def discard_request(self, request_id: int) -> bool:
        with self._lock:
            return self._pending.pop(request_id, None) is not None

    def pending_request_ids(self) -> List[int]:
        with self._lock:
            return sorted(self._pending)

    def attach(self) -> None:
        if self._attached:
            return
        self._broker.add_permission_result_listener(self.on_permission_result)
        self._broker.add_binder_died_listener(self.on_binder_died)
        self._attached = True

    def detach(self) -> None:
        if not self._attached:
            return
        self._broker.remove_permission_result_listener(self.on_permission_result)
        self._broker.remove_binder_died_listener(self.on_binder_died)
        self._attached = False

    def _deliver(self, request_id: int, granted: bool) -> bool:
        with self._lock:
            callback = self._pending.pop(request_id, None)
        if callback is None:
            return False
        state = AuthorizationState.GRANTED if granted else AuthorizationState.DENIED
        log_json(logger, "authorization.result", request_id=request_id, state=state)
        _invoke(callback, state, request_id)
        return True


def _invoke(callback: AuthorizationCallback, state: AuthorizationState, request_id: int) -> None:
    try:
        callback(state)
    except Exception:
        logger.exception("authorization callback for request %s failed", request_id)


def _set_result(future: asyncio.Future, state: AuthorizationState) -> None:
    if not future.done():
        future.set_result(state)
