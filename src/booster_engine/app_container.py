import logging
from dataclasses import dataclass
from typing import Optional

from booster_engine.config import Config
from booster_engine.domain.contracts import PreferenceStore, PrivilegedBroker
from booster_engine.execution.authorization import AuthorizationGate
from booster_engine.execution.batch import BatchRunner
from booster_engine.execution.executor import BrokerCommandExecutor
from booster_engine.execution.local_broker import ConsentHandler, LocalProcessBroker
from booster_engine.execution.profiles import ProfileRegistry, default_profiles
from booster_engine.persistence.sqlite_store import KEY_CUSTOM_COMMANDS, SqlitePreferenceStore
from booster_engine.services.booster_service import BoosterService

logger = logging.getLogger(__name__)


@dataclass
class BoosterContainer:
    service: BoosterService
    broker: PrivilegedBroker
    executor: BrokerCommandExecutor
    store: PreferenceStore

    def close(self) -> None:
        self.service.gate.detach()


def build_booster_service(
    config: Config,
    broker: Optional[PrivilegedBroker] = None,
    store: Optional[PreferenceStore] = None,
    consent_handler: Optional[ConsentHandler] = None,
) -> BoosterContainer:
    resolved_store: PreferenceStore = store if store is not None else SqlitePreferenceStore(config.state_db_path)
    if broker is None:
        handler = _auto_grant if config.auto_grant else consent_handler
        broker = LocalProcessBroker(prefix=config.broker_prefix, store=resolved_store, consent_handler=handler)
    logger.info(
        "booster container: prefix=%s timeout=%s wait=%s",
        " ".join(config.broker_prefix) or "(none)",
        config.command_timeout_sec,
        config.wait_for_completion,
    )

    gate = AuthorizationGate(broker)
    gate.attach()
    executor = BrokerCommandExecutor(broker, default_timeout_sec=config.command_timeout_sec)
    batch_runner = BatchRunner(executor, wait_for_completion=config.wait_for_completion)
    registry = ProfileRegistry(
        default_profiles(),
        custom_source=lambda: resolved_store.get_lines(KEY_CUSTOM_COMMANDS),
    )
    service = BoosterService(
        gate=gate,
        registry=registry,
        batch_runner=batch_runner,
        store=resolved_store,
        background_apps=config.background_apps,
    )
    return BoosterContainer(service=service, broker=broker, executor=executor, store=resolved_store)


def _auto_grant(request_id: int) -> bool:
    logger.warning("AUTO_GRANT is set; granting permission request %s without a prompt", request_id)
    return True
