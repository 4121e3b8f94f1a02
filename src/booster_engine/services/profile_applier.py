import logging

from booster_engine.domain.contracts import ApplyFailure, ApplyOutcome, AuthorizationState
from booster_engine.execution.authorization import AuthorizationGate
from booster_engine.execution.batch import BatchRunner
from booster_engine.execution.profiles import ProfileRegistry, normalize_profile_id
from booster_engine.observability.structured_log import log_json

logger = logging.getLogger(__name__)


class ProfileApplier:
    """Applies one profile per call. Holds no state between calls.

    Preconditions are checked fail-fast in a fixed order: the profile must
    the broker must answer, the profile must exist and this client must hold a grant. Only
    then is the batch run, and the batch itself never stops early.
    """

    def __init__(self, gate: AuthorizationGate, registry: ProfileRegistry, batch_runner: BatchRunner):
        self._gate = gate
        self._registry = registry
        self._batch_runner = batch_runner

    async def apply(self, profile_id: str) -> ApplyOutcome:
        key = normalize_profile_id(profile_id)
        if not self._gate.is_broker_reachable():
            return self._reject(key, ApplyFailure.BROKER_UNREACHABLE)
        profile = self._registry.lookup(key)
        if profile is None:
            return self._reject(profile_id, ApplyFailure.UNKNOWN_PROFILE)
        if self._gate.current_authorization() != AuthorizationState.GRANTED:
            return self._reject(key, ApplyFailure.NOT_AUTHORIZED)

        batch = await self._batch_runner.run_all(profile.commands, label=f"profile:{profile.id}")
        outcome = ApplyOutcome(
            succeeded=batch.succeeded,
            profile_id=profile.id,
            batch_result=batch,
            reason=None if batch.succeeded else ApplyFailure.NO_COMMAND_APPLIED,
        )
        log_json(
            logger,
            "profile.applied",
            profile_id=profile.id,
            succeeded=outcome.succeeded,
            success_count=batch.success_count,
            total_count=batch.total_count,
        )
        return outcome

    def _reject(self, profile_id: str, reason: ApplyFailure) -> ApplyOutcome:
        log_json(logger, "profile.rejected", level=logging.WARNING, profile_id=profile_id, reason=reason)
        return ApplyOutcome.fail(profile_id, reason)
