import asyncio
import unittest

from broker_fakes import FakeBroker, SpyExecutor

from booster_engine.domain.contracts import ApplyFailure, Command, Profile
from booster_engine.execution.authorization import AuthorizationGate
from booster_engine.execution.batch import BatchRunner
from booster_engine.execution.profiles import PROFILE_BALANCED, PROFILE_BATTERY, PROFILE_GAMING, ProfileRegistry
from booster_engine.services.profile_applier import ProfileApplier


def _applier(broker: FakeBroker, executor: SpyExecutor, registry: ProfileRegistry = None) -> ProfileApplier:
    return ProfileApplier(
        gate=AuthorizationGate(broker),
        registry=registry or ProfileRegistry(),
        batch_runner=BatchRunner(executor),
    )


class TestProfileApplier(unittest.IsolatedAsyncioTestCase):
    async def test_battery_end_to_end(self):
        executor = SpyExecutor()
        outcome = await _applier(FakeBroker(reachable=True, granted=True), executor).apply(PROFILE_BATTERY)
        self.assertTrue(outcome.succeeded)
        self.assertIsNone(outcome.reason)
        self.assertEqual(outcome.batch_result.success_count, 5)
        self.assertEqual(outcome.batch_result.total_count, 5)
        self.assertEqual(len(executor.calls), 5)

    async def test_partial_failure_still_succeeds(self):
        registry = ProfileRegistry([
            Profile(id="mixed", name="Mixed", commands=(Command.of("ok"), Command.of("fail"), Command.of("ok2"))),
        ])
        executor = SpyExecutor(failing={"fail"})
        outcome = await _applier(FakeBroker(), executor, registry).apply("mixed")
        self.assertTrue(outcome.succeeded)
        self.assertEqual(outcome.batch_result.success_count, 2)
        self.assertLess(outcome.batch_result.success_count, outcome.batch_result.total_count)

    async def test_nothing_applied_reports_reason(self):
        registry = ProfileRegistry([Profile(id="bad", name="Bad", commands=(Command.of("fail"),))])
        outcome = await _applier(FakeBroker(), SpyExecutor(failing={"fail"}), registry).apply("bad")
        self.assertFalse(outcome.succeeded)
        self.assertEqual(outcome.reason, ApplyFailure.NO_COMMAND_APPLIED)
        self.assertIsNotNone(outcome.batch_result)

    async def test_not_authorized_never_runs_batch(self):
        for rationale in (False, True):
            executor = SpyExecutor()
            broker = FakeBroker(granted=False, rationale=rationale)
            outcome = await _applier(broker, executor).apply(PROFILE_GAMING)
            self.assertFalse(outcome.succeeded)
            self.assertEqual(outcome.reason, ApplyFailure.NOT_AUTHORIZED)
            self.assertIsNone(outcome.batch_result)
            self.assertEqual(len(executor.calls), 0)

    async def test_broker_unreachable(self):
        executor = SpyExecutor()
        outcome = await _applier(FakeBroker(reachable=False, granted=True), executor).apply(PROFILE_GAMING)
        self.assertEqual(outcome.reason, ApplyFailure.BROKER_UNREACHABLE)
        self.assertEqual(len(executor.calls), 0)

    async def test_unreachable_is_checked_before_authorization(self):
        outcome = await _applier(FakeBroker(reachable=False, granted=False), SpyExecutor()).apply(PROFILE_GAMING)
        self.assertEqual(outcome.reason, ApplyFailure.BROKER_UNREACHABLE)

    async def test_unreachable_broker_wins_over_unknown_profile(self):
        executor = SpyExecutor()
        outcome = await _applier(FakeBroker(reachable=False), executor).apply("turbo")
        self.assertFalse(outcome.succeeded)
        self.assertEqual(outcome.reason, ApplyFailure.BROKER_UNREACHABLE)
        self.assertEqual(len(executor.calls), 0)

    async def test_unknown_profile_regardless_of_authorization(self):
        for granted in (True, False):
            executor = SpyExecutor()
            outcome = await _applier(FakeBroker(granted=granted), executor).apply("turbo")
            self.assertFalse(outcome.succeeded)
            self.assertEqual(outcome.reason, ApplyFailure.UNKNOWN_PROFILE)
            self.assertEqual(len(executor.calls), 0)

    async def test_balanced_twice_has_same_shape(self):
        applier = _applier(FakeBroker(), SpyExecutor())
        first = await applier.apply(PROFILE_BALANCED)
        second = await applier.apply(PROFILE_BALANCED)
        self.assertEqual(first.batch_result.total_count, second.batch_result.total_count)
        self.assertEqual(first.batch_result.commands, second.batch_result.commands)
        self.assertEqual(first, second)

    async def test_concurrent_applies_do_not_interleave(self):
        executor = SpyExecutor(delay=0.001)
        registry = ProfileRegistry()
        applier = _applier(FakeBroker(), executor, registry)
        gaming, battery = await asyncio.gather(applier.apply(PROFILE_GAMING), applier.apply(PROFILE_BATTERY))
        self.assertEqual(gaming.batch_result.commands, list(registry.lookup(PROFILE_GAMING).commands))
        self.assertEqual(battery.batch_result.commands, list(registry.lookup(PROFILE_BATTERY).commands))
        self.assertEqual(len(executor.calls), 10)

    async def test_profile_id_is_normalized_in_outcome(self):
        outcome = await _applier(FakeBroker(), SpyExecutor()).apply("Battery")
        self.assertEqual(outcome.profile_id, PROFILE_BATTERY)


if __name__ == "__main__":
    unittest.main()
