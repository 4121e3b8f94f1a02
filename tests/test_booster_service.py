import unittest

from broker_fakes import FakeBroker, FakeProcess, SpyExecutor

from booster_engine.domain.contracts import (
    ApplyFailure,
    AuthorizationState,
    BrokerAvailability,
    BrokerPermissionError,
    Command,
    FailureReason,
)
from booster_engine.execution.authorization import AuthorizationGate
from booster_engine.execution.batch import BatchRunner
from booster_engine.execution.executor import BrokerCommandExecutor
from booster_engine.execution.profiles import ProfileRegistry, default_profiles
from booster_engine.persistence.sqlite_store import KEY_CUSTOM_COMMANDS, KEY_LAST_APPLIED, MemoryPreferenceStore
from booster_engine.services.booster_service import BoosterService


class TestBoosterService(unittest.IsolatedAsyncioTestCase):
    def _service(self, broker: FakeBroker, executor=None) -> BoosterService:
        self.store = MemoryPreferenceStore()
        self.executor = executor or SpyExecutor()
        gate = AuthorizationGate(broker)
        gate.attach()
        registry = ProfileRegistry(default_profiles(), custom_source=lambda: self.store.get_lines(KEY_CUSTOM_COMMANDS))
        return BoosterService(
            gate=gate,
            registry=registry,
            batch_runner=BatchRunner(self.executor),
            store=self.store,
            background_apps=["com.example.one", "com.example.two"],
        )

    async def test_apply_records_last_applied_on_success(self):
        service = self._service(FakeBroker())
        outcome = await service.apply("gaming")
        self.assertTrue(outcome.succeeded)
        self.assertEqual(service.last_applied_profile(), "gaming")

    async def test_failed_apply_leaves_last_applied(self):
        service = self._service(FakeBroker(granted=False))
        self.store.set(KEY_LAST_APPLIED, "battery")
        outcome = await service.apply("gaming")
        self.assertEqual(outcome.reason, ApplyFailure.NOT_AUTHORIZED)
        self.assertEqual(service.last_applied_profile(), "battery")

    async def test_custom_profile_from_store(self):
        service = self._service(FakeBroker())
        service.set_custom_commands(["settings put global x 1", "", "   ", "am force-stop com.a.b"])
        outcome = await service.apply("custom")
        self.assertTrue(outcome.succeeded)
        self.assertEqual(
            [c.argv for c in self.executor.calls],
            [["settings", "put", "global", "x", "1"], ["am", "force-stop", "com.a.b"]],
        )

    async def test_empty_custom_profile_applies_nothing(self):
        service = self._service(FakeBroker())
        outcome = await service.apply("custom")
        self.assertFalse(outcome.succeeded)
        self.assertEqual(outcome.reason, ApplyFailure.NO_COMMAND_APPLIED)

    async def test_ad_hoc_command_is_batch_of_one(self):
        service = self._service(FakeBroker())
        result = await service.run_ad_hoc_command(Command.of("am", "force-stop", "com.a.b"))
        self.assertTrue(result.succeeded)
        self.assertEqual(len(self.executor.calls), 1)

    async def test_ad_hoc_command_without_grant_is_permission_denied(self):
        broker = FakeBroker()
        broker.default = BrokerPermissionError("not granted")
        service = self._service(broker, executor=BrokerCommandExecutor(broker))
        result = await service.force_stop_app("com.a.b")
        self.assertEqual(result.failure_reason, FailureReason.PERMISSION_DENIED)

    async def test_quick_actions_issue_expected_commands(self):
        service = self._service(FakeBroker())
        await service.clear_app_cache("com.android.settings")
        await service.boost_memory()
        await service.force_stop_app("com.whatsapp")
        self.assertEqual(
            [c.argv for c in self.executor.calls],
            [
                ["pm", "clear", "--cache-only", "com.android.settings"],
                ["sync"],
                ["am", "force-stop", "com.whatsapp"],
            ],
        )

    async def test_kill_background_apps_uses_configured_list(self):
        service = self._service(FakeBroker())
        batch = await service.kill_background_apps()
        self.assertEqual(batch.total_count, 2)
        self.assertEqual(self.executor.calls[0].argv, ["am", "force-stop", "com.example.one"])
        batch = await service.kill_background_apps(["com.x"])
        self.assertEqual(batch.total_count, 1)

    async def test_optimize_network_counts_successes(self):
        service = self._service(FakeBroker(), executor=SpyExecutor(failing={"ip route flush cache"}))
        batch = await service.optimize_network()
        self.assertEqual(batch.total_count, 3)
        self.assertEqual(batch.success_count, 2)

    async def test_system_info_blanks_failed_lookups(self):
        broker = FakeBroker()
        broker.default = lambda: FakeProcess(stdout=b"value\n")
        broker.script["dumpsys battery"] = lambda: FakeProcess(returncode=1)
        service = self._service(broker, executor=BrokerCommandExecutor(broker))
        info = await service.system_info()
        self.assertEqual(list(info), ["kernel", "uptime", "memory", "battery"])
        self.assertEqual(info["kernel"], "value")
        self.assertEqual(info["battery"], "")

    async def test_status_and_authorization_passthrough(self):
        broker = FakeBroker(granted=False)
        service = self._service(broker)
        self.assertFalse(service.is_authorized())
        self.assertEqual(service.broker_availability(), BrokerAvailability.REACHABLE)
        seen = []
        service.request_authorization(1000, seen.append)
        self.assertEqual(service.status()["pending_requests"], [1000])
        broker.answer(1000, granted=True)
        self.assertEqual(seen, [AuthorizationState.GRANTED])
        self.assertTrue(service.is_authorized())
        self.assertEqual(service.status()["authorization"], "granted")

    async def test_list_profiles_includes_custom(self):
        service = self._service(FakeBroker())
        self.assertEqual([p.id for p in service.list_profiles()], ["gaming", "balanced", "battery", "custom"])


if __name__ == "__main__":
    unittest.main()
