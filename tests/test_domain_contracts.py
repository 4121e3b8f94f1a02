import unittest

from booster_engine.domain.contracts import (
    ApplyFailure,
    ApplyOutcome,
    BatchEntry,
    BatchResult,
    Command,
    CommandResult,
    FailureReason,
    SettingChange,
)


class TestCommand(unittest.TestCase):
    def test_parse_splits_on_any_whitespace(self):
        command = Command.parse("  settings   put\tglobal x 1 ")
        self.assertEqual(command.argv, ["settings", "put", "global", "x", "1"])

    def test_parse_blank_line_is_none(self):
        self.assertIsNone(Command.parse(""))
        self.assertIsNone(Command.parse("   \t"))

    def test_parse_rejects_nul(self):
        with self.assertRaises(ValueError):
            Command.parse("am force-stop com.a\x00b")

    def test_args_are_stored_as_tuple(self):
        command = Command("am", ["force-stop", "com.a.b"])
        self.assertEqual(command.args, ("force-stop", "com.a.b"))
        self.assertEqual(command, Command.of("am", "force-stop", "com.a.b"))

    def test_program_without_args(self):
        self.assertEqual(Command.of("sync").argv, ["sync"])

    def test_empty_program_rejected(self):
        with self.assertRaises(ValueError):
            Command("  ")
        with self.assertRaises(ValueError):
            Command.of()

    def test_setting_change_builds_settings_put(self):
        command = SettingChange("global", "low_power", "1").to_command()
        self.assertEqual(command.argv, ["settings", "put", "global", "low_power", "1"])


class TestBatchResult(unittest.TestCase):
    def _entry(self, name: str, ok: bool) -> BatchEntry:
        result = CommandResult(succeeded=True, exit_code=0) if ok else CommandResult.failure(
            FailureReason.NON_ZERO_EXIT, exit_code=1
        )
        return BatchEntry(command=Command.of(name), result=result)

    def test_counts_and_partial_success(self):
        batch = BatchResult(entries=(self._entry("a", True), self._entry("b", False), self._entry("c", True)))
        self.assertEqual(batch.total_count, 3)
        self.assertEqual(batch.success_count, 2)
        self.assertTrue(batch.succeeded)
        self.assertEqual([e.command.program for e in batch.failures()], ["b"])

    def test_all_failed_is_not_success(self):
        batch = BatchResult(entries=(self._entry("a", False),))
        self.assertFalse(batch.succeeded)

    def test_empty_batch_is_not_success(self):
        self.assertFalse(BatchResult().succeeded)

    def test_apply_outcome_fail_has_no_batch(self):
        outcome = ApplyOutcome.fail("gaming", ApplyFailure.NOT_AUTHORIZED)
        self.assertFalse(outcome.succeeded)
        self.assertIsNone(outcome.batch_result)
        self.assertEqual(outcome.reason, ApplyFailure.NOT_AUTHORIZED)


if __name__ == "__main__":
    unittest.main()
