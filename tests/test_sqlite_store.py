import tempfile
import unittest
from pathlib import Path

from booster_engine.persistence.sqlite_store import MemoryPreferenceStore, SqlitePreferenceStore


class TestSqlitePreferenceStore(unittest.TestCase):
    def test_values_survive_reopen(self):
        with tempfile.TemporaryDirectory() as tmp:
            db_path = Path(tmp) / "nested" / "state.db"
            store = SqlitePreferenceStore(db_path)
            self.assertEqual(store.get("missing", "fallback"), "fallback")
            store.set("last_applied_profile", "gaming")
            store.set("last_applied_profile", "battery")
            self.assertEqual(SqlitePreferenceStore(db_path).get("last_applied_profile"), "battery")

    def test_lines_round_trip(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = SqlitePreferenceStore(Path(tmp) / "state.db")
            self.assertEqual(store.get_lines("custom_commands"), [])
            store.set_lines("custom_commands", ["sync", "", "am kill-all"])
            self.assertEqual(store.get_lines("custom_commands"), ["sync", "", "am kill-all"])
            self.assertEqual(store.get("custom_commands"), "sync\n\nam kill-all")


class TestMemoryPreferenceStore(unittest.TestCase):
    def test_same_behaviour_as_sqlite(self):
        store = MemoryPreferenceStore({"a": "1"})
        self.assertEqual(store.get("a"), "1")
        store.set_lines("b", ["x", "y"])
        self.assertEqual(store.get_lines("b"), ["x", "y"])
        self.assertEqual(store.get("b"), "x\ny")


if __name__ == "__main__":
    unittest.main()
