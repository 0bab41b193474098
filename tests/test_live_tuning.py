"""Hot-reloaded runtime parameter file."""

import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from pothole_ranging.live_tuning import RuntimeParamWatcher


class RuntimeParamWatcherTest(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "runtime_params.json"
        patcher = mock.patch("builtins.print")
        patcher.start()
        self.addCleanup(patcher.stop)
        self.addCleanup(self._tmp.cleanup)

    def write(self, obj):
        self.path.write_text(json.dumps(obj), encoding="utf-8")

    def test_missing_file(self):
        w = RuntimeParamWatcher(self.path)
        self.assertEqual(w.params, {})
        self.assertFalse(w.maybe_reload())
        self.assertIsNone(w.get_float("d_min_m"))

    def test_loads_and_types(self):
        self.write({"d_min_m": 1, "x_max_m": 2.5, "stationary": True, "name": "a"})
        w = RuntimeParamWatcher(self.path)
        self.assertEqual(w.get_float("d_min_m"), 1.0)
        self.assertEqual(w.get_float("x_max_m"), 2.5)
        self.assertIsNone(w.get_float("stationary"))
        self.assertIsNone(w.get_float("name"))
        self.assertIs(w.get_bool("stationary"), True)
        self.assertIsNone(w.get_bool("d_min_m"))
        self.assertEqual(w.get("name"), "a")
        self.assertEqual(w.get("missing", 7), 7)

    def test_reload_on_change(self):
        self.write({"d_min_m": 1.0})
        w = RuntimeParamWatcher(self.path)
        self.assertFalse(w.maybe_reload())

        self.write({"d_min_m": 1.0, "d_max_m": 80.0})
        self.assertTrue(w.maybe_reload())
        self.assertEqual(w.get_float("d_max_m"), 80.0)
        self.assertFalse(w.maybe_reload())

    def test_bad_json_keeps_old_params(self):
        self.write({"d_min_m": 1.0})
        w = RuntimeParamWatcher(self.path)
        self.path.write_text("{not json", encoding="utf-8")
        self.assertTrue(w.maybe_reload())
        self.assertEqual(w.get_float("d_min_m"), 1.0)
        self.assertFalse(w.maybe_reload())

    def test_non_object_ignored(self):
        self.write([1, 2, 3])
        w = RuntimeParamWatcher(self.path)
        self.assertEqual(w.params, {})


if __name__ == "__main__":
    unittest.main()
