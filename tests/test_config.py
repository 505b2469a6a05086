import tempfile
import unittest
from pathlib import Path

from exampractice.config.config import ConfigError, default_config, load_config, validate_config


class ConfigTests(unittest.TestCase):
    def test_package_defaults(self) -> None:
        cfg = default_config()
        self.assertEqual(cfg["session"]["seconds_per_question"], 60)
        self.assertEqual(cfg["storage"]["session_key"], "quizStateV3")
        self.assertEqual(cfg["storage"]["debounce_ms"], 500)
        self.assertEqual(cfg["selection"]["mock_exam_size"], 20)

    def test_missing_sections_get_defaults(self) -> None:
        cfg = validate_config({})
        self.assertEqual(cfg["scoring"]["mba_min_selections"], 2)
        self.assertEqual(cfg["storage"]["flagged_key"], "akt-flagged-questions")
        self.assertTrue(cfg["results"]["enabled"])

    def test_invalid_values_fall_back(self) -> None:
        raw = {
            "session": {"seconds_per_question": -5, "tick_seconds": "soon"},
            "selection": {"mock_exam_count": 11},
            "scoring": {"distinction_threshold": 1.5},
            "storage": {"debounce_ms": -1},
        }
        with self.assertLogs("exampractice.config.config", level="WARNING"):
            cfg = validate_config(raw)
        self.assertEqual(cfg["session"]["seconds_per_question"], 60)
        self.assertEqual(cfg["session"]["tick_seconds"], 1.0)
        self.assertEqual(cfg["selection"]["mock_exam_count"], 3)
        self.assertEqual(cfg["scoring"]["distinction_threshold"], 0.8)
        self.assertEqual(cfg["storage"]["debounce_ms"], 500)

    def test_load_from_file(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            path = Path(d) / "cfg.yml"
            path.write_text("session:\n  seconds_per_question: 90\n", encoding="utf-8")
            cfg = validate_config(load_config(str(path)))
            self.assertEqual(cfg["session"]["seconds_per_question"], 90)
            self.assertEqual(cfg["session"]["autosave_interval_ticks"], 5)

    def test_unreadable_files(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            with self.assertRaises(ConfigError):
                load_config(str(Path(d) / "missing.yml"))
            bad = Path(d) / "bad.yml"
            bad.write_text("session: [unclosed\n", encoding="utf-8")
            with self.assertRaises(ConfigError):
                load_config(str(bad))
            listing = Path(d) / "list.yml"
            listing.write_text("- a\n- b\n", encoding="utf-8")
            with self.assertRaises(ConfigError):
                load_config(str(listing))


if __name__ == "__main__":
    unittest.main()
