import io
import json
import random
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path

from exampractice.app.cli import _dispatch, main, parse_answer, render
from exampractice.app.selection import SelectionCriteria
from exampractice.app.session_engine import EnginePhase, SessionEngine
from exampractice.catalog.repository import InMemoryRepository
from exampractice.config.config import default_config
from exampractice.storage import FlaggedRegistry, JsonDirectoryStore, MemoryStore
from exampractice.util.scheduler import ManualScheduler

ROWS = [
    {"id": "c1", "type": "sba", "stem": "Rate control?", "options": ["Digoxin", "Bisoprolol", "Amiodarone"], "correct": "B", "topic": "Cardio"},
    {
        "id": "c2",
        "type": "emq",
        "theme": "Electrolytes",
        "options": ["Low K", "High K", "Low Na"],
        "stems": [{"stem": "Peaked T", "correct": 1}, {"stem": "U waves", "correct": 0}],
        "topic": "Renal",
    },
    {"id": "c3", "type": "numeric", "stem": "Normal K upper limit", "correct_answer": 5.0, "tolerance": 0.5, "unit": "mmol/L"},
]


def _engine() -> SessionEngine:
    engine = SessionEngine(default_config(), MemoryStore(), ManualScheduler(), rng=random.Random(3))
    engine.load_catalog(InMemoryRepository(ROWS))
    engine.start(SelectionCriteria(shuffle=False))
    return engine


class ParseAnswerTests(unittest.TestCase):
    def test_shapes_per_type(self) -> None:
        engine = _engine()
        self.assertEqual(parse_answer(engine.view(0), "b"), 1)
        self.assertEqual(parse_answer(engine.view(0), "3"), 2)
        self.assertEqual(parse_answer(engine.view(1), "B, A"), [1, 0])
        self.assertEqual(parse_answer(engine.view(2), " 5.2 "), " 5.2 ")

    def test_render_marks_revealed_answer(self) -> None:
        engine = _engine()
        engine.submit_answer(0, 0)
        text = render(engine.view(0))
        self.assertIn("[c1] Question 1/3", text)
        self.assertIn(" *B. Bisoprolol", text)
        self.assertIn("Status: incorrect", text)


class DispatchTests(unittest.TestCase):
    def test_commands_drive_the_engine(self) -> None:
        engine = _engine()
        with redirect_stdout(io.StringIO()) as out:
            self.assertFalse(_dispatch(engine, "B"))
            self.assertFalse(_dispatch(engine, "n"))
            self.assertFalse(_dispatch(engine, "f"))
            self.assertFalse(_dispatch(engine, "B A"))
            self.assertFalse(_dispatch(engine, "g 9"))
            self.assertTrue(_dispatch(engine, "e"))
        self.assertIn("out of range", out.getvalue())
        self.assertEqual(engine.phase, EnginePhase.ENDED)
        self.assertEqual(engine.result.label, "3/3")
        self.assertTrue(engine.states[1].flagged)

    def test_save_and_quit_keeps_snapshot(self) -> None:
        engine = _engine()
        with redirect_stdout(io.StringIO()):
            self.assertTrue(_dispatch(engine, "s"))
        self.assertEqual(engine.phase, EnginePhase.SELECTING_MODE)
        self.assertIsNotNone(engine.persistence.load())


class MainTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        self.catalog = root / "questions.json"
        self.catalog.write_text(json.dumps(ROWS + [{"id": "bad", "type": "sba"}]), encoding="utf-8")
        self.data_dir = root / "data"
        self.config = root / "cfg.yml"
        self.config.write_text(
            f"storage:\n  data_dir: {self.data_dir}\n"
            f"results:\n  data_dir: {root / 'results'}\n"
            f"catalog:\n  path: {self.catalog}\n",
            encoding="utf-8",
        )

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _run(self, *argv: str):
        with redirect_stdout(io.StringIO()) as out:
            code = main(["--config", str(self.config), *argv])
        return code, out.getvalue()

    def test_catalog_report(self) -> None:
        code, out = self._run("catalog")
        self.assertEqual(code, 0)
        self.assertIn("Loaded 3 questions. 1 skipped (invalid data).", out)
        self.assertIn("emq: 1", out)
        self.assertIn("sba: 1", out)
        self.assertIn("mba: 0", out)

    def test_missing_catalog_fails(self) -> None:
        code, _ = self._run("catalog", "--path", str(self.catalog.with_name("none.json")))
        self.assertEqual(code, 1)

    def test_flagged_listing_and_removal(self) -> None:
        FlaggedRegistry(JsonDirectoryStore(self.data_dir)).add("c1", "correct")
        code, out = self._run("flagged")
        self.assertEqual(code, 0)
        self.assertIn("c1\tcorrect", out)
        self.assertEqual(self._run("flagged", "--remove", "c1")[0], 0)
        self.assertEqual(self._run("flagged", "--remove", "c1")[0], 1)

    def test_weak_topics_and_empty_history(self) -> None:
        code, out = self._run("weak-topics")
        self.assertEqual((code, out.strip()), (0, "No weak topics recorded."))
        code, out = self._run("history")
        self.assertEqual((code, out.strip()), (0, "No results recorded."))

    def test_bad_config_path(self) -> None:
        with redirect_stdout(io.StringIO()):
            self.assertEqual(main(["--config", str(self.config.with_name("missing.yml")), "catalog"]), 2)


if __name__ == "__main__":
    unittest.main()
