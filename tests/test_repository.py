import json
import tempfile
import unittest
from pathlib import Path

import pandas as pd

from exampractice.catalog.repository import CatalogError, FileRepository, InMemoryRepository, load_catalog

ROWS = [
    {"id": 1, "type": "sba", "stem": "Which?", "options": ["Aspirin", "Heparin"], "correct": "B", "topic": "Cardio"},
    {"id": 2, "type": "numeric", "stem": "Dose?", "correct_answer": "5", "tolerance": "0.5"},
    {"id": 3, "type": "sba", "stem": "Broken", "options": ["x"], "correct": "Z"},
]


class FileRepositoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_json_list_and_wrapper(self) -> None:
        plain = self.dir / "q.json"
        plain.write_text(json.dumps(ROWS), encoding="utf-8")
        self.assertEqual(len(FileRepository(plain).fetch_all()), 3)
        wrapped = self.dir / "w.json"
        wrapped.write_text(json.dumps({"questions": ROWS[:1]}), encoding="utf-8")
        self.assertEqual(FileRepository(wrapped).fetch_all()[0]["id"], 1)

    def test_ndjson(self) -> None:
        path = self.dir / "q.ndjson"
        path.write_text("\n".join(json.dumps(r) for r in ROWS) + "\n\n", encoding="utf-8")
        self.assertEqual([r["id"] for r in FileRepository(path).fetch_all()], [1, 2, 3])

    def test_csv_export_normalizes(self) -> None:
        path = self.dir / "q.csv"
        frame = pd.DataFrame(
            [
                {"id": "7", "type": "sba", "stem": "Pick", "options": json.dumps(["a", "b", "c"]), "correct": "C", "topic": ""},
                {"id": "8", "type": "mba", "stem": "Pick two", "options": json.dumps(["a", "b", "c"]), "correct": "A, C", "topic": "Renal"},
            ]
        )
        frame.to_csv(path, index=False)
        load = load_catalog(FileRepository(path))
        self.assertEqual(load.size, 2)
        sba, mba = load.questions
        self.assertEqual(sba.correct, 2)
        self.assertEqual(sba.topic_label, "General")
        self.assertEqual(mba.correct, frozenset({0, 2}))

    def test_missing_and_malformed(self) -> None:
        with self.assertRaises(CatalogError):
            FileRepository(self.dir / "nope.json").fetch_all()
        bad = self.dir / "bad.json"
        bad.write_text("{not json", encoding="utf-8")
        with self.assertRaises(CatalogError):
            FileRepository(bad).fetch_all()
        scalar = self.dir / "scalar.json"
        scalar.write_text("42", encoding="utf-8")
        with self.assertRaises(CatalogError):
            FileRepository(scalar).fetch_all()


class LoadCatalogTests(unittest.TestCase):
    def test_skips_are_counted(self) -> None:
        load = load_catalog(InMemoryRepository(ROWS))
        self.assertTrue(load.ok)
        self.assertEqual((load.size, load.skipped_count), (2, 1))
        self.assertEqual(load.notice(), "Loaded 2 questions. 1 skipped (invalid data).")
        self.assertEqual(load.counts_by_type(), {"sba": 1, "numeric": 1})

    def test_fetch_failure_is_an_empty_catalog(self) -> None:
        class Down:
            def fetch_all(self):
                raise CatalogError("timeout")

        load = load_catalog(Down())
        self.assertFalse(load.ok)
        self.assertEqual(load.size, 0)
        self.assertEqual(load.notice(), "Failed to load questions: timeout")

    def test_connection_error_is_an_empty_catalog(self) -> None:
        class Unreachable:
            def fetch_all(self):
                raise ConnectionError("connection refused")

        load = load_catalog(Unreachable())
        self.assertEqual((load.size, load.error), (0, "connection refused"))


if __name__ == "__main__":
    unittest.main()
