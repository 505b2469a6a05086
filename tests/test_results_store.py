import json
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pandas as pd
from pydantic import ValidationError

from exampractice.app.session_engine import SessionResult, TopicScore
from exampractice.results.schema import TopicResultRow, rows_for_session
from exampractice.results.store import (
    DATA_FILE,
    ParquetResultsSink,
    export_ndjson,
    init_store,
    load_all,
    query_topic_trend,
    validate_records,
)

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def make_result(session_id: str, started_at: datetime, topics, mode: str = "exam") -> SessionResult:
    topic_scores = tuple(TopicScore(topic=t, score=s, possible=p) for t, s, p in topics)
    return SessionResult(
        session_id=session_id,
        started_at=started_at,
        ended_at=started_at + timedelta(minutes=20),
        mode=mode,
        selected_type="mixed",
        total_score=sum(t.score for t in topic_scores),
        total_possible=sum(t.possible for t in topic_scores),
        topics=topic_scores,
    )


class SchemaTests(unittest.TestCase):
    def test_score_cannot_exceed_possible(self) -> None:
        with self.assertRaises(ValidationError):
            TopicResultRow(session_id="s", session_start=T0, mode="exam", topic="Cardio", score=3, possible=2)

    def test_naive_start_is_utc(self) -> None:
        row = TopicResultRow(session_id="s", session_start=datetime(2024, 1, 1), mode="practice", topic="Renal", score=0, possible=1)
        self.assertEqual(row.session_start.tzinfo, timezone.utc)

    def test_zero_possible_topics_dropped(self) -> None:
        rows = rows_for_session("s", T0, "exam", "mixed", [("Cardio", 1, 2), ("Renal", 0, 0)])
        self.assertEqual([r.topic for r in rows], ["Cardio"])


class StoreTests(unittest.TestCase):
    def test_init_store_creates_empty_file(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            init_store(Path(d) / "results")
            df = pd.read_parquet(Path(d) / "results" / DATA_FILE, engine="pyarrow")
            self.assertTrue(df.empty)
            self.assertIn("possible", df.columns)

    def test_load_all_without_history(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            df = load_all(Path(d))
            self.assertTrue(df.empty)
            self.assertIn("acc", df.columns)

    def test_validate_records_dtypes(self) -> None:
        df = validate_records(
            [{"session_id": "s", "session_start": T0, "mode": "exam", "topic": "Cardio", "score": 1, "possible": 2}]
        )
        self.assertEqual(str(df["score"].dtype), "UInt16")
        self.assertEqual(str(df["mode"].dtype), "category")
        with self.assertRaises(TypeError):
            validate_records("not a list")

    def test_sink_appends_and_deduplicates(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            sink = ParquetResultsSink(d)
            first = make_result("s1", T0, [("Cardio", 1, 4), ("Renal", 4, 4), ("Empty", 0, 0)])
            self.assertEqual(sink(first), 2)
            sink(first)
            sink(make_result("s2", T0 + timedelta(days=1), [("Cardio", 3, 4)], mode="practice"))

            df = load_all(Path(d))
            self.assertEqual(len(df), 3)
            cardio = query_topic_trend(df, topic="Cardio")
            self.assertEqual(list(cardio["session_id"]), ["s1", "s2"])
            self.assertEqual([round(float(a), 2) for a in cardio["acc"]], [0.25, 0.75])
            exam_only = query_topic_trend(df, topic="Cardio", mode="exam")
            self.assertEqual(list(exam_only["session_id"]), ["s1"])

    def test_sink_skips_empty_result(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            self.assertEqual(ParquetResultsSink(d)(make_result("s", T0, [("Cardio", 0, 0)])), 0)
            self.assertFalse((Path(d) / DATA_FILE).exists())

    def test_export_ndjson(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            ParquetResultsSink(d)(make_result("s1", T0, [("Cardio", 2, 3)]))
            out = Path(d) / "export" / "results.ndjson"
            export_ndjson(load_all(Path(d)), out)
            lines = out.read_text(encoding="utf-8").splitlines()
            self.assertEqual(len(lines), 1)
            record = json.loads(lines[0])
            self.assertEqual((record["topic"], record["score"], record["possible"]), ("Cardio", 2, 3))


if __name__ == "__main__":
    unittest.main()
