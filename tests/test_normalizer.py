import json
import unittest

from exampractice.catalog import (
    EmqQuestion,
    MbaQuestion,
    NumericQuestion,
    QuestionNormalizer,
    SbaQuestion,
    SkippedRecord,
    normalize_catalog,
    resolve_correct,
    safe_parse,
)
from exampractice.catalog.normalizer import SBA_STEM_PLACEHOLDER

OPTIONS = ["Aspirin", "Bisoprolol", "Clopidogrel", "Digoxin", "Enalapril"]


class SafeParseTests(unittest.TestCase):
    def test_parses_only_collection_looking_strings(self) -> None:
        self.assertEqual(safe_parse('["a", "b"]'), ["a", "b"])
        self.assertEqual(safe_parse('{"x": 1}'), {"x": 1})
        self.assertEqual(safe_parse("plain text"), "plain text")

    def test_parse_failure_returns_original(self) -> None:
        self.assertEqual(safe_parse("[not json"), "[not json")

    def test_empty_uses_fallback(self) -> None:
        self.assertEqual(safe_parse("", []), [])
        self.assertEqual(safe_parse(None, "x"), "x")


class ResolveCorrectTests(unittest.TestCase):
    def test_digit_string(self) -> None:
        self.assertEqual(resolve_correct("2", OPTIONS), 2)

    def test_letter(self) -> None:
        self.assertEqual(resolve_correct("b", OPTIONS), 1)
        self.assertEqual(resolve_correct(" E ", OPTIONS), 4)

    def test_structured_value(self) -> None:
        self.assertEqual(resolve_correct("[0, 3]", OPTIONS), [0, 3])

    def test_option_text(self) -> None:
        self.assertEqual(resolve_correct("  clopidogrel ", OPTIONS), 2)

    def test_first_rule_wins(self) -> None:
        # "3" is also the text of an option, but the digit rule comes first
        self.assertEqual(resolve_correct("3", ["1", "2", "3", "4"]), 3)

    def test_unresolvable(self) -> None:
        self.assertIsNone(resolve_correct("Warfarin", OPTIONS))
        self.assertIsNone(resolve_correct("", OPTIONS))

    def test_native_int(self) -> None:
        self.assertEqual(resolve_correct(1, OPTIONS), 1)


class SbaNormalizeTests(unittest.TestCase):
    def setUp(self) -> None:
        self.n = QuestionNormalizer()

    def test_json_options_and_letter_answer(self) -> None:
        q = self.n.normalize(
            {
                "id": 7,
                "type": "sba",
                "stem": "Which drug?",
                "options": json.dumps(OPTIONS),
                "correct_answer": "C",
                "Category": "Cardiology",
                "topic": "Antiplatelets",
            }
        )
        self.assertIsInstance(q, SbaQuestion)
        self.assertEqual(q.id, "7")
        self.assertEqual(q.correct, 2)
        self.assertEqual(q.options, tuple(OPTIONS))
        self.assertEqual(q.category, "Cardiology")

    def test_missing_stem_uses_placeholder(self) -> None:
        q = self.n.normalize({"id": "s1", "type": "sba", "options": OPTIONS, "correct": "A"})
        self.assertIsInstance(q, SbaQuestion)
        self.assertEqual(q.stem, SBA_STEM_PLACEHOLDER)

    def test_unresolvable_correct_is_skipped(self) -> None:
        out = self.n.normalize({"id": "s2", "type": "sba", "stem": "x", "options": OPTIONS, "correct": "Warfarin"})
        self.assertIsInstance(out, SkippedRecord)

    def test_out_of_range_correct_is_skipped(self) -> None:
        out = self.n.normalize({"id": "s3", "type": "sba", "stem": "x", "options": ["a", "b"], "correct": "4"})
        self.assertIsInstance(out, SkippedRecord)

    def test_further_reading_variants(self) -> None:
        q = self.n.normalize(
            {
                "id": "s4",
                "type": "sba",
                "stem": "x",
                "options": OPTIONS,
                "correct": "A",
                "furtherReading": '[{"text": "NICE", "url": "https://nice.org.uk"}]',
            }
        )
        self.assertEqual(q.further_reading[0].url, "https://nice.org.uk")
        q2 = self.n.normalize(
            {"id": "s5", "type": "sba", "stem": "x", "options": OPTIONS, "correct": "A", "further_reading": "See BNF"}
        )
        self.assertEqual(q2.further_reading[0].text, "See BNF")


class EmqNormalizeTests(unittest.TestCase):
    def setUp(self) -> None:
        self.n = QuestionNormalizer()

    def test_nested_payload_is_lifted(self) -> None:
        payload = {
            "theme": "Chest pain",
            "options": ["MI", "PE", "Pericarditis"],
            "stems": [
                {"stem": "Crushing pain", "correct": "A"},
                {"text": "Pleuritic pain after flight", "correctIndex": 1, "explanation": "DVT risk"},
            ],
        }
        q = self.n.normalize({"id": "e1", "type": "emq", "stem": json.dumps(payload)})
        self.assertIsInstance(q, EmqQuestion)
        self.assertEqual(q.theme, "Chest pain")
        self.assertEqual(q.correct, (0, 1))
        self.assertEqual(q.units, 2)
        self.assertEqual(q.stems[1].explanation, "DVT risk")

    def test_missing_stems_is_skipped(self) -> None:
        out = self.n.normalize({"id": "e2", "type": "emq", "options": ["a", "b"], "stems": "[]"})
        self.assertIsInstance(out, SkippedRecord)

    def test_missing_options_is_skipped(self) -> None:
        out = self.n.normalize({"id": "e3", "type": "emq", "stems": [{"stem": "s", "correct": 0}]})
        self.assertIsInstance(out, SkippedRecord)

    def test_question_level_correct_list(self) -> None:
        q = self.n.normalize(
            {"id": "e4", "type": "emq", "options": ["a", "b", "c"], "stems": ["one", "two"], "correct": "[2, 0]"}
        )
        self.assertEqual(q.correct, (2, 0))
        self.assertEqual(q.theme, "Clinical Case")


class MbaNumericNormalizeTests(unittest.TestCase):
    def setUp(self) -> None:
        self.n = QuestionNormalizer()

    def test_mba_json_and_comma_forms(self) -> None:
        q = self.n.normalize({"id": "m1", "type": "mba", "stem": "x", "options": OPTIONS, "correct": "[0, 2]"})
        self.assertIsInstance(q, MbaQuestion)
        self.assertEqual(q.correct, frozenset({0, 2}))
        q2 = self.n.normalize({"id": "m2", "type": "mba", "stem": "x", "options": OPTIONS, "correct": "A, D"})
        self.assertEqual(q2.correct, frozenset({0, 3}))
        self.assertEqual(q2.required_count, 2)

    def test_mba_without_correct_is_skipped(self) -> None:
        out = self.n.normalize({"id": "m3", "type": "mba", "stem": "x", "options": OPTIONS, "correct": ""})
        self.assertIsInstance(out, SkippedRecord)

    def test_numeric_nested_answer_and_default_tolerance(self) -> None:
        q = self.n.normalize({"id": "n1", "type": "numeric", "stem": "Dose?", "correct_answer": '{"value": "12.5"}', "unit": "mg"})
        self.assertIsInstance(q, NumericQuestion)
        self.assertEqual(q.correct_answer, 12.5)
        self.assertEqual(q.tolerance, 0.0)
        self.assertEqual(q.unit, "mg")

    def test_numeric_without_number_is_skipped(self) -> None:
        out = self.n.normalize({"id": "n2", "type": "numeric", "stem": "x", "correct_answer": "about ten"})
        self.assertIsInstance(out, SkippedRecord)


class CatalogReportTests(unittest.TestCase):
    def test_counts_and_notice(self) -> None:
        rows = [
            {"id": "1", "type": "sba", "stem": "a", "options": OPTIONS, "correct": "A"},
            {"id": "2", "type": "emq", "options": [], "stems": []},
            {"id": "3", "type": "essay", "stem": "?"},
            {"id": "4", "type": "numeric", "stem": "n", "correct": 3},
        ]
        cat = normalize_catalog(rows)
        self.assertEqual(cat.size, 2)
        self.assertEqual(cat.skipped_count, 2)
        self.assertEqual(cat.notice(), "Loaded 2 questions. 2 skipped (invalid data).")
        self.assertEqual(cat.counts_by_type(), {"sba": 1, "numeric": 1})

    def test_every_question_has_a_target(self) -> None:
        rows = [
            {"id": "1", "type": "sba", "stem": "a", "options": OPTIONS, "correct": "E"},
            {"id": "2", "type": "mba", "stem": "b", "options": OPTIONS, "correct": "[1,4]"},
            {"id": "3", "type": "emq", "options": OPTIONS, "stems": [{"stem": "s", "correct": "Digoxin"}]},
        ]
        for q in normalize_catalog(rows).questions:
            if isinstance(q, SbaQuestion):
                self.assertTrue(0 <= q.correct < len(q.options))
            elif isinstance(q, EmqQuestion):
                self.assertTrue(all(0 <= c < len(q.options) for c in q.correct))
            else:
                self.assertTrue(q.correct)


if __name__ == "__main__":
    unittest.main()
