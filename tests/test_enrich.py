import json
import sys
import unittest
from pathlib import Path
from unittest import mock

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from jotter import enrich, llm  # noqa: E402

LLM_CFG = {"api_key": "test-key", "model": "gpt-4o-mini", "endpoint": "http://127.0.0.1:9/v1"}


def _labels(tags):
    return [t for t in tags if t in ("signal", "noise")]


class HeuristicEnrichTests(unittest.TestCase):
    def test_summary_truncates_to_25_words(self):
        text = " ".join(f"word{i}" for i in range(40))
        result = enrich.heuristic_enrich(text)
        self.assertEqual(25, len(result["summary"].split(" ")))
        self.assertTrue(result["summary"].startswith("word0 word1"))
        self.assertTrue(result["summary"].endswith("word24"))

    def test_tags_are_deduplicated_in_first_seen_order_and_capped(self):
        text = "Alpha alpha BETA beta gamma  delta\n\nepsilon zeta"
        result = enrich.heuristic_enrich(text)
        self.assertEqual(["alpha", "beta", "gamma", "delta", "epsilon"], result["tags"])

    def test_short_tokens_are_not_tags(self):
        result = enrich.heuristic_enrich("a to do list for the cat")
        self.assertEqual(["list"], result["tags"])

    def test_whitespace_is_collapsed(self):
        result = enrich.heuristic_enrich("  hello \n\t world  ")
        self.assertEqual("hello world", result["summary"])

    def test_sanitize_trims_lowercases_and_caps(self):
        result = enrich.sanitize("  hi  ", ["A", "", "B", "c", "D", "e", "F"])
        self.assertEqual("hi", result["summary"])
        self.assertEqual(["a", "b", "c", "d", "e"], result["tags"])

    def test_sanitize_tolerates_missing_fields(self):
        self.assertEqual({"summary": "", "tags": []}, enrich.sanitize(None, None))


class EnrichFallbackTests(unittest.TestCase):
    def test_without_key_never_calls_the_model(self):
        with mock.patch.object(llm, "call_llm") as call:
            result = enrich.enrich("Quarterly planning notes", {"api_key": ""})
        call.assert_not_called()
        self.assertEqual(["quarterly", "planning", "notes"], result["tags"])

    def test_model_result_is_sanitized(self):
        payload = json.dumps({"summary": "  Plan Q3.  ", "tags": ["Plan", "Q3", "", "a", "b", "c", "d"]})
        with mock.patch.object(llm, "call_llm", return_value=payload) as call:
            result = enrich.enrich("Quarterly planning notes", LLM_CFG)
        call.assert_called_once()
        self.assertEqual("Plan Q3.", result["summary"])
        self.assertEqual(["plan", "q3", "a", "b", "c"], result["tags"])

    def test_model_request_uses_json_mode_and_low_temperature(self):
        payload = json.dumps({"summary": "s", "tags": []})
        with mock.patch.object(llm, "call_llm", return_value=payload) as call:
            enrich.enrich("some text", LLM_CFG)
        _, kwargs = call.call_args
        self.assertTrue(kwargs["json_mode"])
        self.assertLessEqual(kwargs["temperature"], 0.3)

    def test_code_fenced_json_is_accepted(self):
        payload = '```json\n{"summary": "fenced", "tags": ["x1"]}\n```'
        with mock.patch.object(llm, "call_llm", return_value=payload):
            result = enrich.enrich("some text", LLM_CFG)
        self.assertEqual({"summary": "fenced", "tags": ["x1"]}, result)

    def test_transport_failure_falls_back_to_heuristic(self):
        with mock.patch.object(llm, "call_llm", side_effect=OSError("connection refused")):
            result = enrich.enrich("Quarterly planning notes", LLM_CFG)
        self.assertEqual(enrich.heuristic_enrich("Quarterly planning notes"), result)

    def test_unparseable_response_falls_back_to_heuristic(self):
        for payload in ("not json at all", "[1, 2, 3]"):
            with mock.patch.object(llm, "call_llm", return_value=payload):
                result = enrich.enrich("Quarterly planning notes", LLM_CFG)
            self.assertEqual(enrich.heuristic_enrich("Quarterly planning notes"), result)


class WithFallbackTests(unittest.TestCase):
    def test_primary_result_is_returned_when_it_succeeds(self):
        run = llm.with_fallback(lambda x: x * 2, lambda x: -1)
        self.assertEqual(4, run(2))

    def test_fallback_receives_the_same_arguments(self):
        def primary(a, b=0):
            raise ValueError("nope")

        run = llm.with_fallback(primary, lambda a, b=0: (a, b))
        self.assertEqual((1, 5), run(1, b=5))

    def test_primary_is_called_once(self):
        calls = []

        def primary():
            calls.append(1)
            raise RuntimeError("down")

        llm.with_fallback(primary, lambda: None)()
        self.assertEqual(1, len(calls))


class EnrichNoteTests(unittest.TestCase):
    def test_signal_note_gets_signal_label(self):
        patch = enrich.enrich_note({"id": "n1", "text": "Fix the login bug before the deadline"})
        self.assertEqual(["login", "before", "deadline", "signal"], patch["tags"])
        self.assertEqual("Fix the login bug before the deadline", patch["summary"])

    def test_noise_note_gets_noise_label(self):
        patch = enrich.enrich_note({"id": "n1", "text": "Lovely weather in the park"})
        self.assertEqual(["noise"], _labels(patch["tags"]))

    def test_exactly_one_label_when_text_mentions_the_other(self):
        patch = enrich.enrich_note({"id": "n1", "text": "Urgent: reduce fan noise"})
        self.assertEqual(["signal"], _labels(patch["tags"]))
        self.assertEqual("signal", patch["tags"][-1])

    def test_exactly_one_label_whatever_the_model_does(self):
        text = "Lovely weather in the park"
        outcomes = [
            {"return_value": json.dumps({"summary": "s", "tags": ["Signal", "ops"]})},
            {"side_effect": TimeoutError("slow")},
            {"return_value": "garbage"},
        ]
        for outcome in outcomes:
            with mock.patch.object(llm, "call_llm", **outcome):
                patch = enrich.enrich_note({"id": "n1", "text": text}, LLM_CFG)
            self.assertEqual(["noise"], _labels(patch["tags"]))
        unconfigured = enrich.enrich_note({"id": "n1", "text": text}, None)
        self.assertEqual(["noise"], _labels(unconfigured["tags"]))

    def test_input_note_is_not_mutated(self):
        note = {"id": "n1", "text": "ship it today", "tags": ["keep"]}
        enrich.enrich_note(note)
        self.assertEqual({"id": "n1", "text": "ship it today", "tags": ["keep"]}, note)


if __name__ == "__main__":
    unittest.main()
