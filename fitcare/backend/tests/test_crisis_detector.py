import os
import sys
import unittest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from fitcare.backend.app import crisis_detector
from fitcare.backend.app.crisis_detector import (
    CRISIS_KEYWORDS,
    CRISIS_PATTERNS,
    DetectionResult,
    detect,
    get_crisis_response,
)


class CrisisDetectorTests(unittest.TestCase):
    def test_explicit_intent_matches_keyword(self):
        result = detect("I want to kill myself")
        self.assertTrue(result.is_crisis)
        self.assertIn("kill myself", result.matched_signals)
        self.assertGreaterEqual(result.confidence, 0.5)
        self.assertEqual(result.confidence, 0.95)

    def test_neutral_text_is_not_crisis(self):
        result = detect("I had a great day at the park")
        self.assertFalse(result.is_crisis)
        self.assertEqual(result.confidence, 0)
        self.assertEqual(result.matched_signals, ())

    def test_pattern_only_uses_fixed_confidence(self):
        result = detect("no one would care if I was gone")
        self.assertTrue(result.is_crisis)
        self.assertEqual(result.matched_signals, ("no_one_would_care",))
        self.assertEqual(result.confidence, 0.85)

    def test_single_keyword_in_longer_message(self):
        message = "I'm feeling a bit hopeless about my job search"
        result = detect(message)
        self.assertTrue(result.is_crisis)
        self.assertEqual(result.matched_signals, ("hopeless",))
        self.assertAlmostEqual(result.confidence, len("hopeless") / len(message) + 0.5)

    def test_two_keywords_take_maximum_not_sum(self):
        message = "I feel hopeless and worthless"
        result = detect(message)
        self.assertEqual(result.matched_signals, ("hopeless", "worthless"))
        hopeless = len("hopeless") / len(message) + 0.5
        worthless = len("worthless") / len(message) + 0.5
        self.assertAlmostEqual(result.confidence, max(hopeless, worthless))
        self.assertLess(result.confidence, hopeless + worthless)

    def test_keywords_listed_before_patterns(self):
        result = detect("hopeless, i can't take it anymore")
        self.assertEqual(result.matched_signals, ("hopeless", "cant_take_it_anymore"))
        self.assertEqual(result.confidence, 0.85)

    def test_repeated_keyword_counts_once(self):
        message = "hopeless hopeless hopeless"
        result = detect(message)
        self.assertEqual(result.matched_signals, ("hopeless",))
        self.assertAlmostEqual(result.confidence, len("hopeless") / len(message) + 0.5)

    def test_empty_message(self):
        self.assertEqual(detect(""), DetectionResult(is_crisis=False, confidence=0.0, matched_signals=()))

    def test_case_insensitive(self):
        upper = detect("SUICIDE")
        lower = detect("suicide")
        self.assertEqual(upper.is_crisis, lower.is_crisis)
        self.assertEqual(upper.confidence, lower.confidence)
        self.assertEqual(upper.matched_signals, ("suicide",))

    def test_idempotent(self):
        message = "Sometimes I think everyone is better off dead without me"
        self.assertEqual(detect(message), detect(message))

    def test_keyword_confidence_bounds(self):
        for keyword in CRISIS_KEYWORDS:
            result = detect(f"lately {keyword.upper()} is all I think about")
            self.assertTrue(result.is_crisis, keyword)
            self.assertIn(keyword, result.matched_signals)
            self.assertGreaterEqual(result.confidence, 0.5)
            self.assertLessEqual(result.confidence, 0.95)

    def test_pattern_phrasings(self):
        cases = {
            "I can't take it anymore": ("cant_take_it_anymore", 0.85),
            "i cannot deal with this anymore": ("cant_take_it_anymore", 0.85),
            "I can’t handle this anymore": ("cant_take_it_anymore", 0.85),
            "there is no reason to live": ("no_reason_to_live", 0.9),
            "I see no point in living": ("no_reason_to_live", 0.9),
            "I'm such a burden to everyone": ("feeling_like_a_burden", 0.7),
            "I've tried everything": ("tried_everything", 0.6),
            "I just want the pain to stop": ("want_the_pain_to_stop", 0.8),
        }
        for message, (name, confidence) in cases.items():
            result = detect(message)
            self.assertEqual(result.matched_signals, (name,), message)
            self.assertEqual(result.confidence, confidence, message)

    def test_pattern_names_are_unique(self):
        names = [pattern.name for pattern in CRISIS_PATTERNS]
        self.assertEqual(len(names), len(set(names)))

    def test_invariant_holds_for_mixed_inputs(self):
        messages = ["", "fine thanks", "I want to die", "I am such a burden", "Feeling great!"]
        for message in messages:
            result = detect(message)
            self.assertEqual(result.confidence == 0, not result.matched_signals)
            self.assertEqual(result.is_crisis, bool(result.matched_signals))

    def test_to_dict(self):
        payload = detect("I feel hopeless").to_dict()
        self.assertEqual(payload["matched_signals"], ["hopeless"])
        self.assertTrue(payload["is_crisis"])

    def test_crisis_response_lists_resources(self):
        response = get_crisis_response()
        self.assertIn("988", response)
        self.assertIn("741741", response)
        self.assertIn("911", response)
        self.assertTrue(response.rstrip().endswith("?"))
        self.assertEqual(response, crisis_detector.CRISIS_RESPONSE)


class DetectAndNotifyTests(unittest.TestCase):
    class RecordingNotifier:
        def __init__(self):
            self.calls = []

        def notify(self, message, result):
            self.calls.append((message, result))

    def test_positive_detection_is_handed_to_notifier(self):
        notifier = self.RecordingNotifier()
        result = crisis_detector.detect_and_notify("I want to end my life", notifier)
        self.assertTrue(result.is_crisis)
        self.assertEqual(notifier.calls, [("I want to end my life", result)])

    def test_negative_detection_skips_notifier(self):
        notifier = self.RecordingNotifier()
        result = crisis_detector.detect_and_notify("Lunch was nice", notifier)
        self.assertFalse(result.is_crisis)
        self.assertEqual(notifier.calls, [])

    def test_without_notifier(self):
        result = crisis_detector.detect_and_notify("I want to die")
        self.assertEqual(result, detect("I want to die"))


if __name__ == "__main__":
    unittest.main()
