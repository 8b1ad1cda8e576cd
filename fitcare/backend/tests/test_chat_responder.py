import os
import sys
import unittest

import requests

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from fitcare.backend.app import chat_responder
from fitcare.backend.app.chat_responder import GeminiResponder


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")

    def json(self):
        return self.payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error:
            raise self.error
        return self.response


class FallbackTests(unittest.TestCase):
    def test_topic_fallbacks(self):
        self.assertIn("741741", chat_responder.fallback_response("thinking about suicide"))
        self.assertIn("Breathing", chat_responder.fallback_response("I'm so anxious"))
        self.assertIn("Sleep", chat_responder.fallback_response("insomnia again"))
        self.assertIn("valid", chat_responder.fallback_response("feeling sad"))
        self.assertIn("Energy", chat_responder.fallback_response("need exercise ideas"))

    def test_default_fallback(self):
        self.assertEqual(chat_responder.fallback_response("hello"), chat_responder.DEFAULT_FALLBACK)


class PromptTests(unittest.TestCase):
    def test_system_prompt_includes_wellness_data(self):
        prompt = chat_responder.build_system_prompt({"mood_rating": 4, "sleep_hours": 6.5, "notes": "long week"})
        self.assertIn("User Wellness Data", prompt)
        self.assertIn("- Mood: 4/10", prompt)
        self.assertIn("- Sleep Hours: 6.5", prompt)
        self.assertIn("- Notes: long week", prompt)

    def test_system_prompt_without_context(self):
        self.assertNotIn("User Wellness Data", chat_responder.build_system_prompt(None))

    def test_convert_chat_history(self):
        history = chat_responder.convert_chat_history([
            {"sender": "user", "content": "hi"},
            {"sender": "bot", "content": "hello"},
            {"sender": "system", "content": "ignored"},
        ])
        self.assertEqual(history, [
            {"role": "user", "content": "hi"},
            {"role": "model", "content": "hello"},
        ])

    def test_build_request(self):
        responder = GeminiResponder("key")
        body = responder.build_request("how do I relax?", [{"role": "model", "content": "hello"}])
        roles = [item["role"] for item in body["contents"]]
        self.assertEqual(roles, ["user", "model", "user"])
        self.assertEqual(body["contents"][-1]["parts"][0]["text"], "how do I relax?")
        self.assertEqual(body["generationConfig"]["maxOutputTokens"], 800)


class GenerateTests(unittest.TestCase):
    def test_missing_key_uses_fallback(self):
        session = FakeSession()
        reply = GeminiResponder(None, session=session).generate("I'm stressed")
        self.assertTrue(reply.error)
        self.assertIn("Breathing", reply.content)
        self.assertEqual(session.calls, [])

    def test_successful_reply(self):
        payload = {"candidates": [{"content": {"parts": [{"text": " Let's try a breathing exercise. "}]}}]}
        session = FakeSession(FakeResponse(payload))
        responder = GeminiResponder("secret", model="gemini-test", session=session)
        reply = responder.generate("help me relax")
        self.assertFalse(reply.error)
        self.assertEqual(reply.content, "Let's try a breathing exercise.")
        url, kwargs = session.calls[0]
        self.assertTrue(url.endswith("/models/gemini-test:generateContent"))
        self.assertEqual(kwargs["params"], {"key": "secret"})

    def test_transport_error_uses_fallback(self):
        session = FakeSession(error=requests.Timeout("timed out"))
        reply = GeminiResponder("secret", session=session).generate("hello")
        self.assertTrue(reply.error)
        self.assertEqual(reply.content, chat_responder.DEFAULT_FALLBACK)

    def test_empty_candidates_use_fallback(self):
        session = FakeSession(FakeResponse({"candidates": []}))
        reply = GeminiResponder("secret", session=session).generate("hello")
        self.assertTrue(reply.error)
        self.assertEqual(reply.content, chat_responder.DEFAULT_FALLBACK)

    def test_http_error_uses_fallback(self):
        session = FakeSession(FakeResponse({}, status_code=503))
        reply = GeminiResponder("secret", session=session).generate("feeling down")
        self.assertTrue(reply.error)
        self.assertIn("valid", reply.content)


if __name__ == "__main__":
    unittest.main()
