from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import requests

logger = logging.getLogger(__name__)

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
GENERATION_CONFIG = {
    "maxOutputTokens": 800,
    "temperature": 0.7,
    "topP": 0.95,
}

BASE_PROMPT = """You are Fit Care Bot, a highly skilled, emotionally intelligent, and human-like wellness companion. You support users through emotional and mental challenges the way a caring therapist would.

Your goals:
- Provide emotional and mental support in a compassionate, empathetic manner
- Reason step-by-step about the user's situation, considering all relevant details and context
- Offer evidence-based advice and therapeutic techniques
- Be warm and conversational, never robotic or clinical
- Ask clarifying or follow-up questions to better understand the user's needs
- Avoid repeating yourself; keep responses fresh and context-aware
- If the user is in crisis, provide immediate resources and appropriate support

After giving advice, ask the user how they feel about it or if they have any follow-up questions.

You have access to the user's wellness data and recent conversation. Use these to personalize your responses."""

WELLNESS_CONTEXT_LINES = [
    ("mood_rating", "Mood", "/10"),
    ("stress_level", "Stress", "/10"),
    ("energy_level", "Energy", "/10"),
    ("sleep_hours", "Sleep Hours", ""),
    ("sleep_quality", "Sleep Quality", "/10"),
]

FALLBACK_RESPONSES = [
    (
        ("crisis", "suicide", "harm"),
        "I'm concerned about what you're sharing. Please reach out for immediate support:\n\n"
        "Crisis Text Line: Text HOME to 741741\n"
        "988 Suicide & Crisis Lifeline: Call or text 988\n\n"
        "You matter, and help is available 24/7. Please don't hesitate to reach out.",
    ),
    (
        ("stress", "anxious", "anxiety"),
        "I understand you're feeling stressed. Here are some techniques that can help right now:\n\n"
        "**4-7-8 Breathing**: Inhale for 4, hold for 7, exhale for 8 counts\n"
        "**Grounding**: Name 5 things you see, 4 you hear, 3 you touch, 2 you smell, 1 you taste\n"
        "**Movement**: Even a 5-minute walk can reduce stress hormones\n\n"
        "Would you like to explore what might be contributing to your stress?",
    ),
    (
        ("sleep", "tired", "insomnia"),
        "Sleep is crucial for mental health. A few evidence-based tips:\n\n"
        "**Sleep Hygiene**: Keep your bedroom cool, dark, and quiet\n"
        "**Digital Sunset**: Avoid screens for an hour before bed\n"
        "**Consistency**: Go to bed and wake up at the same time daily, even on weekends\n\n"
        "How has your sleep been lately?",
    ),
    (
        ("mood", "sad", "depression", "down"),
        "Your feelings are valid and important. Some things that can help with low mood:\n\n"
        "**Connection**: Reach out to trusted friends, family, or a counselor\n"
        "**Small Steps**: Focus on basic self-care like nutrition, hydration, and gentle movement\n"
        "**Light Exposure**: Spend time outdoors or near bright windows daily\n\n"
        "If you've felt down for more than two weeks, please consider speaking with a healthcare professional. "
        "What usually helps lift your spirits?",
    ),
    (
        ("energy", "exercise"),
        "Energy levels are influenced by many factors. Here's how to boost yours naturally:\n\n"
        "**Movement**: Even 10 minutes of activity can lift your energy\n"
        "**Nutrition**: Eat balanced meals with protein, complex carbs, and healthy fats\n"
        "**Hydration**: Dehydration is a common cause of fatigue\n\n"
        "What does your current activity level look like?",
    ),
]

DEFAULT_FALLBACK = (
    "Thank you for sharing that with me. I'm here to support your mental and emotional wellbeing.\n\n"
    "I can help with:\n"
    "- Stress and anxiety management\n"
    "- Sleep improvement strategies\n"
    "- Mood support and coping skills\n"
    "- Energy and motivation techniques\n"
    "- Emotional regulation and mindfulness\n\n"
    "What would you like to focus on today?"
)


@dataclass
class AiReply:
    content: str
    response_time_ms: float
    error: bool = False


def fallback_response(message: str) -> str:
    lowered = message.lower()
    for words, reply in FALLBACK_RESPONSES:
        if any(word in lowered for word in words):
            return reply
    return DEFAULT_FALLBACK


def build_system_prompt(wellness_context: Optional[dict] = None) -> str:
    summary = ""
    if wellness_context:
        lines = [
            f"- {label}: {wellness_context[key]}{suffix}"
            for key, label, suffix in WELLNESS_CONTEXT_LINES
            if wellness_context.get(key) is not None
        ]
        if wellness_context.get("notes"):
            lines.append(f"- Notes: {wellness_context['notes']}")
        if lines:
            summary = "\n\nUser Wellness Data:\n" + "\n".join(lines)
    return BASE_PROMPT + summary + "\n\nRespond as a supportive, insightful, and human-like companion."


def convert_chat_history(messages: Iterable[dict]) -> List[Dict[str, str]]:
    return [
        {"role": "user" if msg["sender"] == "user" else "model", "content": msg["content"]}
        for msg in messages
        if msg.get("sender") in {"user", "bot"}
    ]


def extract_reply_text(payload: dict) -> Optional[str]:
    try:
        text = payload["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    if not isinstance(text, str) or not text.strip():
        return None
    return text.strip()


def elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class GeminiResponder:
    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-1.5-flash",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.session = session

    @property
    def url(self) -> str:
        return GEMINI_API_URL.format(model=self.model)

    def build_request(
        self,
        message: str,
        history: Iterable[Dict[str, str]] = (),
        wellness_context: Optional[dict] = None,
    ) -> dict:
        contents = [{"role": "user", "parts": [{"text": build_system_prompt(wellness_context)}]}]
        for item in history:
            contents.append({"role": item["role"], "parts": [{"text": item["content"]}]})
        contents.append({"role": "user", "parts": [{"text": message}]})
        return {"contents": contents, "generationConfig": dict(GENERATION_CONFIG)}

    def generate(
        self,
        message: str,
        history: Iterable[Dict[str, str]] = (),
        wellness_context: Optional[dict] = None,
    ) -> AiReply:
        started = time.perf_counter()
        if not self.api_key:
            logger.warning("GEMINI_API_KEY not configured, using fallback response")
            return AiReply(fallback_response(message), elapsed_ms(started), error=True)

        client = self.session or requests
        try:
            resp = client.post(
                self.url,
                params={"key": self.api_key},
                json=self.build_request(message, history, wellness_context),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            payload = resp.json()
        except requests.RequestException as exc:
            logger.error("Gemini API error: %s", exc)
            return AiReply(fallback_response(message), elapsed_ms(started), error=True)
        except ValueError as exc:
            logger.error("Gemini API returned invalid JSON: %s", exc)
            return AiReply(fallback_response(message), elapsed_ms(started), error=True)

        text = extract_reply_text(payload)
        duration = elapsed_ms(started)
        if text is None:
            logger.warning("Gemini API returned no candidates, using fallback response")
            return AiReply(fallback_response(message), duration, error=True)
        logger.info("Response generated in %sms", duration)
        return AiReply(text, duration)
