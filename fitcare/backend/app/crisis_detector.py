from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Pattern, Tuple

if TYPE_CHECKING:
    from .crisis_notifier import CrisisNotifier

logger = logging.getLogger(__name__)

KEYWORD_CONFIDENCE_FLOOR = 0.5
KEYWORD_CONFIDENCE_CAP = 0.95

CRISIS_KEYWORDS: Tuple[str, ...] = (
    "suicide",
    "kill myself",
    "end it all",
    "want to die",
    "hurt myself",
    "self harm",
    "self-harm",
    "can't go on",
    "cant go on",
    "hopeless",
    "worthless",
    "better off dead",
    "nobody cares",
    "give up",
    "end my life",
    "suicidal thoughts",
    "cutting",
    "overdose",
    "no way out",
)

# Straight or typographic apostrophe.
_APOS = "['’]"


@dataclass(frozen=True)
class CrisisPattern:
    name: str
    regex: Pattern[str]
    confidence: float


CRISIS_PATTERNS: Tuple[CrisisPattern, ...] = (
    CrisisPattern(
        "cant_take_it_anymore",
        re.compile(rf"i (can{_APOS}?t|cannot) (take|handle|deal with) (it|this) anymore"),
        0.85,
    ),
    CrisisPattern(
        "no_reason_to_live",
        re.compile(r"no (reason|point) (in |to )?(live|living)\b"),
        0.9,
    ),
    CrisisPattern(
        "no_one_would_care",
        re.compile(r"(no ?one|nobody) would (care|notice|mind) if i (was|were) gone"),
        0.85,
    ),
    CrisisPattern(
        "feeling_like_a_burden",
        re.compile(rf"i({_APOS}?m| am) (just |such )a burden"),
        0.7,
    ),
    CrisisPattern(
        "tried_everything",
        re.compile(rf"i({_APOS}?ve| have) (tried|been trying) everything"),
        0.6,
    ),
    CrisisPattern(
        "want_the_pain_to_stop",
        re.compile(r"i (just )?want the pain to (stop|end)"),
        0.8,
    ),
)

CRISIS_RESPONSE = """I notice you're expressing some concerning thoughts. Your wellbeing is important, and immediate support is available:

**988 Suicide & Crisis Lifeline**: Call or text 988
**Crisis Text Line**: Text HOME to 741741
**Emergency Services**: Call 911

These services are available 24/7 and staffed by trained professionals who care and want to help. Please reach out to them now.

Would it be okay if we continue our conversation while you also connect with one of these resources?"""


@dataclass(frozen=True)
class DetectionResult:
    is_crisis: bool
    confidence: float
    matched_signals: Tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "is_crisis": self.is_crisis,
            "confidence": self.confidence,
            "matched_signals": list(self.matched_signals),
        }


def keyword_confidence(keyword: str, message_length: int) -> float:
    """Longer keywords relative to the message score higher, floored at 0.5."""
    return min(KEYWORD_CONFIDENCE_CAP, len(keyword) / message_length + KEYWORD_CONFIDENCE_FLOOR)


def detect(message: str) -> DetectionResult:
    lowered = message.lower()
    matched = []
    highest = 0.0

    for keyword in CRISIS_KEYWORDS:
        if keyword in lowered:
            matched.append(keyword)
            highest = max(highest, keyword_confidence(keyword, len(lowered)))

    for pattern in CRISIS_PATTERNS:
        if pattern.regex.search(lowered):
            matched.append(pattern.name)
            highest = max(highest, pattern.confidence)

    return DetectionResult(
        is_crisis=bool(matched),
        confidence=highest,
        matched_signals=tuple(matched),
    )


def detect_and_notify(message: str, notifier: Optional[CrisisNotifier] = None) -> DetectionResult:
    result = detect(message)
    if result.is_crisis:
        logger.warning(
            "Crisis detected with confidence %.2f: %s",
            result.confidence,
            ", ".join(result.matched_signals),
        )
        if notifier is not None:
            notifier.notify(message, result)
    return result


def get_crisis_response() -> str:
    return CRISIS_RESPONSE
