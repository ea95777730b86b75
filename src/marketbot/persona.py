"""
Persona styling and randomized choices.

This module provides:
- ChoiceSelector, the single source of randomness for templates and styling
- Persona decoration (typical phrase, emoji)
- Typing-delay estimate attached to replies
"""

import random
import re
from typing import Optional, Sequence, TypeVar

from marketbot.models import CommunicationStyle


T = TypeVar("T")

SMILEY = "😊"
WORDS_PER_MINUTE = 40
TYPING_JITTER = (0.8, 1.2)
TYPING_BOUNDS_SECONDS = (1.0, 8.0)

_EMOJI_PATTERN = re.compile(
    "[\U0001F300-\U0001FAFF\U00002600-\U000027BF\U0001F000-\U0001F02F\U0001F1E6-\U0001F1FF]"
)


class ChoiceSelector:
    """Random choices behind one seedable generator; tests inject their own."""

    def __init__(self, seed: Optional[int] = None):
        self._random = random.Random(seed)

    def choice(self, options: Sequence[T]) -> T:
        return self._random.choice(list(options))

    def chance(self, probability: float) -> bool:
        """True with the given probability."""
        return self._random.random() < probability

    def uniform(self, low: float, high: float) -> float:
        return self._random.uniform(low, high)


def contains_emoji(text: str) -> bool:
    return bool(_EMOJI_PATTERN.search(text or ""))


def apply_persona(
    text: str,
    style: Optional[CommunicationStyle],
    selector: ChoiceSelector,
    phrase_probability: float
) -> str:
    """
    Decorate a reply with the merchant's persona.

    With ``phrase_probability`` one configured typical phrase is appended.
    When the persona uses emoji and the reply has none, a smiley is appended.
    """
    if style is None:
        return text

    styled = text
    if style.typical_phrases and selector.chance(phrase_probability):
        styled = f"{styled} {selector.choice(style.typical_phrases)}"

    if style.use_emojis and not contains_emoji(styled):
        styled = f"{styled} {SMILEY}"

    return styled


def estimate_typing_seconds(text: str, selector: ChoiceSelector) -> float:
    """Seconds a human would take to type ``text`` at ~40 wpm, jittered ±20%, within [1, 8]."""
    words = len((text or "").split())
    seconds = words / WORDS_PER_MINUTE * 60 * selector.uniform(*TYPING_JITTER)
    low, high = TYPING_BOUNDS_SECONDS
    return round(max(low, min(high, seconds)), 2)
