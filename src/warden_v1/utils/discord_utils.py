from __future__ import annotations

import re

INVITE_RE = re.compile(
    r"(?:https?://)?(?:www\.)?(?:discord(?:app)?\.com/invite|discord\.(?:gg|io|me|li)|invite\.gg)/[\w-]+",
    re.IGNORECASE,
)

# Hamza-carrying alif forms fold to plain alif; harakat are dropped.
ARABIC_LETTER_FOLDS: tuple[tuple[str, str], ...] = (
    ("أ", "ا"),
    ("إ", "ا"),
    ("ٌ", ""),
    ("ُ", ""),
    ("ً", ""),
    ("َ", ""),
    ("ٍ", ""),
    ("ْ", ""),
    ("ّ", ""),
    ("ِ", ""),
)


def is_invite(text: str) -> bool:
    return INVITE_RE.search(text) is not None


def normalize_name(text: str) -> str:
    for search, replace in ARABIC_LETTER_FOLDS:
        text = text.replace(search, replace)
    return text
