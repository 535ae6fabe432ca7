# pair_index/normalize.py
from __future__ import annotations
import re
from typing import Any, Tuple

NONE = "None"
TRAIT_SEP = "::"
PAIR_SEP = "||"

_WS = re.compile(r"\s+")
_TYPO = str.maketrans({
    # double quotes
    "“": '"', "”": '"', "„": '"', "‟": '"', "″": '"',
    # apostrophes
    "‘": "'", "’": "'", "‚": "'", "‛": "'", "′": "'",
    # dashes
    "‐": "-", "‑": "-", "‒": "-", "–": "-", "—": "-",
    "―": "-", "−": "-",
})

def normalize(value: Any) -> str:
    """Canonical form of an attribute value; anything empty or non-string is ``"None"``."""
    if not isinstance(value, str):
        return NONE
    s = value.strip()
    if not s:
        return NONE
    return _WS.sub(" ", s).translate(_TYPO)

def trait_key(category: str, value: Any) -> str:
    return f"{category}{TRAIT_SEP}{normalize(value)}"

def split_trait_key(key: str) -> Tuple[str, str]:
    category, _, value = key.partition(TRAIT_SEP)
    return category, value

def pair_key(a: str, b: str) -> str:
    """Order-independent key for two trait keys of different categories."""
    if split_trait_key(a)[0] == split_trait_key(b)[0]:
        raise ValueError(f"pair of same-category traits: {a!r}, {b!r}")
    lo, hi = (a, b) if a <= b else (b, a)
    return f"{lo}{PAIR_SEP}{hi}"

def split_pair_key(key: str) -> Tuple[str, str]:
    a, _, b = key.partition(PAIR_SEP)
    return a, b
