"""Pure functions for tag normalization.

Tag names arrive from form fields, JSON bodies and query strings. Some
clients send UTF-8 names that were decoded as a single-byte encoding on
the way in, producing strings like ``"é£Žæ™¯"`` instead of ``"风景"``.
``repair_mojibake`` undoes that when a simple score says the repaired
form is more plausible. The score is a heuristic: it can misfire on
input that legitimately mixes Latin-1 accents with CJK text.
"""

import re
import unicodedata
from typing import Iterable, List, Union

TAG_SEPARATORS = re.compile("[,，]")

# Single-byte encodings a UTF-8 string is commonly mis-decoded as
MISDECODED_AS = ("latin-1", "cp1252")

# Characters that show up when UTF-8 lead/continuation bytes are read as
# Latin-1 or CP1252
ARTIFACT_CHARS = frozenset(
    "ÃÂÅÆÇÈÉÊËÌÍÎÏÐÑÒÓÔÕÖ×ØÙÚÛÜÝÞßàáâãäåæçèéêëìíîïðñòóôõö÷øùúûüýþÿ"
    "¡¢£¤¥¦§¨©ª«¬®¯°±²³´µ¶·¸¹º»¼½¾¿"
    "€‚ƒ„…†‡ˆ‰Š‹ŒŽ‘’“”•–—˜™š›œžŸ"
    "�"
)

CJK_RANGES = (
    (0x3040, 0x30FF),  # Hiragana, Katakana
    (0x3400, 0x4DBF),  # CJK Extension A
    (0x4E00, 0x9FFF),  # CJK Unified Ideographs
    (0xAC00, 0xD7AF),  # Hangul syllables
    (0xF900, 0xFAFF),  # CJK Compatibility Ideographs
)


def is_cjk(char: str) -> bool:
    code = ord(char)
    return any(lo <= code <= hi for lo, hi in CJK_RANGES)


def mojibake_score(text: str) -> int:
    """Score how plausible ``text`` is: CJK characters minus decode artifacts."""
    cjk = sum(1 for c in text if is_cjk(c))
    artifacts = sum(1 for c in text if c in ARTIFACT_CHARS)
    return cjk - artifacts


def repair_mojibake(text: str) -> str:
    """Return the repaired form of ``text`` if it scores strictly better.

    Each candidate re-encodes the string with a single-byte codec and
    decodes the bytes as UTF-8. Candidates that fail to round-trip are
    ignored. Repair repeats while the score keeps improving, so text that
    was mis-decoded twice is fully restored and the result is a fixpoint.
    """
    best = text
    best_score = mojibake_score(text)
    improved = True
    while improved:
        improved = False
        for encoding in MISDECODED_AS:
            try:
                candidate = best.encode(encoding).decode("utf-8")
            except (UnicodeEncodeError, UnicodeDecodeError):
                continue
            score = mojibake_score(candidate)
            if score > best_score:
                best, best_score = candidate, score
                improved = True
    return best


def canonical_text(text: str) -> str:
    """NFC-compose, repair mojibake, then compose again.

    Composition comes first: a mis-decoded string in decomposed form does
    not survive the single-byte round-trip that repair relies on.
    """
    return unicodedata.normalize("NFC", repair_mojibake(unicodedata.normalize("NFC", text)))


def split_tag_input(raw: Union[str, Iterable[str], None]) -> List[str]:
    """Split raw tag input on ASCII and full-width commas.

    Accepts a single comma separated string, a list of such strings
    (repeated form fields), or None. Each value is repaired before it is
    split, so a garbled full-width comma still separates tags.
    """
    if raw is None:
        return []
    values = [raw] if isinstance(raw, str) else list(raw)
    parts: List[str] = []
    for value in values:
        if value is None:
            continue
        parts.extend(TAG_SEPARATORS.split(canonical_text(str(value))))
    return parts


def normalize_tag(name: str) -> str:
    """Trim, NFC-normalize and repair one tag name."""
    return canonical_text(name.strip()).strip()


def normalize_tags(raw: Union[str, Iterable[str], None]) -> List[str]:
    """Normalize raw tag input into a de-duplicated list of names.

    Order of first appearance is kept. Names that repair to the same
    canonical string collapse into one entry. Applying this to its own
    output returns the same list.
    """
    seen = {}
    pending = list(reversed(split_tag_input(raw)))
    while pending:
        name = normalize_tag(pending.pop())
        pieces = TAG_SEPARATORS.split(name)
        if len(pieces) > 1:
            # repair surfaced a separator inside one piece
            pending.extend(reversed(pieces))
            continue
        if name and name not in seen:
            seen[name] = None
    return list(seen)
