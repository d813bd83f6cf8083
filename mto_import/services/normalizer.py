from __future__ import annotations

import re

"""Reference normalization (pure functions).

normalize_drawing() must produce exactly what the database function
normalize_drawing_number() produces (see mto_import/db/schema.sql):

    UPPER(TRIM(regexp_replace(raw, '[ \\t\\n\\r\\f\\v]+', ' ', 'g')))

Only trim, uppercase and whitespace collapse. Whitespace means the six ASCII
characters above, TRIM removes spaces only, and uppercasing maps one code point
to one code point ('ß' stays 'ß'). Hyphens, underscores, leading
zeros and other punctuation are kept; stripping any of them makes freshly
upserted drawings unfindable by their normalized key. Both implementations are
checked against tests/fixtures/drawing_normalization.json.
"""

__all__ = [
    "NO_SIZE",
    "normalize_drawing",
    "normalize_size",
    "normalize_commodity_code",
]

NO_SIZE = "NOSIZE"

# PostgreSQL の \s ([[:space:]]) と同じ ASCII 空白のみ
_WHITESPACE_RUN = re.compile(r"[ \t\n\r\f\v]+")
_SIZE_STRIP = re.compile(r"[\"'\s]")


def _upper_per_char(text: str) -> str:
    """Uppercase one code point at a time (no 'ß' -> 'SS' style expansion)."""
    out = []
    for ch in text:
        up = ch.upper()
        out.append(up if len(up) == 1 else ch)
    return "".join(out)


def normalize_drawing(raw: str | None) -> str:
    """collapse whitespace runs to one space -> trim spaces -> uppercase."""
    if raw is None:
        return ""
    return _upper_per_char(_WHITESPACE_RUN.sub(" ", raw).strip(" "))


def normalize_size(raw: str | None) -> str:
    """Separator-safe size token: ``1 1/2"`` -> ``11X2``, blank -> ``NOSIZE``."""
    if raw is None or raw.strip() == "":
        return NO_SIZE
    token = _SIZE_STRIP.sub("", raw.strip())
    if not token:
        # 引用符だけのセル ('""' など)
        return NO_SIZE
    return token.replace("/", "X").upper()


def normalize_commodity_code(raw: str | None) -> str:
    # drawing と同一規則 (区切り文字は保持)
    return normalize_drawing(raw)
