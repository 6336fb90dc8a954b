"""Text helpers shared by parsers and product normalization."""

import re
import unicodedata


def strip_accents(text: str) -> str:
    """Remove diacritics ("Maíz" → "Maiz", "CÓRDOBA" → "CORDOBA")."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()
