from __future__ import annotations

import json
import re
import unicodedata
from typing import Any, Optional


def normalize_text(value: Optional[str]) -> str:
    """Strip diacritics and case-fold, so "Cotação" and "COTACAO" compare equal."""
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", str(value))
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold().strip()


def flatten_list_string(value: Optional[str]) -> Optional[str]:
    """Turn list-like field values such as '["Ana"]' or '[["Condominial"]]' into plain text."""
    if value is None:
        return None
    text = str(value).strip()
    if not text.startswith("[") and '"' not in text:
        return text or None

    try:
        parsed: Any = json.loads(text)
    except ValueError:
        cleaned = re.sub(r'[\[\]"]', "", text).strip()
        return cleaned or None

    items = []

    def _walk(node: Any) -> None:
        if isinstance(node, list):
            for child in node:
                _walk(child)
        elif node is not None and str(node).strip():
            items.append(str(node).strip())

    _walk(parsed)
    return ", ".join(items) or None
