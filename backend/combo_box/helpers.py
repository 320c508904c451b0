from __future__ import annotations

import re
from typing import Iterable

from markupsafe import Markup, escape

HIGHLIGHT_TEMPLATE = '<strong class="highlight">{}</strong>'


def highlight(content: str, tokens: Iterable[str], template: str = HIGHLIGHT_TEMPLATE) -> Markup:
    """
    Escape ``content`` and wrap every case-insensitive occurrence of a token.

    Matching runs on the raw text and escaping happens per segment, so a token
    never matches inside an HTML entity produced by escaping.
    """
    content = content or ""
    words = sorted({t for t in tokens if t}, key=len, reverse=True)
    if not words or not content:
        return escape(content)

    pattern = re.compile("(" + "|".join(re.escape(w) for w in words) + ")", re.IGNORECASE)
    pieces = []
    for idx, segment in enumerate(pattern.split(content)):
        if not segment:
            continue
        if idx % 2:
            pieces.append(Markup(template).format(segment))
        else:
            pieces.append(escape(segment))
    return Markup("").join(pieces)
