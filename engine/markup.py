"""Spell descriptions carry light markup: <br>, **bold**/<b>/<strong>, *italic*/<i>/<em>
and a handful of HTML entities. `parse_description` turns that into a flat list
of segments a client can render without an HTML engine.
"""

from __future__ import annotations

import re

ENTITIES = {
    "&emsp;": "    ",
    "&ensp;": "  ",
    "&nbsp;": " ",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
    "&apos;": "'",
    "&amp;": "&",
}

BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
BOLD_RE = re.compile(r"\*\*(.+?)\*\*|<b>(.+?)</b>|<strong>(.+?)</strong>", re.IGNORECASE)
ITALIC_RE = re.compile(r"\*(.+?)\*|<i>(.+?)</i>|<em>(.+?)</em>", re.IGNORECASE)


def decode_entities(text: str) -> str:
    for entity, plain in ENTITIES.items():
        text = text.replace(entity, plain)
    return text


def _italic_segments(text: str, bold: bool) -> list[dict]:
    out = []
    pos = 0
    for m in ITALIC_RE.finditer(text):
        if m.start() > pos:
            out.append({"text": text[pos : m.start()], "bold": bold, "italic": False})
        inner = m.group(1) or m.group(2) or m.group(3)
        out.append({"text": inner, "bold": bold, "italic": True})
        pos = m.end()
    if pos < len(text):
        out.append({"text": text[pos:], "bold": bold, "italic": False})
    return out


def parse_description(text: str | None) -> list[dict]:
    """Segments: {"text", "bold", "italic"}; line breaks are {"text": "\\n", ...}."""
    # &amp; va decodificato per ultimo (dict ordinato)
    decoded = decode_entities(text or "")
    segments: list[dict] = []
    for idx, line in enumerate(BR_RE.split(decoded)):
        if idx > 0:
            segments.append({"text": "\n", "bold": False, "italic": False})
        pos = 0
        for m in BOLD_RE.finditer(line):
            if m.start() > pos:
                segments.extend(_italic_segments(line[pos : m.start()], bold=False))
            inner = m.group(1) or m.group(2) or m.group(3)
            segments.extend(_italic_segments(inner, bold=True))
            pos = m.end()
        if pos < len(line):
            segments.extend(_italic_segments(line[pos:], bold=False))
    return segments


def plain_text(text: str | None) -> str:
    return "".join(seg["text"] for seg in parse_description(text))
