"""
Product code extraction from raw scanner payloads.

Scanner devices post whatever their QR label encodes. Labels seen in the
field:

- plain code:            RAPIDENE-001
- tagged:                PROD:RAPIDENE-001|NAME:Rapidene|PRICE:150
- pipe-delimited label:  Name|Price|MFD|EXP|Code
- multi-line label:      NAME: Rapidene\nCODE: RAPIDENE-001

Matchers are tried in order and the first one that claims the payload
decides the result. A matcher returns None to pass.
"""

from __future__ import annotations

from typing import Any, Callable, Optional


PROD_MARKER = "PROD:"
CODE_MARKER = "CODE:"

# Canonical pipe label: Name|Price|MFD|EXP|Code
PIPE_CODE_INDEX = 4


def _match_plain(text: str) -> Optional[str]:
    if "|" in text or ":" in text or "\n" in text:
        return None
    return text.strip()


def _match_prod_marker(text: str) -> Optional[str]:
    start = text.find(PROD_MARKER)
    if start == -1:
        return None
    rest = text[start + len(PROD_MARKER):]
    end = len(rest)
    for stop in ("|", "\n"):
        idx = rest.find(stop)
        if idx != -1 and idx < end:
            end = idx
    return rest[:end].strip()


def _match_pipe_label(text: str) -> Optional[str]:
    if "|" not in text:
        return None
    parts = text.split("|")
    if len(parts) > PIPE_CODE_INDEX:
        return parts[PIPE_CODE_INDEX].strip()
    return parts[-1].strip()


def _match_multiline(text: str) -> Optional[str]:
    if "\n" not in text:
        return None
    for line in text.split("\n"):
        if CODE_MARKER in line or PROD_MARKER in line:
            return line.split(":", 1)[1].strip()
    return None


def _match_default(text: str) -> Optional[str]:
    return text.strip()


MATCHERS: tuple[tuple[str, Callable[[str], Optional[str]]], ...] = (
    ("plain", _match_plain),
    ("prod_marker", _match_prod_marker),
    ("pipe_label", _match_pipe_label),
    ("multiline", _match_multiline),
    ("default", _match_default),
)


def resolve(raw: Any) -> tuple[str, str]:
    """Return (matcher_name, code). Non-string input resolves to ("none", "")."""
    if not isinstance(raw, str):
        return "none", ""
    for name, matcher in MATCHERS:
        code = matcher(raw)
        if code is not None:
            return name, code
    return "none", ""


def extract_product_code(raw: Any) -> str:
    """Normalized product code for a scanner payload, or "" if nothing usable."""
    return resolve(raw)[1]


def describe_format(raw: Any) -> str:
    """Name of the label format that claimed the payload."""
    return resolve(raw)[0]
