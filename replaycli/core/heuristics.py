"""Narrow pattern predicates used by the web locator resolver.

These are tuned to one UI framework's conventions (Angular Material style
overlays and options). Each predicate documents what it can get wrong; knobs
live in HeuristicsConfig so projects can retune them from .replay.yaml.
"""

from __future__ import annotations

import re

from replaycli.core.config import HeuristicsConfig

_QUOTED_RE = re.compile(r"[\"“”']([^\"“”']+)[\"“”']")
_INDEX_SEGMENT_RE = re.compile(r"([A-Za-z][\w-]*)\[(\d+)\]")
_BODY_DIV_RE = re.compile(r"^/html/body/div\[(\d+)\]", re.IGNORECASE)
# Bare kebab-case tokens such as "mat-button" or "ng-star-inserted"
_STYLE_TOKEN_RE = re.compile(r"^[a-z][a-z0-9]*(?:[-_][a-z0-9]+)+$")


def extract_quoted_text(description: str | None) -> str | None:
    """Return the first quoted fragment of a human description.

    Recorder descriptions look like ``Click "Save changes"``. False negatives:
    descriptions without quotes. False positives: apostrophes inside words can
    pair up, e.g. ``Click user's 'Edit'`` yields ``s``.
    """
    if not description:
        return None
    for match in _QUOTED_RE.finditer(description):
        text = match.group(1).strip()
        if text:
            return text
    return None


def is_selector_fragment(text: str) -> bool:
    """True when quoted description text is really a CSS fragment.

    Catches class/id selectors (``.btn``, ``#save``), compound selectors
    (``button.primary``) and framework style tokens (``mat-raised-button``).
    A genuine label written in kebab-case is misclassified and skipped.
    """
    stripped = text.strip()
    if not stripped:
        return True
    if stripped[0] in ".#[":
        return True
    if " " not in stripped and re.search(r"[A-Za-z0-9]\.[A-Za-z_-]", stripped):
        return True
    return bool(_STYLE_TOKEN_RE.match(stripped))


def is_modal_path(xpath: str | None, config: HeuristicsConfig) -> bool:
    """Guess whether a structural path points inside a modal dialog.

    Overlay containers are appended to the end of <body>, so a path rooted at
    a later body-level div (index >= modal_body_div_index) is treated as a
    modal, as is any path mentioning one of the modal tokens. Apps that render
    their main layout in a later body div get a needless navigation wait.
    """
    if not xpath:
        return False
    lowered = xpath.lower()
    if any(token.lower() in lowered for token in config.modal_tokens):
        return True
    match = _BODY_DIV_RE.match(xpath.strip())
    return bool(match and int(match.group(1)) >= config.modal_body_div_index)


def row_index_from_path(xpath: str | None) -> tuple[str, int] | None:
    """Return (tag, 1-based index) of the deepest indexed segment.

    ``/html/body/div[2]/ul/li[4]/span`` gives ``("li", 4)``: the most specific
    repeating ancestor of the recorded element. Paths whose only index is on
    a layout wrapper give a misleading row.
    """
    if not xpath:
        return None
    matches = _INDEX_SEGMENT_RE.findall(xpath)
    if not matches:
        return None
    tag, index = matches[-1]
    return tag, int(index)


def scope_selector_to_row(css: str, row: tuple[str, int]) -> str:
    """Retarget a style selector to the recorded row."""
    tag, index = row
    return f"{tag}:nth-of-type({index}) {css}"
