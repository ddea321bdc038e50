"""
Brace/quote helpers (pure text scanning).

- balanced_end(text, start): index of the '}' closing the '{' at `start`,
  honouring JSON string quoting and backslash escapes.
- enclosing_objects(text, offset): balanced {...} slices around an offset,
  innermost first.
- unescape_quotes / unescaped_window: undo the \\" escaping that RSC and
  streamed component payloads put around embedded JSON.

Keeps brace math out of the discount extraction code.
"""

from typing import Iterator, Optional, Tuple


def unescape_quotes(s: str) -> str:
    """Minimal unescape: \\" -> " (RSC payloads double-escape embedded JSON)."""
    return s.replace('\\"', '"')


def balanced_end(text: str, start: int, limit: Optional[int] = None) -> Optional[int]:
    """Return the index of the brace closing text[start], or None if unbalanced."""
    if start < 0 or start >= len(text) or text[start] != "{":
        return None
    stop = len(text) if limit is None else min(len(text), limit)
    depth = 0
    in_str = False
    escaped = False
    for i in range(start, stop):
        ch = text[i]
        if in_str:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return None


def enclosing_objects(text: str, offset: int, max_span: int = 4000) -> Iterator[Tuple[int, int]]:
    """
    Yield (start, end) slices of balanced objects that enclose `offset`,
    walking outward one opening brace at a time. `end` is exclusive.
    """
    if offset < 0 or offset > len(text):
        return
    floor = max(0, offset - max_span)
    limit = min(len(text), offset + max_span)
    left = text.rfind("{", floor, offset)
    while left != -1:
        right = balanced_end(text, left, limit)
        if right is not None and right >= offset:
            yield left, right + 1
        left = text.rfind("{", floor, left)


def unescaped_window(text: str, offset: int, span: int) -> Tuple[str, int]:
    """
    Cut text[offset-span : offset+span], unescape quotes on both sides of the
    offset, and return (window, offset_inside_window).
    """
    offset = max(0, min(offset, len(text)))
    lo = max(0, offset - span)
    hi = min(len(text), offset + span)
    before = unescape_quotes(text[lo:offset])
    after = unescape_quotes(text[offset:hi])
    return before + after, len(before)
