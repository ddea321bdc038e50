"""
Candidate scanner.

Runs every token rule from `extraction.patterns.TOKEN_RULES` over a response
body (no short-circuit; the same code may be reported several times at
different offsets, de-duplication happens in ranking), then checks the
response URL's query string.

`scan_response()` returns an OccurrenceScan: a lazy, re-iterable view. Each
iteration re-runs the compiled patterns from scratch; nothing is shared
between iterations or responses.
"""

import re
from typing import Iterator, Optional

from extraction.patterns import PRECHECK_BODY_MARKERS, PRECHECK_URL_MARKERS, TOKEN_RULES, URL_PARAM_REGEX
from promoattr.models.schemas import CapturedResponse, CodeOccurrence

TOKEN_PATS = [(name, re.compile(rx, re.IGNORECASE)) for name, rx in TOKEN_RULES]
URL_PARAM_PAT = re.compile(URL_PARAM_REGEX, re.IGNORECASE)


def worth_scanning(resp: CapturedResponse) -> bool:
    """Substring pre-check: skip bodies that cannot possibly hold a code."""
    body = (resp.body or "").lower()
    if any(marker in body for marker in PRECHECK_BODY_MARKERS):
        return True
    url = (resp.url or "").lower()
    return any(marker in url for marker in PRECHECK_URL_MARKERS)


def _wanted(code: str, only_this_code: Optional[str]) -> bool:
    return only_this_code is None or code.lower() == only_this_code.strip().lower()


def _iter_occurrences(resp: CapturedResponse, only_this_code: Optional[str]) -> Iterator[CodeOccurrence]:
    if not worth_scanning(resp):
        return
    body = resp.body or ""
    for name, pat in TOKEN_PATS:
        for m in pat.finditer(body):
            code = m.group(1)
            if not _wanted(code, only_this_code):
                continue
            yield CodeOccurrence(code=code, source=resp, byte_offset=m.start(1), rule=name)

    for m in URL_PARAM_PAT.finditer(resp.url or ""):
        code = m.group(1)
        if _wanted(code, only_this_code):
            yield CodeOccurrence(code=code, source=resp, byte_offset=None, rule="response_url")


class OccurrenceScan:
    """Re-iterable, finite sequence of occurrences for one response."""

    def __init__(self, resp: CapturedResponse, only_this_code: Optional[str] = None):
        self.resp = resp
        self.only_this_code = only_this_code

    def __iter__(self) -> Iterator[CodeOccurrence]:
        return _iter_occurrences(self.resp, self.only_this_code)


def scan_response(resp: CapturedResponse, only_this_code: Optional[str] = None) -> OccurrenceScan:
    return OccurrenceScan(resp, only_this_code)
