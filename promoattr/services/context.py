"""
Page identity (context resolver).

- route_from_url(url): first non-empty path segment of a well-formed URL.
- PageContextProvider: anything that can hand us the page's inline data blocks
  (script text, embedded JSON). StaticPageContext is the in-memory version used
  for tests and HAR replay; the Playwright adapter snapshots into one.
- resolve_page_identity(...): {route, product_id, company_id}; never raises.

IDs come from the first inline block that yields either one; later blocks are
not consulted (they are often prefetch data for *other* products).
"""

import re
from typing import Iterable, List, Optional, Protocol, Tuple
from urllib.parse import urlparse

from extraction.patterns import COMPANY_ID_PATTERNS, NON_ROUTE_SEGMENTS, PRODUCT_ID_PATTERNS, ROUTE_FIELD
from promoattr.models.schemas import PageIdentity
from promoattr.util.logger import get_logger

logger = get_logger(__name__)

PRODUCT_ID_PATS = [re.compile(p, re.IGNORECASE) for p in PRODUCT_ID_PATTERNS]
COMPANY_ID_PATS = [re.compile(p, re.IGNORECASE) for p in COMPANY_ID_PATTERNS]
ROUTE_FIELD_PAT = re.compile(ROUTE_FIELD, re.IGNORECASE)


class PageContextProvider(Protocol):
    def inline_data_blocks(self) -> Iterable[str]:
        ...


class StaticPageContext:
    """Fixed list of inline blocks (script bodies, JSON islands)."""

    def __init__(self, blocks: Optional[Iterable[str]] = None):
        self.blocks: List[str] = [b for b in (blocks or []) if b]

    def inline_data_blocks(self) -> Iterable[str]:
        return list(self.blocks)


def route_from_url(url: Optional[str]) -> Optional[str]:
    """'https://whop.com/acme/checkout?x=1' -> 'acme'. None when the URL is not well-formed."""
    if not url:
        return None
    try:
        parts = urlparse(url)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    for seg in parts.path.split("/"):
        if seg:
            return seg
    return None


def _first_group(pats, text: str) -> Optional[str]:
    for pat in pats:
        m = pat.search(text)
        if m:
            return m.group(1)
    return None


def ids_from_text(text: str) -> Tuple[Optional[str], Optional[str]]:
    """(product_id, company_id) found in a block of text, either may be None."""
    if not text:
        return None, None
    return _first_group(PRODUCT_ID_PATS, text), _first_group(COMPANY_ID_PATS, text)


def route_from_text(text: str) -> Optional[str]:
    """A `"route": "..."` field value, ignoring infrastructure segments."""
    if not text:
        return None
    for m in ROUTE_FIELD_PAT.finditer(text):
        val = m.group(1).strip().strip("/")
        if val and val.lower() not in NON_ROUTE_SEGMENTS:
            return val
    return None


def resolve_page_identity(
    page_url: Optional[str],
    provider: Optional[PageContextProvider] = None,
    fallback_route: Optional[str] = None,
) -> PageIdentity:
    """
    Build the PageIdentity for one visit.

    Route comes from the URL, falling back to `fallback_route` (the caller's
    currentRoute hint). IDs come from the first inline block that has any.
    """
    route = route_from_url(page_url) or fallback_route or None
    product_id: Optional[str] = None
    company_id: Optional[str] = None

    if provider is not None:
        try:
            for block in provider.inline_data_blocks():
                pid, cid = ids_from_text(block)
                if pid or cid:
                    product_id, company_id = pid, cid
                    break
        except Exception as e:
            # a broken DOM accessor just means "no ID signals"
            logger.debug(f"page context provider failed for {page_url}: {e}")

    identity = PageIdentity(route=route, product_id=product_id, company_id=company_id)
    logger.debug(f"page identity for {page_url}: {identity.model_dump()}")
    return identity
