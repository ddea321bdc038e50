# promoattr/services/attribution.py
"""
Attribution filter: does this occurrence belong to the page we are on?

Decision table (first matching rule wins):

1. foreign_host       reject anything not served from the expected domain
                      (subdomains count, look-alike suffixes do not).
2. structured_record  accept a body carrying a "popupPromoCode" record when the
                      page route is referenced in the body/URL, or when the
                      record parses on its own and the response names no other
                      page. A query submission only qualifies when its
                      variables name this page (see rule 3).
3. query_submission   responses to POSTed variable payloads (GraphQL, feed
                      polling) are accepted only when the variables reference
                      our route, productId or companyId; otherwise rejected.
4. document_route     HTML / JSON / component documents that reference our route.
5. no_evidence        reject.

Rule 3 is the one that stops spillover: background polling (chat, feeds) can
return promo codes for some other product, and only the request variables say
which page the data is about.

Every rule is its own predicate so tests can hit them one by one; nothing here
keeps state between calls.
"""

import json
import re
from typing import NamedTuple, Optional
from urllib.parse import urlparse

from extraction.patterns import DOCUMENT_CONTENT_TYPES, NON_ROUTE_SEGMENTS, STRUCTURED_RECORD_REGEX, TOKEN_RULES
from promoattr.models.schemas import CapturedResponse, CodeOccurrence, PageIdentity
from promoattr.services.context import ids_from_text, route_from_text, route_from_url
from promoattr.services.discount import locate_record
from promoattr.util.logger import get_logger

logger = get_logger(__name__)

DEFAULT_DOMAIN = "whop.com"

STRUCTURED_RECORD_PAT = re.compile(STRUCTURED_RECORD_REGEX)
STRUCTURED_TOKEN_PAT = re.compile(dict(TOKEN_RULES)["structured"], re.IGNORECASE)

# How many structured matches we try to parse before calling a record "not self-contained".
MAX_RECORD_PROBES = 5


class Decision(NamedTuple):
    accepted: bool
    rule: str


# ---------- predicates ----------

def host_of(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def is_expected_host(url: str, domain: str = DEFAULT_DOMAIN) -> bool:
    host = host_of(url)
    domain = domain.lower().lstrip(".")
    return bool(host) and (host == domain or host.endswith("." + domain))


def has_structured_record(body: str) -> bool:
    return bool(body) and STRUCTURED_RECORD_PAT.search(body) is not None


def _route_boundary(route: str) -> str:
    return re.escape(route) + r"(?=[/?#\"'\\]|$|\s)"


def url_references_route(url: str, route: Optional[str]) -> bool:
    if not route or not url:
        return False
    return re.search("/" + _route_boundary(route), url, re.IGNORECASE) is not None


def body_references_route(body: str, route: Optional[str], domain: str = DEFAULT_DOMAIN) -> bool:
    """`<domain>/<route>` links or a `"route": "<route>"` field."""
    if not route or not body:
        return False
    link = re.escape(domain) + r"\\?/" + _route_boundary(route)
    if re.search(link, body, re.IGNORECASE):
        return True
    return bool(re.search(r'\\?"route\\?"\s*:\s*\\?"' + re.escape(route) + r'\\?"', body, re.IGNORECASE))


def references_route(resp: CapturedResponse, route: Optional[str], domain: str = DEFAULT_DOMAIN) -> bool:
    return url_references_route(resp.url, route) or body_references_route(resp.body, route, domain)


def is_query_submission(resp: CapturedResponse) -> bool:
    """POSTed variables payload: JSON with `variables`, or anything posted to a graphql endpoint."""
    post = (resp.post_data or "").strip()
    if not post:
        return False
    try:
        path = urlparse(resp.url).path.lower()
    except ValueError:
        path = ""
    if "graphql" in path:
        return True
    try:
        payload = json.loads(post)
    except ValueError:
        return False
    ops = payload if isinstance(payload, list) else [payload]
    return any(isinstance(op, dict) and "variables" in op for op in ops)


def variables_identity(post_data: Optional[str]) -> PageIdentity:
    """Identity fields named in a request payload."""
    if not post_data:
        return PageIdentity()
    pid, cid = ids_from_text(post_data)
    return PageIdentity(route=route_from_text(post_data), product_id=pid, company_id=cid)


def variables_match(page: PageIdentity, sent: PageIdentity) -> bool:
    route_ok = bool(page.route and sent.route and sent.route.lower() == page.route.lower())
    pid_ok = bool(page.product_id and sent.product_id and sent.product_id == page.product_id)
    cid_ok = bool(page.company_id and sent.company_id and sent.company_id == page.company_id)
    return route_ok or pid_ok or cid_ok


def names_other_route(resp: CapturedResponse, page: PageIdentity) -> bool:
    """Body carries a `route` field for some page other than ours."""
    found = route_from_text(resp.body)
    if not found:
        return False
    return not page.route or found.lower() != page.route.lower()


def record_is_self_contained(body: str, span: int = 4000) -> bool:
    """At least one popupPromoCode record parses as a balanced object."""
    for n, m in enumerate(STRUCTURED_TOKEN_PAT.finditer(body or "")):
        if n >= MAX_RECORD_PROBES:
            break
        if locate_record(body, m.start(1), m.group(1), span) is not None:
            return True
    return False


def is_document(resp: CapturedResponse) -> bool:
    ct = (resp.content_type or "").lower()
    return not ct or any(t in ct for t in DOCUMENT_CONTENT_TYPES)


def response_route(resp: CapturedResponse) -> Optional[str]:
    """
    The page a response is about: a route named in the request variables, then
    a `"route"` field in the body, then the response URL's first path segment.
    Infrastructure segments (api, _next, graphql ...) are not routes.
    """
    if resp.post_data:
        sent = route_from_text(resp.post_data)
        if sent:
            return sent
    found = route_from_text(resp.body)
    if found:
        return found
    seg = route_from_url(resp.url)
    if seg and seg.lower() not in NON_ROUTE_SEGMENTS:
        return seg
    return None


# ---------- decision table ----------

def decide_response(resp: CapturedResponse, page: PageIdentity, domain: str = DEFAULT_DOMAIN) -> Decision:
    """
    Every rule looks at the response, never at the individual token, so one
    decision covers all occurrences found in the same response.
    """
    if not is_expected_host(resp.url, domain):
        return Decision(False, "foreign_host")

    query = is_query_submission(resp)
    sent = variables_identity(resp.post_data) if query else PageIdentity()
    vars_ok = variables_match(page, sent) if query else False

    # a query submission only reaches rule 2 when its variables are about this page
    if has_structured_record(resp.body) and (not query or vars_ok):
        if references_route(resp, page.route, domain):
            return Decision(True, "structured_record")
        if not names_other_route(resp, page) and record_is_self_contained(resp.body):
            return Decision(True, "structured_record")

    if query:
        return Decision(vars_ok, "query_submission")

    if is_document(resp) and references_route(resp, page.route, domain):
        return Decision(True, "document_route")

    return Decision(False, "no_evidence")


def decide(occ: CodeOccurrence, page: PageIdentity, domain: str = DEFAULT_DOMAIN) -> Decision:
    return decide_response(occ.source, page, domain)


def accept(occ: CodeOccurrence, page: PageIdentity, domain: str = DEFAULT_DOMAIN) -> bool:
    d = decide(occ, page, domain)
    if d.accepted:
        logger.debug(f"accept {occ.code} @ {occ.source.url} via {d.rule} (route={page.route})")
    else:
        logger.debug(f"reject {occ.code} @ {occ.source.url} via {d.rule} (route={page.route})")
    return d.accepted
