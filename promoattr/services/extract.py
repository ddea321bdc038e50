# promoattr/services/extract.py
"""
Attribution engine: captured traffic for one page visit -> one ExtractionResult.

Pipeline:
    context resolver  -> PageIdentity (once per visit)
    scanner           -> CodeOccurrence per promo-shaped token, per response
    attribution       -> keep only occurrences that belong to this page
    discount          -> discount bundle next to each accepted occurrence
    rank              -> collapse per code, pick the best-evidenced code

- `extract()` is pure and synchronous: give it the captured responses and it
  returns the winner (or None, which is a normal outcome).
- `extract_popup_promo()` is the browser flow: attach capture, load, settle,
  reload (discount data often only materialises on a forced re-fetch), wait
  for quiet, detach, then `extract()`.

`current_route` overrides the URL-derived route (use it after in-page
redirects). `only_this_code` restricts scanning to one known code, which the
discount backfill uses when revisiting pages.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

from promoattr.config import Settings, get_settings
from promoattr.models.schemas import (
    AttributedCandidate,
    CapturedResponse,
    DiscountRecord,
    ExtractionResult,
    PageIdentity,
)
from promoattr.services import attribution
from promoattr.services.capture import (
    capture_traffic,
    navigate,
    reload,
    snapshot_page_context,
    wait_for_quiet,
)
from promoattr.services.context import PageContextProvider, resolve_page_identity
from promoattr.services.discount import extract_discount
from promoattr.services.rank import DEFAULT_POLICY, ScoringPolicy, rank
from promoattr.services.scan import scan_response
from promoattr.util.logger import get_logger

logger = get_logger(__name__)


def page_identity_for(
    page_url: Optional[str],
    provider: Optional[PageContextProvider] = None,
    current_route: Optional[str] = None,
) -> PageIdentity:
    identity = resolve_page_identity(page_url, provider, fallback_route=current_route)
    if current_route and identity.route != current_route:
        identity = identity.model_copy(update={"route": current_route})
    return identity


def attribute(
    responses: Iterable[CapturedResponse],
    identity: PageIdentity,
    only_this_code: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> List[AttributedCandidate]:
    """
    Every accepted occurrence, enriched with its discount bundle (unscored).

    The attribution verdict is per response, so it is computed once, and only
    for responses that yield at least one occurrence.
    """
    settings = settings or get_settings()
    out: List[AttributedCandidate] = []
    for resp in responses:
        decision: Optional[attribution.Decision] = None
        route: Optional[str] = None
        discounts: Dict[Tuple[Optional[int], str], Optional[DiscountRecord]] = {}
        for occ in scan_response(resp, only_this_code):
            if decision is None:
                decision = attribution.decide_response(resp, identity, settings.expected_domain)
                route = attribution.response_route(resp) if decision.accepted else None
            if not decision.accepted:
                logger.debug(f"reject {occ.code} from {resp.url} ({decision.rule}, route={identity.route})")
                continue
            key = (occ.byte_offset, occ.code)
            if key not in discounts:
                discounts[key] = extract_discount(
                    resp.body, occ.byte_offset, occ.code,
                    span=settings.record_span, window=settings.fallback_window,
                )
            discount = discounts[key]
            logger.debug(
                f"accept {occ.code} from {resp.url} ({decision.rule}) "
                f"discount={discount.model_dump() if discount else None}"
            )
            out.append(AttributedCandidate(
                code=occ.code,
                discount=discount,
                source_url=resp.url,
                content_type=resp.content_type,
                timestamp=resp.timestamp,
                page_route=route,
                rule=decision.rule,
            ))
    return out


def extract(
    page_url: Optional[str],
    responses: Iterable[CapturedResponse],
    identity: Optional[PageIdentity] = None,
    provider: Optional[PageContextProvider] = None,
    current_route: Optional[str] = None,
    only_this_code: Optional[str] = None,
    settings: Optional[Settings] = None,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> Optional[ExtractionResult]:
    """
    Attribute captured traffic to the page and return its single best code.

    Returns None when nothing on the page qualifies.
    """
    if identity is None:
        identity = page_identity_for(page_url, provider, current_route)
    responses = list(responses)

    cands = attribute(responses, identity, only_this_code, settings)
    ranked = rank(cands, current_route or identity.route, policy)
    if not ranked:
        logger.info(f"no promo code attributed to {page_url} ({len(responses)} responses)")
        return None

    best = ranked[0]
    logger.info(f"selected {best.code} for {page_url} (score={best.score:.3f}, rule={best.rule})")
    return ExtractionResult(
        code=best.code,
        discount=best.discount,
        source_url=best.source_url,
        content_type=best.content_type,
        provenance={
            "rule": best.rule,
            "score": best.score,
            "page_route": identity.route,
            "accepted_candidates": len(cands),
            "distinct_codes": len(ranked),
            "responses": len(responses),
            "policy_version": policy.version,
        },
    )


async def extract_popup_promo(
    page,
    url: str,
    timeout_ms: Optional[int] = None,
    current_route: Optional[str] = None,
    only_this_code: Optional[str] = None,
    settings: Optional[Settings] = None,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> Optional[ExtractionResult]:
    """
    One page visit in a live browser.

    Raises NavigationError if the page cannot be loaded or reloaded; a capture
    window that never goes quiet still produces a best-effort result.
    """
    settings = settings or get_settings()
    timeout_ms = timeout_ms or settings.timeout_ms

    async with capture_traffic(page, settings) as cap:
        await navigate(page, url, settings)
        await page.wait_for_timeout(settings.settle_ms)
        provider = await snapshot_page_context(page)
        await reload(page, settings)
        await wait_for_quiet(page, timeout_ms)
        await page.wait_for_timeout(settings.reload_settle_ms)

    return extract(
        url,
        cap.responses,
        provider=provider,
        current_route=current_route,
        only_this_code=only_this_code,
        settings=settings,
        policy=policy,
    )
