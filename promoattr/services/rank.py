"""
Ranking & de-duplication of attributed candidates.

- De-dupe: collapse candidates that carry the same code (case-insensitive),
  keeping the best-evidenced one.
- Pick: the single highest-scoring survivor is the page's result.
- Scoring lives in one versioned ScoringPolicy so tests can pin exact
  tie-break behaviour.

Score (higher wins):
    +discount_weight        a discount record is attached
    +structured_weight      JSON / text/x-component payload rather than HTML
    +route_weight           the response the candidate came from is about this page
                            (its route, see attribution.response_route, equals the page route)
    +[0, tiebreak_weight)   recency, normalised over this visit's capture window
"""

from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel

from extraction.patterns import STRUCTURED_CONTENT_TYPES
from promoattr.models.schemas import AttributedCandidate


class ScoringPolicy(BaseModel):
    version: str = "2025-09"
    discount_weight: float = 1000.0
    structured_weight: float = 40.0
    route_weight: float = 30.0
    tiebreak_weight: float = 1.0


DEFAULT_POLICY = ScoringPolicy()


def _norm(s: Optional[str]) -> Optional[str]:
    """Lowercase + trim for stable comparisons."""
    return s.strip().lower() if s else None


def is_structured_content(content_type: Optional[str]) -> bool:
    ct = _norm(content_type) or ""
    return any(t in ct for t in STRUCTURED_CONTENT_TYPES)


def recency(ts: float, earliest: float, latest: float) -> float:
    """Map ts into [0, 1): strictly increasing over the window, 0 when the window is a single instant."""
    span = latest - earliest
    if span <= 0:
        return 0.0
    return ((ts - earliest) / span) * 0.999


def score(
    cand: AttributedCandidate,
    page_route: Optional[str],
    earliest: float = 0.0,
    latest: float = 0.0,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> float:
    s = 0.0
    if cand.discount is not None and cand.discount.has_value():
        s += policy.discount_weight
    if is_structured_content(cand.content_type):
        s += policy.structured_weight
    if page_route and _norm(cand.page_route) == _norm(page_route):
        s += policy.route_weight
    s += policy.tiebreak_weight * recency(cand.timestamp, earliest, latest)
    return s


def score_all(
    cands: Sequence[AttributedCandidate],
    page_route: Optional[str],
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> List[AttributedCandidate]:
    """Return copies of `cands` with `score` filled in."""
    if not cands:
        return []
    earliest = min(c.timestamp for c in cands)
    latest = max(c.timestamp for c in cands)
    return [
        c.model_copy(update={"score": score(c, page_route, earliest, latest, policy)})
        for c in cands
    ]


def collapse_by_code(cands: Sequence[AttributedCandidate]) -> List[AttributedCandidate]:
    """
    Keep the highest-scoring candidate per code. Equal scores keep the one seen
    first, so the outcome only depends on input order when evidence is identical.
    """
    best: Dict[str, AttributedCandidate] = {}
    for c in cands:
        key = _norm(c.code) or ""
        if key not in best or c.score > best[key].score:
            best[key] = c
    return list(best.values())


def rank(
    cands: Sequence[AttributedCandidate],
    page_route: Optional[str],
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> List[AttributedCandidate]:
    """Scored, de-duplicated candidates, best first."""
    survivors = collapse_by_code(score_all(cands, page_route, policy))
    survivors.sort(key=lambda c: (-c.score, _norm(c.code) or ""))
    return survivors


def pick_best(
    cands: Sequence[AttributedCandidate],
    page_route: Optional[str],
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> Optional[AttributedCandidate]:
    ranked = rank(cands, page_route, policy)
    return ranked[0] if ranked else None
