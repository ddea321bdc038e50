"""
Data shapes for the attribution engine.

- PageIdentity: who the page is (route, productId, companyId).
- CapturedResponse: one finished network response seen during a page visit.
- CodeOccurrence: one promo-shaped token found in a response (code + where).
- DiscountRecord: normalized discount fields recovered next to a code.
- AttributedCandidate: an occurrence that passed attribution, plus its evidence.
- ExtractionResult: the single winner for a page visit.
- VisitRecord / ErrorRecord: one checkpoint line per visited URL.

If I need a new output column, I add it here first and then populate it
in `services/extract.py`.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PageIdentity(BaseModel):
    """
    Page-identity signature for one visit.

    - route: first path segment of the page URL (e.g. "acme-signals")
    - product_id / company_id: opportunistic IDs sniffed from inline data blocks

    Any field may be None; absence of a signal is normal.
    """

    model_config = ConfigDict(frozen=True)

    route: Optional[str] = None
    product_id: Optional[str] = None
    company_id: Optional[str] = None

    def has_ids(self) -> bool:
        return bool(self.product_id or self.company_id)


class CapturedResponse(BaseModel):
    """
    Read-only response descriptor delivered by a traffic capture adapter.

    `body` is already decoded text. `post_data` is the raw request payload for
    query submissions (GraphQL and friends), None for plain fetches.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    content_type: str = ""
    body: str = ""
    post_data: Optional[str] = None
    timestamp: float = 0.0
    status: Optional[int] = None
    request_method: Optional[str] = None


class CodeOccurrence(BaseModel):
    """
    One promo-shaped token.

    - code: always lowercase
    - byte_offset: start of the code inside `source.body`; None when the code
      came from the response URL's query string
    - rule: which token rule matched ("structured", "url_param", "quoted", "bare", "response_url")
    """

    model_config = ConfigDict(frozen=True)

    code: str
    source: CapturedResponse
    byte_offset: Optional[int] = None
    rule: Optional[str] = None

    @field_validator("code")
    @classmethod
    def _fold_code(cls, v: str) -> str:
        return v.strip().lower()


class DiscountRecord(BaseModel):
    """
    Normalized discount bundle.

    - percent_off: 20 means 20%
    - amount_off: fixed amount in `currency` units
    - amount_off_cents: cents-denominated field, kept separate from amount_off

    A record is only "present" when percent_off or amount_off is set; see
    `services/discount.normalize_record`.
    """

    model_config = ConfigDict(frozen=True)

    percent_off: Optional[float] = None
    amount_off: Optional[float] = None
    currency: Optional[str] = None
    amount_off_cents: Optional[int] = None

    def has_value(self) -> bool:
        return self.percent_off is not None or self.amount_off is not None


class AttributedCandidate(BaseModel):
    """An occurrence that passed the attribution filter, enriched and scored."""

    code: str
    discount: Optional[DiscountRecord] = None
    source_url: str
    content_type: str = ""
    timestamp: float = 0.0
    page_route: Optional[str] = None      # route of the response it came from, not of the page
    score: float = 0.0
    rule: Optional[str] = None            # attribution rule that accepted it


class ExtractionResult(BaseModel):
    """
    Final output for one page visit.

    - code: the winning promo code
    - discount: its discount bundle, if one was recovered
    - source_url / content_type: the response that carried the winning evidence
    - provenance: misc info (accepting rule, candidate counts, scoring policy version)
    """

    code: str
    discount: Optional[DiscountRecord] = None
    source_url: str
    content_type: str = ""
    provenance: Dict[str, Any] = Field(default_factory=dict)


class VisitRecord(BaseModel):
    """One checkpoint line per successfully visited URL (found or not)."""

    url: str
    found: bool = False
    code: Optional[str] = None
    percent_off: Optional[float] = None
    amount_off: Optional[float] = None
    currency: Optional[str] = None
    amount_off_cents: Optional[int] = None
    source_url: Optional[str] = None
    content_type: Optional[str] = None
    checked_at: str


class ErrorRecord(BaseModel):
    """One checkpoint line per URL whose visit failed."""

    url: str
    error: str
    at: str
