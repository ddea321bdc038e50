"""
Centralized patterns and lookups.

- CODE_SHAPE: the lexical shape of a popup promo code ("promo-" + 6+ chars).
- TOKEN_RULES: ordered code-recognition rules, highest confidence first.
- PRECHECK_*: cheap substring markers checked before any regex runs.
- PRODUCT_ID_PATTERNS / COMPANY_ID_PATTERNS / ROUTE_FIELD: identity signals
  found in inline data blocks, request payloads and response bodies.
- DISCOUNT_FIELD_PATTERNS: field-shaped discount regexes for the windowed fallback.
- SKIP_EXT / SKIP_CONTENT_TYPES: static assets the capture adapter ignores.

These live here so scanning/attribution rules stay readable and we change patterns in one place.
"""


# The code itself. Matched case-insensitively; callers fold to lowercase.
# NOTE: single backslashes, do not double-escape!
CODE_SHAPE = r"promo-[a-z0-9-]{6,}"

# Optional backslash before a quote: RSC/flight payloads ship JSON inside JS strings.
_Q = r'\\?"'

# Ordered token rules: (name, regex). Group 1 is always the code.
# All four run over every body; order only matters for tie-breaking offsets.
TOKEN_RULES = (
    # 1) explicit popup record: "popupPromoCode": { ... "code": "promo-xxxx" }
    (
        "structured",
        _Q + r"popupPromoCode" + _Q + r"\s*:\s*\{[^}]*?" + _Q + r"code" + _Q + r"\s*:\s*" + _Q
        + r"(" + CODE_SHAPE + r")",
    ),
    # 2) checkout links: ?promoCode=promo-xxxx
    ("url_param", r"[?&]promoCode=(" + CODE_SHAPE + r")"),
    # 3) any quoted occurrence
    ("quoted", r'"(' + CODE_SHAPE + r')"'),
    # 4) bare token with non-alphanumeric neighbours
    ("bare", r"(?:^|[^a-z0-9])(" + CODE_SHAPE + r")(?=[^a-z0-9]|$)"),
)

# Query-parameter form, also applied to response URLs.
URL_PARAM_REGEX = r"[?&]promoCode=(" + CODE_SHAPE + r")"

# Cheap pre-check markers (lowercased; compared against lowercased text).
PRECHECK_BODY_MARKERS = ("promo-", "popuppromocode", "promocode=")
PRECHECK_URL_MARKERS = ("promocode=",)

# Structured popup record keyword (raw or RSC-escaped quotes).
STRUCTURED_RECORD_REGEX = _Q + r"popupPromoCode" + _Q + r"\s*:"

# Identity fields. Values stop at a quote or a backslash (escaped payloads).
PRODUCT_ID_PATTERNS = (
    _Q + r"productId" + _Q + r"\s*:\s*" + _Q + r"([^\"\\]+)",
    _Q + r"product" + _Q + r"\s*:\s*\{\s*" + _Q + r"id" + _Q + r"\s*:\s*" + _Q + r"([^\"\\]+)",
)
COMPANY_ID_PATTERNS = (
    _Q + r"companyId" + _Q + r"\s*:\s*" + _Q + r"([^\"\\]+)",
    _Q + r"company" + _Q + r"\s*:\s*\{\s*" + _Q + r"id" + _Q + r"\s*:\s*" + _Q + r"([^\"\\]+)",
)
ROUTE_FIELD = _Q + r"route" + _Q + r"\s*:\s*" + _Q + r"([^\"\\]+)"

# Path segments that are never product routes.
NON_ROUTE_SEGMENTS = {"api", "_next", "graphql", "static", "assets", "cdn-cgi"}

# Field-shaped discount patterns for the fallback window (applied to unescaped text).
DISCOUNT_FIELD_PATTERNS = {
    "discount_off_pct": r'"discountOff"\s*:\s*"\s*(\d+(?:\.\d+)?)\s*%',
    "percent_number": r'"(?:percentOff|discountPercent|discountPercentage)"\s*:\s*"?(\d*\.?\d+)',
    "amount_off": r'"amountOff"\s*:\s*(\d*\.?\d+)',
    "amount_off_cents": r'"amountOffInCents"\s*:\s*(\d{1,9})',
    "currency": r'"currency"\s*:\s*"([A-Za-z]{3})"',
}

# Currency symbols seen in free-text notes -> ISO code.
CURRENCY_SYMBOLS = {"$": "USD", "£": "GBP", "€": "EUR"}

# Static assets never worth reading.
SKIP_EXT = r"\.(png|jpe?g|gif|svg|webp|avif|ico|css|woff2?|ttf|map|mp4|webm|m4s|mp3|wav)(\?|$)"
SKIP_CONTENT_TYPES = ("image", "font", "video", "audio", "css")

# Content types that carry structured / component payloads rather than plain HTML.
STRUCTURED_CONTENT_TYPES = ("application/json", "text/x-component", "+json")

# Content types rule 4 treats as documents.
DOCUMENT_CONTENT_TYPES = ("text/html", "application/json", "text/x-component", "text/plain", "+json")
