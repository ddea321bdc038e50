# promoattr/services/discount.py
"""
Discount bundle extraction.

Given a response body and the offset of an accepted code, recover the
discount that ships next to it.

Structural pass (preferred):
    Walk outward from the offset through enclosing {...} slices (balanced,
    string-aware), parse each with `json`, and look for the node whose `code`
    (or `popupPromoCode.code`) is our code. Runs over the raw body first, then
    over a quote-unescaped window, since RSC / text/x-component streams embed
    JSON inside JS strings.

Fallback pass (only when no record could be parsed):
    Field-shaped regexes over a +/-600 char unescaped window; for each field the
    match nearest to the code wins.

Normalization:
    - "20%" style strings -> percent verbatim
    - bare number > 1 -> percent as-is
    - fraction in (0, 1] -> percent * 100 (rounded to 2 dp)
    - fixed amounts (amountOff > 1, money objects, "$5" notes) -> amount_off + currency
    - amountOffInCents -> amount_off_cents, never merged into amount_off
    - nothing found -> None (never a zero discount)
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Iterator, Optional, Tuple

from extraction.patterns import CODE_SHAPE, CURRENCY_SYMBOLS, DISCOUNT_FIELD_PATTERNS
from promoattr.models.schemas import DiscountRecord
from promoattr.util.balance import enclosing_objects, unescape_quotes, unescaped_window
from promoattr.util.logger import get_logger

logger = get_logger(__name__)

# ---------- constants / regexes ----------

# Policy: a fraction of exactly 1.0 is 100%, not an absolute amount of 1.
FRACTION_CEILING = 1.0

# Explicit percentage fields, in priority order.
PERCENT_FIELDS = ("percentOff", "discountPercent", "discountPercentage", "discountOff")
# Nested {amount, currency} objects.
MONEY_FIELDS = ("amountOffMoney", "priceOff", "fixedOff")

# How many enclosing objects we try before giving up on the structural pass.
MAX_ENCLOSING = 8

CODE_PAT = re.compile(CODE_SHAPE, re.IGNORECASE)
PCT_STR_PAT = re.compile(r"(\d+(?:\.\d+)?)\s*%")
NOTE_MONEY_PAT = re.compile(r"([$£€])\s*(\d+(?:\.\d+)?)")
FIELD_PATS = {name: re.compile(rx, re.IGNORECASE) for name, rx in DISCOUNT_FIELD_PATTERNS.items()}


# ---------- value normalizers ----------

def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _to_float(v: Any) -> Optional[float]:
    if _is_number(v):
        return float(v)
    if isinstance(v, str):
        try:
            return float(v.strip())
        except ValueError:
            return None
    return None


def fraction_to_percent(x: float) -> float:
    return round(x * 100, 2)


def percent_from_value(v: Any) -> Optional[float]:
    """'20%' -> 20.0, 45 -> 45.0, 0.3 -> 30.0; anything else -> None."""
    if isinstance(v, str):
        m = PCT_STR_PAT.search(v)
        if m:
            pct = float(m.group(1))
            return pct if pct > 0 else None
    x = _to_float(v)
    if x is None or x <= 0:
        return None
    if x > FRACTION_CEILING:
        return x
    return fraction_to_percent(x)


def _currency(v: Any) -> Optional[str]:
    if isinstance(v, str) and v.strip():
        return v.strip().upper()
    return None


def _cents(v: Any) -> Optional[int]:
    if _is_number(v):
        return int(v)
    if isinstance(v, str) and v.strip().isdigit():
        return int(v.strip())
    return None


def normalize_record(obj: Dict[str, Any]) -> Optional[DiscountRecord]:
    """Map one parsed record to a DiscountRecord, or None if it carries no discount."""
    if not isinstance(obj, dict):
        return None

    percent_off: Optional[float] = None
    amount_off: Optional[float] = None
    currency: Optional[str] = None

    for key in PERCENT_FIELDS:
        if key in obj:
            percent_off = percent_from_value(obj[key])
            if percent_off is not None:
                break

    raw_amount = _to_float(obj.get("amountOff"))
    if raw_amount is not None and raw_amount > 0:
        if raw_amount <= FRACTION_CEILING:
            # amountOff in (0, 1] is the storefront's fractional percentage
            if percent_off is None:
                percent_off = fraction_to_percent(raw_amount)
        else:
            amount_off = raw_amount
            currency = _currency(obj.get("currency"))

    if amount_off is None:
        for key in MONEY_FIELDS:
            money = obj.get(key)
            if isinstance(money, dict) and _is_number(money.get("amount")):
                amount_off = float(money["amount"])
                currency = _currency(money.get("currency"))
                break

    if amount_off is None and _is_number(obj.get("amount")) and _currency(obj.get("currency")):
        amount_off = float(obj["amount"])
        currency = _currency(obj.get("currency"))

    if amount_off is None and isinstance(obj.get("note"), str):
        m = NOTE_MONEY_PAT.search(obj["note"])
        if m:
            amount_off = float(m.group(2))
            currency = CURRENCY_SYMBOLS.get(m.group(1))

    cents = _cents(obj.get("amountOffInCents"))

    if percent_off is None and amount_off is None:
        return None
    return DiscountRecord(
        percent_off=percent_off,
        amount_off=amount_off,
        currency=currency,
        amount_off_cents=cents,
    )


# ---------- structural pass ----------

def _safe_json(s: str) -> Optional[Any]:
    try:
        return json.loads(s)
    except ValueError:
        return None


def _code_matches(v: Any, code: str) -> bool:
    return isinstance(v, str) and v.strip().lower() == code


def find_code_node(node: Any, code: str) -> Optional[Dict[str, Any]]:
    """Depth-first search for the dict that owns `code`."""
    if isinstance(node, dict):
        if _code_matches(node.get("code"), code):
            return node
        popup = node.get("popupPromoCode")
        if isinstance(popup, dict) and _code_matches(popup.get("code"), code):
            return popup
        children = node.values()
    elif isinstance(node, list):
        children = node
    else:
        return None
    for child in children:
        found = find_code_node(child, code)
        if found is not None:
            return found
    return None


def _parse_slice(text: str) -> Optional[Any]:
    parsed = _safe_json(text)
    if parsed is None:
        parsed = _safe_json(unescape_quotes(text))
    return parsed


def _views(body: str, offset: int, span: int) -> Iterator[Tuple[str, int]]:
    yield body, offset
    if '\\"' in body:
        yield unescaped_window(body, offset, span)


def locate_record(body: str, offset: Optional[int], code: Optional[str] = None,
                  span: int = 4000) -> Optional[Dict[str, Any]]:
    """
    Smallest parseable record around `offset` that owns `code`.
    Returns the owning dict, or None if no balanced record parses.
    """
    if not body or offset is None or offset < 0 or offset >= len(body):
        return None
    code = (code or _code_at(body, offset) or "").lower()
    if not code:
        return None

    for text, at in _views(body, offset, span):
        for n, (lo, hi) in enumerate(enclosing_objects(text, at, span)):
            if n >= MAX_ENCLOSING:
                break
            parsed = _parse_slice(text[lo:hi])
            if parsed is None:
                continue
            node = find_code_node(parsed, code)
            if node is not None:
                return node
    return None


def _code_at(body: str, offset: int) -> Optional[str]:
    m = CODE_PAT.match(body, offset)
    return m.group(0).lower() if m else None


# ---------- fallback pass ----------

def _nearest(pat: re.Pattern, text: str, at: int) -> Optional[re.Match]:
    best = None
    for m in pat.finditer(text):
        if best is None or abs(m.start() - at) < abs(best.start() - at):
            best = m
    return best


def window_discount(body: str, offset: int, window: int = 600) -> Optional[DiscountRecord]:
    """Regex-only recovery from the text around the code."""
    text, at = unescaped_window(body, offset, window)
    hits = {name: _nearest(pat, text, at) for name, pat in FIELD_PATS.items()}

    percent_off: Optional[float] = None
    amount_off: Optional[float] = None
    currency: Optional[str] = None
    cents: Optional[int] = None

    if hits["discount_off_pct"]:
        percent_off = percent_from_value(hits["discount_off_pct"].group(1) + "%")
    if percent_off is None and hits["percent_number"]:
        percent_off = percent_from_value(hits["percent_number"].group(1))

    if hits["amount_off"]:
        raw = float(hits["amount_off"].group(1))
        if 0 < raw <= FRACTION_CEILING:
            if percent_off is None:
                percent_off = fraction_to_percent(raw)
        elif raw > FRACTION_CEILING:
            amount_off = raw

    if amount_off is not None and hits["currency"]:
        currency = hits["currency"].group(1).upper()
    if hits["amount_off_cents"]:
        cents = int(hits["amount_off_cents"].group(1))

    if percent_off is None and amount_off is None:
        return None
    return DiscountRecord(percent_off=percent_off, amount_off=amount_off, currency=currency,
                          amount_off_cents=cents)


# ---------- entry point ----------

def extract_discount(body: str, offset: Optional[int], code: Optional[str] = None,
                     span: int = 4000, window: int = 600) -> Optional[DiscountRecord]:
    """
    Discount bundle for the code at `offset`, or None.

    URL-derived occurrences (offset None) carry no body anchor and get None.
    """
    if not body or offset is None or offset < 0 or offset >= len(body):
        return None

    node = locate_record(body, offset, code, span)
    if node is not None:
        return normalize_record(node)

    logger.debug(f"no balanced record around offset {offset}; using window fallback")
    return window_discount(body, offset, window)
