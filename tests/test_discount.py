"""
Unit tests for discount bundle extraction.

Covers value normalization, the structural pass (raw and RSC-escaped bodies)
and the windowed fallback.
"""

import pytest

from promoattr.models.schemas import DiscountRecord
from promoattr.services.discount import (
    extract_discount,
    find_code_node,
    locate_record,
    normalize_record,
    percent_from_value,
    window_discount,
)

CODE = "promo-abcdef12"


def at(body, code=CODE):
    return body.index(code)


class TestPercentFromValue:
    """Percent normalization rules."""

    @pytest.mark.parametrize("value,expected", [
        ("20%", 20.0),
        ("12.5 %", 12.5),
        (45, 45.0),
        (0.3, 30.0),
        (1, 100.0),
        (1.0, 100.0),
        ("0.25", 25.0),
    ])
    def test_values(self, value, expected):
        assert percent_from_value(value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", ["0%", 0, -5, "abc", None, True, {}])
    def test_no_discount(self, value):
        assert percent_from_value(value) is None


class TestNormalizeRecord:
    """One parsed record -> DiscountRecord."""

    def test_percent_string(self):
        rec = normalize_record({"code": CODE, "discountOff": "20%"})
        assert rec == DiscountRecord(percent_off=20.0)

    def test_fractional_amount_off_is_percent(self):
        rec = normalize_record({"code": CODE, "amountOff": 0.3})
        assert rec.percent_off == pytest.approx(30.0)
        assert rec.amount_off is None

    def test_amount_off_of_one_is_full_discount(self):
        rec = normalize_record({"code": CODE, "amountOff": 1})
        assert rec.percent_off == pytest.approx(100.0)

    def test_fixed_amount_with_currency(self):
        rec = normalize_record({"code": CODE, "amountOff": 5, "currency": "usd"})
        assert rec.amount_off == 5.0
        assert rec.currency == "USD"
        assert rec.percent_off is None

    def test_money_object(self):
        rec = normalize_record({"code": CODE, "amountOffMoney": {"amount": 10, "currency": "eur"}})
        assert (rec.amount_off, rec.currency) == (10.0, "EUR")

    def test_note_with_symbol(self):
        rec = normalize_record({"code": CODE, "note": "Take $5 off today"})
        assert (rec.amount_off, rec.currency) == (5.0, "USD")

    def test_cents_alone_is_absent(self):
        """Cents ride along but never make a record present on their own."""
        assert normalize_record({"code": CODE, "amountOffInCents": 500}) is None

    def test_cents_kept_separate(self):
        rec = normalize_record({"code": CODE, "percentOff": 10, "amountOffInCents": 500})
        assert rec.percent_off == 10.0
        assert rec.amount_off is None
        assert rec.amount_off_cents == 500

    def test_percent_field_priority(self):
        rec = normalize_record({"percentOff": "15%", "discountOff": "40%"})
        assert rec.percent_off == 15.0

    def test_nothing(self):
        assert normalize_record({"code": CODE}) is None
        assert normalize_record({"code": CODE, "discountOff": "0%"}) is None
        assert normalize_record("not a dict") is None


class TestStructuralPass:
    """Balanced-record lookup around the code."""

    def test_find_code_node_prefers_owner(self):
        tree = {"items": [{"code": "promo-zzzzzz99"}, {"popupPromoCode": {"code": CODE.upper(), "percentOff": 5}}]}
        assert find_code_node(tree, CODE) == {"code": CODE.upper(), "percentOff": 5}

    def test_popup_record(self):
        body = '{"popupPromoCode":{"code":"promo-abcdef12","discountOff":"20%"}}'
        assert extract_discount(body, at(body)).percent_off == 20.0

    def test_record_inside_larger_document(self):
        body = ('<script>self.__next_f.push({"props":{"offer":{"code":"promo-abcdef12",'
                '"amountOff":0.3}},"other":{"code":"promo-zzzzzz99","amountOff":0.9}})</script>')
        assert extract_discount(body, at(body)).percent_off == pytest.approx(30.0)

    def test_escaped_component_stream(self):
        """RSC payloads carry JSON inside a JS string with escaped quotes."""
        body = ('0:["$","div",{"data":"{\\"popupPromoCode\\":{\\"code\\":\\"promo-784ede4b\\",'
                '\\"discountOff\\":\\"20%\\"}}"}]')
        rec = extract_discount(body, at(body, "promo-784ede4b"), "promo-784ede4b")
        assert rec.percent_off == 20.0

    def test_parsed_record_without_discount_skips_fallback(self):
        body = '{"code":"promo-abcdef12"} {"discountOff":"50%"}'
        assert locate_record(body, at(body)) == {"code": CODE}
        assert extract_discount(body, at(body)) is None

    def test_locate_record_bad_offsets(self):
        assert locate_record("", 0) is None
        assert locate_record('{"code":"promo-abcdef12"}', None) is None
        assert locate_record('{"code":"promo-abcdef12"}', 999) is None


class TestWindowFallback:
    """Field-shaped regexes when nothing balanced parses."""

    def test_truncated_record(self):
        body = '{"code":"promo-abcdef12","discountOff":"15%"'
        assert extract_discount(body, at(body)).percent_off == 15.0

    def test_nearest_match_wins(self):
        body = '"discountOff":"10%"' + "x" * 300 + '{"code":"promo-abcdef12","discountOff":"25%"'
        assert window_discount(body, at(body)).percent_off == 25.0

    def test_amount_and_currency(self):
        body = '{"code":"promo-abcdef12","amountOff":7.5,"currency":"gbp"'
        rec = extract_discount(body, at(body))
        assert (rec.amount_off, rec.currency) == (7.5, "GBP")

    def test_escaped_window(self):
        body = '"{\\"code\\":\\"promo-abcdef12\\",\\"percentOff\\":35'
        assert extract_discount(body, at(body)).percent_off == 35.0

    def test_outside_window_is_ignored(self):
        body = "promo-abcdef12 " + "y" * 900 + '"discountOff":"60%"'
        assert window_discount(body, 0) is None


class TestExtractDiscountEntry:
    """Entry-point guards."""

    def test_url_occurrence_has_no_anchor(self):
        assert extract_discount('{"code":"promo-abcdef12","percentOff":20}', None) is None

    def test_empty_body(self):
        assert extract_discount("", 0) is None

    @pytest.mark.parametrize("body", [
        '{"popupPromoCode":{"code":"promo-abcdef12","amountOff":5,"currency":"usd","amountOffInCents":500}}',
        '0:["$",{"d":"{\\"code\\":\\"promo-abcdef12\\",\\"discountOff\\":\\"20%\\"}"}]',
        '{"code":"promo-abcdef12","discountOff":"15%","amountOffInCents":250',
    ])
    def test_repeatable(self, body):
        """Same body and offset always give an identical record (structural, escaped, fallback)."""
        first = extract_discount(body, at(body))
        second = extract_discount(body, at(body))
        assert first is not None
        assert first == second
        assert first.model_dump_json() == second.model_dump_json()
