"""
Unit tests for the attribution decision table.

Each rule is exercised on its own; the page under test is always
`https://whop.com/acme-signals/` with productId prod_A1 / companyId biz_1.
"""

import json

import pytest

from promoattr.models.schemas import CapturedResponse, CodeOccurrence, PageIdentity
from promoattr.services.attribution import (
    accept,
    body_references_route,
    decide,
    decide_response,
    is_expected_host,
    is_query_submission,
    response_route,
    url_references_route,
    variables_identity,
    variables_match,
)
from promoattr.services.scan import scan_response

PAGE = PageIdentity(route="acme-signals", product_id="prod_A1", company_id="biz_1")


def resp(body, url="https://whop.com/acme-signals/", ct="text/html", post=None):
    return CapturedResponse(url=url, content_type=ct, body=body, post_data=post, timestamp=1.0)


def occurrences(r, code=None):
    return [o for o in scan_response(r) if code is None or o.code == code]


def gql(variables):
    return json.dumps({"operationName": "Q", "variables": variables})


class TestHost:
    """Rule 1: only the expected domain counts."""

    def test_exact_and_subdomain(self):
        assert is_expected_host("https://whop.com/x")
        assert is_expected_host("https://api.whop.com/graphql")

    def test_lookalike_and_foreign(self):
        assert not is_expected_host("https://notwhop.com/x")
        assert not is_expected_host("https://cdn.example.com/whop.com/x")
        assert not is_expected_host("garbage")

    def test_foreign_host_rejects_everything(self):
        """Even a perfect structured record for our route is rejected off-domain."""
        body = '{"popupPromoCode":{"code":"promo-abcdef12"},"url":"https://whop.com/acme-signals/"}'
        r = resp(body, url="https://evil.example.com/acme-signals/", ct="application/json")
        for occ in occurrences(r):
            assert decide(occ, PAGE) == (False, "foreign_host")


class TestRouteReferences:
    """Boundary-checked route references."""

    def test_url_reference(self):
        assert url_references_route("https://whop.com/acme-signals/?x=1", "acme-signals")
        assert url_references_route("https://whop.com/acme-signals", "acme-signals")
        assert url_references_route("https://whop.com/ACME-SIGNALS?x", "acme-signals")

    def test_url_prefix_is_not_a_reference(self):
        assert not url_references_route("https://whop.com/acme-signals-pro/", "acme-signals")

    def test_body_reference(self):
        assert body_references_route('<a href="https://whop.com/acme-signals/">', "acme-signals")
        assert body_references_route('{"href":"https:\\/\\/whop.com\\/acme-signals\\/"}', "acme-signals")
        assert body_references_route('{"route":"acme-signals"}', "acme-signals")
        assert not body_references_route('{"route":"acme-signals-pro"}', "acme-signals")

    def test_no_route(self):
        assert not url_references_route("https://whop.com/acme-signals/", None)
        assert not body_references_route("whop.com/acme-signals", None)


class TestQuerySubmission:
    """Transport-shape detection and variable matching."""

    def test_graphql_post(self):
        r = resp("{}", url="https://whop.com/api/graphql", post="query { x }")
        assert is_query_submission(r)

    def test_variables_payload_on_any_endpoint(self):
        r = resp("{}", url="https://whop.com/api/feed", post=json.dumps([{"variables": {}}]))
        assert is_query_submission(r)

    def test_plain_fetches(self):
        assert not is_query_submission(resp("{}"))
        assert not is_query_submission(resp("{}", url="https://whop.com/api/form", post="a=1&b=2"))

    def test_variables_identity(self):
        sent = variables_identity(gql({"route": "acme-signals", "productId": "prod_A1"}))
        assert sent.route == "acme-signals"
        assert sent.product_id == "prod_A1"

    def test_match(self):
        assert variables_match(PAGE, PageIdentity(route="ACME-SIGNALS"))
        assert variables_match(PAGE, PageIdentity(company_id="biz_1"))
        assert not variables_match(PAGE, PageIdentity(route="other"))
        assert not variables_match(PAGE, PageIdentity())
        assert not variables_match(PageIdentity(route="acme-signals"), PageIdentity(product_id="prod_Z"))


class TestDecisionTable:
    """The rules in order."""

    def test_structured_record_with_route_reference(self):
        body = '{"popupPromoCode":{"code":"promo-abcdef12","discountOff":"20%"}}'
        r = resp(body, url="https://whop.com/acme-signals/?_rsc=1", ct="text/x-component")
        for occ in occurrences(r):
            assert decide(occ, PAGE) == (True, "structured_record")

    def test_self_contained_record_without_route_signal(self):
        """An unambiguous popup record is page-local by default."""
        body = '{"popupPromoCode":{"code":"promo-abcdef12"}}'
        r = resp(body, url="https://whop.com/api/popup", ct="application/json")
        for occ in occurrences(r):
            assert decide(occ, PAGE) == (True, "structured_record")

    def test_structured_record_naming_another_route(self):
        body = '{"route":"other-course","popupPromoCode":{"code":"promo-abcdef12"}}'
        r = resp(body, url="https://whop.com/api/popup", ct="application/json")
        for occ in occurrences(r):
            assert decide(occ, PAGE) == (False, "no_evidence")

    def test_query_submission_matching_product(self):
        r = resp('{"data":{"code":"promo-abcdef12"}}', url="https://whop.com/api/graphql",
                 ct="application/json", post=gql({"productId": "prod_A1"}))
        for occ in occurrences(r):
            assert decide(occ, PAGE) == (True, "query_submission")

    def test_query_submission_for_other_route(self):
        """Feed polling about another page is rejected even though the code shape matches."""
        r = resp('{"messages":[{"text":"use promo-022d1f18"}]}', url="https://whop.com/api/graphql",
                 ct="application/json", post=gql({"route": "someone-else"}))
        occs = occurrences(r)
        assert occs
        for occ in occs:
            assert decide(occ, PAGE) == (False, "query_submission")

    def test_query_submission_cannot_be_rescued_by_popup_record(self):
        """A popup record inside a feed response for another product is still spillover."""
        body = '{"popupPromoCode":{"code":"promo-022d1f18","discountOff":"50%"}}'
        r = resp(body, url="https://whop.com/api/graphql", ct="application/json",
                 post=gql({"productId": "prod_OTHER"}))
        for occ in occurrences(r):
            assert decide(occ, PAGE) == (False, "query_submission")

    def test_query_submission_without_identity(self):
        r = resp('{"x":"promo-abcdef12"}', url="https://whop.com/api/graphql",
                 ct="application/json", post=gql({"limit": 20}))
        for occ in occurrences(r):
            assert decide(occ, PAGE) == (False, "query_submission")

    def test_document_with_route_in_url(self):
        r = resp("<p>promo-abcdef12</p>", url="https://whop.com/acme-signals/")
        for occ in occurrences(r):
            assert decide(occ, PAGE) == (True, "document_route")

    def test_document_with_route_in_body(self):
        body = '{"url":"https://whop.com/acme-signals/","x":"promo-abcdef12"}'
        r = resp(body, url="https://whop.com/_next/data/build/page.json", ct="application/json")
        for occ in occurrences(r):
            assert decide(occ, PAGE) == (True, "document_route")

    def test_document_for_other_page(self):
        r = resp("<p>promo-abcdef12</p>", url="https://whop.com/acme-signals-pro/")
        for occ in occurrences(r):
            assert decide(occ, PAGE) == (False, "no_evidence")

    def test_no_route_signal_at_all(self):
        r = resp("<p>promo-abcdef12</p>", url="https://whop.com/")
        for occ in occurrences(r):
            assert decide(occ, PageIdentity()) == (False, "no_evidence")


class TestAccept:
    """Boolean wrapper and purity."""

    @pytest.mark.parametrize("url,expected", [
        ("https://whop.com/acme-signals/", True),
        ("https://whop.com/elsewhere/", False),
    ])
    def test_accept_returns_bool(self, url, expected):
        occ = occurrences(resp("<p>promo-abcdef12</p>", url=url))[0]
        assert accept(occ, PAGE) is expected

    def test_decide_is_repeatable(self):
        occ = occurrences(resp("<p>promo-abcdef12</p>"))[0]
        assert decide(occ, PAGE) == decide(occ, PAGE)

    def test_accept_takes_domain(self):
        occ = CodeOccurrence(code="promo-abcdef12", byte_offset=3,
                             source=resp("<p>promo-abcdef12</p>", url="https://shop.example.org/acme-signals/"))
        assert accept(occ, PAGE, domain="example.org") is True
        assert accept(occ, PAGE) is False


class TestRouteOnlyPage:
    """Pages that resolved a route but no product/company IDs."""

    ROUTE_ONLY = PageIdentity(route="acme-signals")
    POPUP = '{"popupPromoCode":{"code":"promo-022d1f18","discountOff":"50%"}}'

    def test_feed_for_unresolved_product_is_rejected(self):
        """Variables naming an ID the page never resolved do not make a popup record page-local."""
        r = resp(self.POPUP, url="https://whop.com/api/graphql", ct="application/json",
                 post=gql({"productId": "prod_OTHER"}))
        for occ in occurrences(r):
            assert decide(occ, self.ROUTE_ONLY) == (False, "query_submission")

    def test_feed_without_identity_is_rejected(self):
        r = resp(self.POPUP, url="https://whop.com/api/feed", ct="application/json",
                 post=gql({"limit": 20}))
        for occ in occurrences(r):
            assert decide(occ, self.ROUTE_ONLY) == (False, "query_submission")

    def test_feed_for_this_route_keeps_the_record(self):
        r = resp(self.POPUP, url="https://whop.com/api/graphql", ct="application/json",
                 post=gql({"route": "acme-signals"}))
        for occ in occurrences(r):
            assert decide(occ, self.ROUTE_ONLY) == (True, "structured_record")

    def test_plain_fetch_popup_is_still_page_local(self):
        r = resp(self.POPUP, url="https://whop.com/api/popup", ct="application/json")
        assert decide_response(r, self.ROUTE_ONLY) == (True, "structured_record")


class TestResponseRoute:
    """Which page a response is about."""

    def test_variables_first(self):
        r = resp('{"route":"body-route"}', url="https://whop.com/url-route/",
                 post=gql({"route": "var-route"}))
        assert response_route(r) == "var-route"

    def test_body_field_then_url(self):
        assert response_route(resp('{"route":"body-route"}', url="https://whop.com/url-route/")) == "body-route"
        assert response_route(resp("<p>x</p>", url="https://whop.com/url-route/?x=1")) == "url-route"

    def test_infrastructure_paths(self):
        assert response_route(resp("{}", url="https://whop.com/api/graphql")) is None
        assert response_route(resp("{}", url="https://whop.com/_next/data/b/p.json")) is None
        assert response_route(resp("{}", url="https://whop.com/")) is None
