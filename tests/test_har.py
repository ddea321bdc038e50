"""
Tests for HAR replay (DevTools / Playwright exports -> CapturedResponse).
"""

import base64
import json

from promoattr.services.har import load_har, page_url_from_har


def entry(url, mime, text, started="2025-09-01T10:00:00.000Z", method="GET", post=None, encoding=None):
    content = {"mimeType": mime, "text": text}
    if encoding:
        content["encoding"] = encoding
    req = {"method": method, "url": url}
    if post is not None:
        req["postData"] = {"mimeType": "application/json", "text": post}
    return {"startedDateTime": started, "request": req, "response": {"status": 200, "content": content}}


def har(*entries, pages=None):
    log = {"version": "1.2", "entries": list(entries)}
    if pages is not None:
        log["pages"] = pages
    return {"log": log}


class TestLoadHar:
    """Entry conversion and filtering."""

    def test_basic_fields(self):
        h = har(entry("https://whop.com/api/graphql", "application/json", '{"a":1}',
                      method="POST", post='{"variables":{}}'))
        (r,) = load_har(h)
        assert r.url == "https://whop.com/api/graphql"
        assert r.content_type == "application/json"
        assert r.body == '{"a":1}'
        assert r.post_data == '{"variables":{}}'
        assert r.request_method == "POST"
        assert r.status == 200
        assert r.timestamp > 1_700_000_000

    def test_skips_assets_and_empty_bodies(self):
        h = har(
            entry("https://whop.com/logo.svg", "image/svg+xml", "<svg/>"),
            entry("https://whop.com/fonts/a.woff2", "font/woff2", "xx"),
            entry("https://whop.com/blank", "text/html", ""),
            entry("https://whop.com/acme-signals/", "text/html", "<p>hi</p>"),
        )
        assert [r.url for r in load_har(h)] == ["https://whop.com/acme-signals/"]

    def test_base64_body(self):
        text = '{"code":"promo-abcdef12"}'
        h = har(entry("https://whop.com/x", "application/json",
                      base64.b64encode(text.encode()).decode(), encoding="base64"))
        assert load_har(h)[0].body == text

    def test_content_type_from_headers(self):
        e = entry("https://whop.com/x", "", "<p>x</p>")
        e["response"]["headers"] = [{"name": "Content-Type", "value": "Text/HTML; charset=utf-8"}]
        assert load_har(har(e))[0].content_type == "text/html; charset=utf-8"

    def test_bad_timestamp_is_zero(self):
        assert load_har(har(entry("https://whop.com/x", "text/html", "x", started="yesterday")))[0].timestamp == 0.0

    def test_path_and_text_sources(self, tmp_path):
        h = har(entry("https://whop.com/x", "text/html", "<p>x</p>"))
        path = tmp_path / "visit.har"
        path.write_text(json.dumps(h), encoding="utf-8")
        assert len(load_har(path)) == 1
        assert len(load_har(str(path))) == 1
        assert len(load_har(json.dumps(h))) == 1

    def test_empty_log(self):
        assert load_har({"log": {}}) == []


class TestPageUrl:
    """Which page a capture belongs to."""

    def test_from_pages_title(self):
        h = har(entry("https://whop.com/x", "text/html", "x"),
                pages=[{"title": "https://whop.com/acme-signals/"}])
        assert page_url_from_har(h) == "https://whop.com/acme-signals/"

    def test_first_html_get(self):
        h = har(
            entry("https://whop.com/api/graphql", "text/html", "x", method="POST", post="{}"),
            entry("https://whop.com/api/data", "application/json", "{}"),
            entry("https://whop.com/acme-signals/", "text/html; charset=utf-8", "<p>x</p>"),
        )
        assert page_url_from_har(h) == "https://whop.com/acme-signals/"

    def test_none(self):
        assert page_url_from_har(har(entry("https://whop.com/api", "application/json", "{}"))) is None
