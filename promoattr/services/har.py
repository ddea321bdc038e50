"""
HAR -> CapturedResponse list (offline replay adapter).

DevTools / Playwright `record_har_path` exports carry everything the engine
needs: URL, mime type, decoded body text, the request's post data and a start
time. Entries with no body text (not recorded, or binary) are skipped.
"""

import base64
import binascii
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from promoattr.models.schemas import CapturedResponse
from promoattr.services.capture import is_static_asset
from promoattr.util.logger import get_logger

logger = get_logger(__name__)

HarSource = Union[str, Path, Dict[str, Any]]


def _load(source: HarSource) -> Dict[str, Any]:
    if isinstance(source, dict):
        return source
    if isinstance(source, Path) or (isinstance(source, str) and not source.lstrip().startswith("{")):
        with open(source, "r", encoding="utf-8") as f:
            return json.load(f)
    return json.loads(source)


def _epoch(started: Optional[str]) -> float:
    if not started:
        return 0.0
    try:
        return datetime.fromisoformat(started.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return 0.0


def _body_text(content: Dict[str, Any]) -> str:
    text = content.get("text") or ""
    if text and content.get("encoding") == "base64":
        try:
            return base64.b64decode(text).decode("utf-8", errors="replace")
        except (binascii.Error, ValueError):
            return ""
    return text


def _content_type(response: Dict[str, Any]) -> str:
    ct = (response.get("content") or {}).get("mimeType") or ""
    if not ct:
        for h in response.get("headers") or []:
            if (h.get("name") or "").lower() == "content-type":
                ct = h.get("value") or ""
                break
    return ct.lower()


def load_har(source: HarSource) -> List[CapturedResponse]:
    """
    Convert a HAR log into CapturedResponses, in capture order.

    Accepts a path, raw JSON text, or an already-parsed dict.
    """
    har = _load(source)
    entries = (har.get("log") or {}).get("entries") or []
    out: List[CapturedResponse] = []
    for entry in entries:
        request = entry.get("request") or {}
        response = entry.get("response") or {}
        url = request.get("url") or ""
        ct = _content_type(response)
        if not url or is_static_asset(url, ct):
            continue
        body = _body_text(response.get("content") or {})
        if not body:
            continue
        post = (request.get("postData") or {}).get("text")
        out.append(CapturedResponse(
            url=url,
            content_type=ct,
            body=body,
            post_data=post or None,
            timestamp=_epoch(entry.get("startedDateTime")),
            status=response.get("status"),
            request_method=request.get("method"),
        ))
    logger.info(f"loaded {len(out)} responses from {len(entries)} HAR entries")
    return out


def page_url_from_har(source: HarSource) -> Optional[str]:
    """First HTML document navigation in the log (the page that was being inspected)."""
    har = _load(source)
    pages = (har.get("log") or {}).get("pages") or []
    for p in pages:
        title = p.get("title") or ""
        if title.startswith("http"):
            return title
    for entry in (har.get("log") or {}).get("entries") or []:
        request = entry.get("request") or {}
        if (request.get("method") or "GET").upper() != "GET":
            continue
        if "text/html" in _content_type(entry.get("response") or {}):
            return request.get("url")
    return None
