"""
Playwright -> CapturedResponse list (traffic capture adapter).

- capture_traffic(page): async context manager. Subscribes to `requestfinished`
  *before* yielding, so it must wrap the first navigation or early responses
  are lost. On exit (normal, timeout, error, cancellation) it unsubscribes and
  waits for in-flight body reads.
- snapshot_page_context(page): inline <script> text for the context resolver.
- navigate / reload / wait_for_quiet: page-load steps with our error types.

Why separate this:
- The attribution engine only ever sees CapturedResponse objects, so it can be
  driven by HAR files or synthetic fixtures in tests.
- Keeps the engine focused on text patterns, not browser internals.
"""

import asyncio
import re
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Set

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from extraction.patterns import SKIP_CONTENT_TYPES, SKIP_EXT
from promoattr.config import Settings, get_settings
from promoattr.models.schemas import CapturedResponse
from promoattr.services.context import StaticPageContext
from promoattr.util.logger import get_logger

logger = get_logger(__name__)

SKIP_EXT_PAT = re.compile(SKIP_EXT, re.IGNORECASE)

SCRIPT_TEXT_JS = "() => Array.from(document.querySelectorAll('script')).map(s => s.textContent || '')"


class CaptureError(Exception):
    """Page could not be captured."""


class NavigationError(CaptureError):
    """Navigation or reload failed; the whole page visit fails."""


def is_static_asset(url: str, content_type: str) -> bool:
    if SKIP_EXT_PAT.search(url or ""):
        return True
    ct = (content_type or "").lower()
    return any(t in ct for t in SKIP_CONTENT_TYPES)


async def read_body(response, content_type: str) -> str:
    """Decoded body text; octet-stream payloads are decoded as UTF-8."""
    if content_type.startswith("application/octet-stream"):
        return (await response.body()).decode("utf-8", errors="replace")
    try:
        return await response.text()
    except PlaywrightError:
        return (await response.body()).decode("utf-8", errors="replace")


class TrafficCapture:
    """Collects finished responses for one page visit."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.responses: List[CapturedResponse] = []
        self._tasks: Set[asyncio.Task] = set()

    def on_request_finished(self, request) -> None:
        task = asyncio.create_task(self._record(request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _record(self, request) -> None:
        try:
            response = await request.response()
            if response is None:
                return
            url = response.url
            ct = (response.headers.get("content-type") or "").lower()
            if is_static_asset(url, ct):
                return
            body = await read_body(response, ct)
            if not body:
                return
            self.responses.append(CapturedResponse(
                url=url,
                content_type=ct,
                body=body,
                post_data=request.post_data,
                timestamp=time.time(),
                status=response.status,
                request_method=request.method,
            ))
        except PlaywrightError as e:
            # bodies of redirects / evicted resources are unreadable; the rest of the visit is fine
            logger.debug(f"could not read response for {getattr(request, 'url', '?')}: {e}")

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*tuple(self._tasks), return_exceptions=True)


@asynccontextmanager
async def capture_traffic(page, settings: Optional[Settings] = None) -> AsyncIterator[TrafficCapture]:
    cap = TrafficCapture(settings)
    page.on("requestfinished", cap.on_request_finished)
    try:
        yield cap
    finally:
        page.remove_listener("requestfinished", cap.on_request_finished)
        await cap.drain()
        logger.debug(f"capture closed with {len(cap.responses)} responses")


async def snapshot_page_context(page) -> StaticPageContext:
    try:
        blocks = await page.evaluate(SCRIPT_TEXT_JS)
    except PlaywrightError as e:
        logger.debug(f"could not read inline scripts: {e}")
        blocks = []
    return StaticPageContext(blocks or [])


async def navigate(page, url: str, settings: Settings) -> None:
    try:
        await page.goto(url, wait_until="domcontentloaded", timeout=settings.navigation_timeout_ms)
    except PlaywrightError as e:
        raise NavigationError(f"navigation to {url} failed: {e}") from e


async def reload(page, settings: Settings) -> None:
    try:
        await page.reload(wait_until="domcontentloaded", timeout=settings.navigation_timeout_ms)
    except PlaywrightError as e:
        raise NavigationError(f"reload of {page.url} failed: {e}") from e


async def wait_for_quiet(page, timeout_ms: int) -> bool:
    """Wait for network idle; False when the budget ran out (caller keeps what it has)."""
    try:
        await page.wait_for_load_state("networkidle", timeout=timeout_ms)
        return True
    except PlaywrightTimeoutError:
        logger.info(f"network never went idle within {timeout_ms}ms on {page.url}; using captured traffic")
        return False
