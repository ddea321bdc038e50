"""
Batch runner around the engine (one browser, many page visits).

- run_batch(urls): visits every URL not already checkpointed, at most
  `settings.concurrency` pages at a time, and writes one checkpoint line per
  URL. A failed visit is recorded and the batch moves on; there is no retry
  here, rerunning the batch is the retry. Counters go to heartbeat.json after
  every page.
- backfill_discounts(records): revisits pages whose code was found without a
  discount, restricted to that code, and returns the updated records.
- backfill_checkpoint(): the same over visited.jsonl, saved as
  visited_with_discounts.jsonl.

The engine itself stays stateless; everything that touches disk lives here
and in `checkpoint.py`.
"""

import asyncio
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from promoattr.config import Settings, get_settings
from promoattr.models.schemas import ErrorRecord, ExtractionResult, VisitRecord
from promoattr.services.checkpoint import Checkpoint
from promoattr.services.context import route_from_url
from promoattr.services.extract import extract_popup_promo
from promoattr.util.logger import get_logger

logger = get_logger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def visit_record(url: str, result: Optional[ExtractionResult]) -> VisitRecord:
    if result is None:
        return VisitRecord(url=url, found=False, checked_at=_now())
    d = result.discount
    return VisitRecord(
        url=url,
        found=True,
        code=result.code,
        percent_off=d.percent_off if d else None,
        amount_off=d.amount_off if d else None,
        currency=d.currency if d else None,
        amount_off_cents=d.amount_off_cents if d else None,
        source_url=result.source_url,
        content_type=result.content_type,
        checked_at=_now(),
    )


async def _open_context(pw, settings: Settings):
    browser = await pw.chromium.launch(
        headless=settings.headless,
        args=["--no-sandbox", "--disable-setuid-sandbox"],
    )
    storage = settings.storage_state
    if storage:
        logger.info(f"using stored session: {storage}")
    else:
        logger.warning("no stored session; some promos may be hidden")
    context = await browser.new_context(
        storage_state=storage or None,
        bypass_csp=True,
        service_workers="block",
        user_agent=settings.user_agent,
        locale=settings.locale,
    )
    context.set_default_timeout(settings.navigation_timeout_ms)
    context.set_default_navigation_timeout(settings.navigation_timeout_ms)
    return browser, context


async def _visit(context, url: str, settings: Settings,
                 only_this_code: Optional[str] = None) -> Optional[ExtractionResult]:
    page = await context.new_page()
    try:
        return await extract_popup_promo(
            page,
            url,
            current_route=route_from_url(url),
            only_this_code=only_this_code,
            settings=settings,
        )
    finally:
        try:
            await page.close()
        except PlaywrightError as e:
            logger.debug(f"page close failed for {url}: {e}")


async def run_batch(urls: Iterable[str], settings: Optional[Settings] = None) -> Dict[str, int]:
    """Visit URLs with bounded concurrency; returns counters (found / empty / errors / skipped)."""
    settings = settings or get_settings()
    checkpoint = Checkpoint(settings.data_dir)
    done = checkpoint.load_done()

    todo: List[str] = []
    for url in urls:
        if url and url not in done and url not in todo:
            todo.append(url)
    stats = {"found": 0, "empty": 0, "errors": 0, "skipped": len(done)}
    logger.info(f"batch: {len(todo)} to process, {len(done)} already checkpointed")
    if not todo:
        return stats

    gate = asyncio.Semaphore(max(1, settings.concurrency))

    def heartbeat(status: str) -> None:
        processed = stats["found"] + stats["empty"] + stats["errors"]
        checkpoint.write_heartbeat({
            **stats,
            "progress": f"{processed}/{len(todo)}",
            "status": status,
            "at": _now(),
        })

    async with async_playwright() as pw:
        browser, context = await _open_context(pw, settings)

        async def worker(url: str) -> None:
            async with gate:
                try:
                    result = await _visit(context, url, settings)
                except Exception as e:
                    # one bad page never stops the batch; the failure is checkpointed
                    stats["errors"] += 1
                    logger.error(f"error processing {url}: {e}")
                    checkpoint.record_error(ErrorRecord(url=url, error=str(e), at=_now()))
                    heartbeat("running")
                    return
                rec = visit_record(url, result)
                checkpoint.record_visit(rec)
                if rec.found:
                    stats["found"] += 1
                    logger.info(f"found {rec.code} at {url}")
                else:
                    stats["empty"] += 1
                heartbeat("running")

        try:
            await asyncio.gather(*(worker(u) for u in todo))
        finally:
            await context.close()
            await browser.close()

    heartbeat("done")
    logger.info(f"batch complete: {stats}")
    return stats


async def backfill_discounts(records: Iterable[VisitRecord],
                             settings: Optional[Settings] = None) -> List[VisitRecord]:
    """
    Re-run pages whose code has no discount yet, looking only for that code.
    Records that cannot be improved (or fail) come back unchanged.
    """
    settings = settings or get_settings()
    records = list(records)
    pending = [r for r in records if r.found and r.code and r.percent_off is None and r.amount_off is None]
    if not pending:
        return records

    gate = asyncio.Semaphore(max(1, settings.concurrency))
    updated: Dict[str, VisitRecord] = {}

    async with async_playwright() as pw:
        browser, context = await _open_context(pw, settings)

        async def worker(rec: VisitRecord) -> None:
            async with gate:
                try:
                    result = await _visit(context, rec.url, settings, only_this_code=rec.code)
                except Exception as e:
                    logger.warning(f"backfill failed for {rec.url}: {e}")
                    return
                if result is not None and result.discount is not None:
                    updated[rec.url] = visit_record(rec.url, result)
                    logger.info(f"backfilled {rec.code} at {rec.url}: {result.discount.model_dump()}")

        try:
            await asyncio.gather(*(worker(r) for r in pending))
        finally:
            await context.close()
            await browser.close()

    return [updated.get(r.url, r) for r in records]


async def backfill_checkpoint(settings: Optional[Settings] = None) -> Dict[str, int]:
    """
    Backfill discounts for everything in visited.jsonl and write the full
    result to visited_with_discounts.jsonl. visited.jsonl itself is never rewritten.
    """
    settings = settings or get_settings()
    checkpoint = Checkpoint(settings.data_dir)
    records = list(checkpoint.visited())
    updated = await backfill_discounts(records, settings)
    improved = sum(1 for old, new in zip(records, updated) if new is not old)
    written = checkpoint.write_backfilled(updated)
    logger.info(f"backfill: {improved} records improved, {written} written to {checkpoint.backfilled_path}")
    return {"records": written, "improved": improved}
