"""
File Search
===========

Submits the File Information (date range) search for one month-sized chunk
and walks every result page, collecting one FilingStub per result row.
"""

import logging
from typing import Dict, Iterable, List, Optional

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from browser_session import PortalSession
from errors import GateBypassFailed, InvalidDateRange
from portal_locators import (
    MONTH_LIMIT_MARKER,
    NO_RECORDS_MARKERS,
    extract_result_rows,
    find_control,
    page_text,
    parse_results_summary,
    require_control,
)
from probate_config import SEARCH_PATH, WELCOME_PATH
from retry_utils import polite_delay
from schemas import DateChunk, FilingStub, SessionState

logger = logging.getLogger(__name__)

RESULTS = "results"
NO_RECORDS = "no_records"
MONTH_LIMIT = "month_limit"


async def open_search_page(session: PortalSession):
    """Navigate to File Search; safe to call any number of times"""
    settings = session.settings
    page = session.page
    url = settings.url(SEARCH_PATH)
    try:
        await page.goto(url, wait_until="networkidle", timeout=settings.page_timeout_ms + 5000)
    except PlaywrightTimeoutError:
        logger.debug("networkidle timed out on File Search - retrying with domcontentloaded")
        await page.goto(url, wait_until="domcontentloaded", timeout=settings.page_timeout_ms)

    if WELCOME_PATH.lower() in (page.url or "").lower():
        # cookie expired; the next bypass_gate call has to run the gate again
        session.state = SessionState.GATED
        raise GateBypassFailed(page.url, 0, "session was sent back to the welcome gate")


def classify_results(text: str) -> str:
    if any(marker in text for marker in NO_RECORDS_MARKERS):
        return NO_RECORDS
    if MONTH_LIMIT_MARKER in text:
        return MONTH_LIMIT
    return RESULTS


def has_more_pages(summary: Optional[Dict[str, int]], previous_end: Optional[int] = None) -> bool:
    """
    True only when the "Results A - B of N" summary says rows remain.
    An unreadable or non-advancing summary ends pagination.
    """
    if summary is None:
        return False
    if summary["end"] >= summary["total"]:
        return False
    if previous_end is not None and summary["end"] <= previous_end:
        return False
    return True


def dedupe_filings(stubs: Iterable[FilingStub]) -> List[FilingStub]:
    """Drop repeated file numbers, keeping the first occurrence and order"""
    seen = set()
    unique = []
    for stub in stubs:
        if stub.file_number in seen:
            continue
        seen.add(stub.file_number)
        unique.append(stub)
    return unique


async def _fill_date_search(session: PortalSession, chunk: DateChunk, court_id: str, proceeding_label: str):
    page = session.page

    court = await require_control(page, "court_select")
    await court.select_option(court_id)

    proceeding = await require_control(page, "proceeding_select")
    await proceeding.select_option(label=proceeding_label)

    date_from = await require_control(page, "date_from_input")
    await date_from.fill(chunk.from_str)

    date_to = await require_control(page, "date_to_input")
    await date_to.fill(chunk.to_str)


async def collect_filings(
    session: PortalSession,
    chunk: DateChunk,
    court_id: str,
    proceeding_label: str,
) -> List[FilingStub]:
    """Search one month chunk and return every filing across all result pages"""
    session.require_ready()
    settings = session.settings
    page = session.page

    logger.info(f"🔍 Searching {proceeding_label} filings {chunk.label()} (court {court_id})")
    await open_search_page(session)
    await polite_delay(settings.request_delay_s)

    await _fill_date_search(session, chunk, court_id, proceeding_label)

    submit = await require_control(page, "date_search_submit")
    await submit.click()
    await page.wait_for_load_state("domcontentloaded", timeout=settings.page_timeout_ms)
    await polite_delay(settings.request_delay_s)

    html = await page.content()
    text = page_text(html)
    status = classify_results(text)
    if status == NO_RECORDS:
        logger.info(f"No records for {chunk.label()}")
        return []
    if status == MONTH_LIMIT:
        raise InvalidDateRange(f"Date range {chunk.label()} exceeds one calendar month")

    files: List[FilingStub] = []
    pages_scraped = 0
    previous_end = None

    while True:
        pages_scraped += 1
        rows = extract_result_rows(html)
        files.extend(FilingStub(**row) for row in rows)
        logger.info(f"➡️ Page {pages_scraped}: {len(rows)} filings ({len(files)} so far)")

        summary = parse_results_summary(text)
        if not has_more_pages(summary, previous_end):
            break
        if pages_scraped >= settings.max_result_pages:
            logger.warning(f"⚠️ Stopping at page limit {settings.max_result_pages} for {chunk.label()}")
            break

        next_link = await find_control(page, "next_page")
        if next_link is None:
            logger.warning("Results summary reports more rows but no next-page link was found")
            break

        previous_end = summary["end"]
        await next_link.click()
        await page.wait_for_load_state("domcontentloaded", timeout=settings.page_timeout_ms)
        await polite_delay(settings.request_delay_s)
        html = await page.content()
        text = page_text(html)

    return files
