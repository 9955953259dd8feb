"""
Probate Pipeline
================

Two phases, each on its own browser session:

1. ``search_filings``   - split the date range into months, search each month,
                          return the de-duplicated filing stubs
2. ``process_filings``  - for each stub: File History lookup, petition download,
                          parse, estate-value filter -> one Outcome per filing

Failures of a single filing become ``error``/``skipped`` outcomes. Failures of
a whole phase (cannot connect, gate never clears, a month search keeps
failing) propagate to the caller after being written to the error sink.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from browser_session import PortalSession, connect_session
from date_chunks import split_date_range
from error_log import ErrorSink
from file_history import DEFAULT_DOCUMENT_LABEL, resolve_filing
from file_search import collect_filings, dedupe_filings
from gate_bypass import bypass_gate
from petition_document import fetch_document_text
from petition_parser import meets_threshold, parse_petition_text, threshold_reason
from probate_config import ScraperSettings
from retry_utils import polite_delay, with_retry
from schemas import BatchReport, FilingStub, Outcome, ProbateQuery, SearchReport

logger = logging.getLogger(__name__)

SessionFactory = Callable[[ScraperSettings], Awaitable[PortalSession]]

NO_DOCUMENT_REASON = "No PDF available"
EMPTY_TEXT_REASON = "PDF text extraction empty (possible scanned image)"


def batch_filings(stubs: List[FilingStub], size: int) -> List[List[FilingStub]]:
    """Group stubs into consecutive batches of ``size`` (last one may be short)"""
    if size < 1:
        raise ValueError("batch size must be at least 1")
    return [stubs[i:i + size] for i in range(0, len(stubs), size)]


async def _retry(settings: ScraperSettings, operation, label: str):
    return await with_retry(
        operation,
        label=label,
        max_attempts=settings.max_retries,
        step_s=settings.retry_step_s,
    )


async def open_session(settings: ScraperSettings, connect: SessionFactory = connect_session) -> PortalSession:
    """Connect and walk the gate, both retried"""
    session = await _retry(settings, lambda: connect(settings), "Connect to browser")
    try:
        await _retry(settings, lambda: bypass_gate(session), "Gate bypass")
    except BaseException:
        await session.close()
        raise
    return session


def _record(sink: Optional[ErrorSink], source: str, error: BaseException, **details):
    if sink is not None:
        sink.record(source, str(error), details)

# ─────────────────────────────────────────────────────────────────────────────
# PHASE 1: SEARCH
# ─────────────────────────────────────────────────────────────────────────────

async def search_filings(
    settings: ScraperSettings,
    query: ProbateQuery,
    error_sink: Optional[ErrorSink] = None,
    connect: SessionFactory = connect_session,
) -> SearchReport:
    """Collect every filing in the query's date range, one month at a time"""
    chunks = split_date_range(query.start, query.end)
    logger.info(f"🗓️ Searching {len(chunks)} month chunk(s) from {query.from_date} to {query.to_date}")

    try:
        session = await open_session(settings, connect)
    except Exception as e:
        _record(error_sink, "search", e, phase="connect")
        raise

    all_files: List[FilingStub] = []
    async with session:
        for index, chunk in enumerate(chunks):
            async def _search_chunk(chunk=chunk):
                await bypass_gate(session)
                return await collect_filings(session, chunk, query.county, query.proceeding)

            try:
                files = await _retry(settings, _search_chunk, f"Search {chunk.label()}")
            except Exception as e:
                _record(error_sink, "search", e, chunk=chunk.label())
                raise

            all_files.extend(files)
            logger.info(f"✅ {chunk.label()}: {len(files)} filing(s)")
            if index < len(chunks) - 1:
                await polite_delay(settings.request_delay_s)

    unique = dedupe_filings(all_files)
    logger.info(f"🎯 Search complete: {len(unique)} unique filing(s) ({len(all_files)} rows)")
    return SearchReport(files=unique, total_count=len(unique), date_chunks=chunks)

# ─────────────────────────────────────────────────────────────────────────────
# PHASE 2: PROCESS
# ─────────────────────────────────────────────────────────────────────────────

async def process_filing(
    session: PortalSession,
    stub: FilingStub,
    county: str,
    min_value: float,
    document_label: str = DEFAULT_DOCUMENT_LABEL,
) -> Outcome:
    """Lookup, download, parse and filter one filing"""
    settings = session.settings

    async def _lookup():
        await bypass_gate(session)
        return await resolve_filing(session, stub.file_number, county, document_label)

    detail = await _retry(settings, _lookup, f"Lookup {stub.file_number}")
    if not detail.document_reference:
        return Outcome.error(stub, NO_DOCUMENT_REASON)

    text = await _retry(
        settings,
        lambda: fetch_document_text(session, detail.document_reference),
        f"PDF parse {stub.file_number}",
    )
    if not text or not text.strip():
        return Outcome.skipped(stub, EMPTY_TEXT_REASON)

    record = parse_petition_text(text)
    if record.parse_errors:
        logger.warning(f"⚠️ {stub.file_number}: partial parse ({'; '.join(record.parse_errors)})")

    if not meets_threshold(record, min_value):
        return Outcome.skipped(stub, threshold_reason(record, min_value))

    return Outcome.included(stub, record, detail.metadata.attorney)


async def process_filings(
    settings: ScraperSettings,
    county: str,
    stubs: List[FilingStub],
    min_value: float = 100000,
    cancel_event: Optional[asyncio.Event] = None,
    error_sink: Optional[ErrorSink] = None,
    session: Optional[PortalSession] = None,
    connect: SessionFactory = connect_session,
) -> BatchReport:
    """
    Process ``stubs`` sequentially on one session.

    A supplied session is used as-is and left open; otherwise one is opened
    for this call and closed afterwards. Setting ``cancel_event`` stops the
    run before the next filing starts.
    """
    report = BatchReport()
    if not stubs:
        return report

    owns_session = session is None
    if owns_session:
        try:
            session = await open_session(settings, connect)
        except Exception as e:
            _record(error_sink, "process", e, phase="connect")
            raise

    try:
        for index, stub in enumerate(stubs):
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"🛑 Cancelled - {len(stubs) - index} filing(s) not started")
                report.cancelled = True
                break

            try:
                outcome = await process_filing(session, stub, county, min_value)
            except Exception as e:
                logger.error(f"❌ {stub.file_number}: {e}")
                _record(error_sink, "process", e, file_number=stub.file_number)
                outcome = Outcome.error(stub, str(e))

            report.add(outcome)
            logger.info(f"{stub.file_number}: {outcome.status.value}{f' ({outcome.reason})' if outcome.reason else ''}")

            if index < len(stubs) - 1:
                await polite_delay(settings.request_delay_s)
    finally:
        if owns_session:
            await session.close()

    return report


async def process_in_batches(
    settings: ScraperSettings,
    county: str,
    stubs: List[FilingStub],
    min_value: float = 100000,
    batch_size: Optional[int] = None,
    cancel_event: Optional[asyncio.Event] = None,
    error_sink: Optional[ErrorSink] = None,
    connect: SessionFactory = connect_session,
) -> BatchReport:
    """Run process_filings batch by batch, each batch on a fresh session"""
    batches = batch_filings(stubs, batch_size or settings.batch_size)
    combined = BatchReport()

    for number, batch in enumerate(batches, start=1):
        if cancel_event is not None and cancel_event.is_set():
            combined.cancelled = True
            break
        logger.info(f"📦 Batch {number}/{len(batches)} ({len(batch)} filing(s))")
        report = await process_filings(
            settings,
            county,
            batch,
            min_value,
            cancel_event=cancel_event,
            error_sink=error_sink,
            connect=connect,
        )
        combined.results.extend(report.results)
        combined.batch_stats.merge(report.batch_stats)
        if report.cancelled:
            combined.cancelled = True
            break

    stats = combined.batch_stats
    logger.info(f"📊 Included {stats.included}, skipped {stats.skipped}, errors {stats.errors}")
    return combined
