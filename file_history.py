"""
File History lookup.

Looks up one filing by its file number, reads the party table and header
metadata from the File History page, and locates the petition document link.
"""

import logging
import re
from typing import List, Optional
from urllib.parse import urljoin

from browser_session import PortalSession
from file_search import open_search_page
from portal_locators import (
    document_link_selector,
    extract_table,
    filing_button_selector,
    find_document_link,
    page_text,
    require_control,
    wait_for_control,
)
from probate_config import DOCUMENT_LABELS, FILE_HISTORY_MARKER
from retry_utils import polite_delay
from schemas import FilingDetail, FilingMetadata, Party

logger = logging.getLogger(__name__)

SETTLE_S = 0.8

DEFAULT_DOCUMENT_LABEL = DOCUMENT_LABELS["PROBATE PETITION"]


def _labelled(text: str, label: str, value_pattern: str = r".+") -> Optional[str]:
    """Value after ``Label:`` up to the end of its line (or on the next line)"""
    pattern = (
        rf"(?:^|\s){re.escape(label)}:[ \t]*(?:\n[ \t]*)?"
        rf"(?![A-Za-z ]+:)({value_pattern})"
    )
    match = re.search(pattern, text, re.MULTILINE | re.IGNORECASE)
    if not match:
        return None
    value = match.group(1).strip()
    return value or None


def extract_metadata(text: str) -> FilingMetadata:
    """File Date / Estate Closed / Judge / Estate Attorney from page text"""
    return FilingMetadata(
        file_date=_labelled(text, "File Date", r"\d{2}/\d{2}/\d{4}"),
        estate_closed=_labelled(text, "Estate Closed", r"\w+"),
        judge=_labelled(text, "Judge"),
        attorney=_labelled(text, "Estate Attorney"),
    )


def _column(row: dict, *names: str) -> str:
    for header, value in row.items():
        if any(name in header for name in names):
            return value
    return ""


def _is_party_table(headers: List[str]) -> bool:
    return any("PARTY" in h for h in headers) and any("ROLE" in h for h in headers)


def extract_parties(html: str) -> List[Party]:
    """Party rows from the table whose header has both Party and Role columns"""
    parties = []
    for row in extract_table(html, _is_party_table):
        name = _column(row, "PARTY", "NAME")
        if not name:
            continue
        parties.append(Party(
            name=name,
            role=_column(row, "ROLE"),
            date_of_death=_column(row, "DOD", "DEATH"),
        ))
    return parties


async def _open_in_new_tab(session: PortalSession, label: str) -> Optional[str]:
    """Click a script-driven document link and read the URL of the tab it opens"""
    page = session.page
    link = await page.query_selector(document_link_selector(label))
    if link is None or session.context is None:
        return None

    async with session.context.expect_page(timeout=session.settings.page_timeout_ms) as new_page_info:
        await link.click()
    new_page = await new_page_info.value
    try:
        await new_page.wait_for_load_state("domcontentloaded")
        return new_page.url
    finally:
        await new_page.close()


async def locate_document(session: PortalSession, html: str, label: str) -> Optional[str]:
    """Absolute URL of the document link, or None when the filing has none"""
    link = find_document_link(html, label)
    if link is None:
        logger.info(f"No '{label}' document link on this filing")
        return None

    href = (link.get("href") or "").strip()
    if href and not href.lower().startswith(("javascript:", "#")):
        page_url = session.page.url or ""
        base = page_url if page_url.startswith("http") else session.settings.base_url + "/"
        return urljoin(base, href)

    logger.debug(f"'{label}' link has no usable href - following the new tab instead")
    return await _open_in_new_tab(session, label)


async def resolve_filing(
    session: PortalSession,
    file_number: str,
    court_id: str,
    document_label: str = DEFAULT_DOCUMENT_LABEL,
) -> FilingDetail:
    """Look up one filing and return its parties, metadata and document link"""
    session.require_ready()
    settings = session.settings
    page = session.page

    logger.info(f"📄 Looking up file {file_number}")
    await open_search_page(session)
    await wait_for_control(page, "court_select", settings.page_timeout_ms)

    court = await require_control(page, "court_select")
    await court.select_option(court_id)
    number_input = await require_control(page, "file_number_input")
    await number_input.fill(file_number)

    submit = await require_control(page, "file_search_submit")
    await submit.click()
    await page.wait_for_load_state("domcontentloaded", timeout=settings.page_timeout_ms)
    await polite_delay(SETTLE_S)

    # a file number search can land on a one-row results list instead of the history
    if FILE_HISTORY_MARKER not in (page.url or ""):
        button = await page.query_selector(filing_button_selector(file_number))
        if button is not None:
            await button.click()
            await page.wait_for_load_state("domcontentloaded", timeout=settings.page_timeout_ms)
            await polite_delay(SETTLE_S)
        else:
            logger.warning(f"⚠️ File {file_number} not listed in lookup results")

    html = await page.content()
    detail = FilingDetail(
        parties=extract_parties(html),
        metadata=extract_metadata(page_text(html)),
        document_reference=await locate_document(session, html, document_label),
    )
    logger.info(
        f"File {file_number}: {len(detail.parties)} parties, "
        f"document={'yes' if detail.document_reference else 'no'}"
    )
    return detail
