"""
Petition Document Retrieval
===========================

Downloads the petition PDF behind a File History document link and returns
its text. The portal serves documents through a viewer page, so retrieval
tries several strategies on a throwaway page until one produces PDF bytes:

1. the viewer URL itself answers with a PDF
2. the viewer embeds the PDF (embed / iframe / object / download link)
3. a reload of the viewer with network responses observed

Text comes from pdfplumber; scanned petitions can fall back to OCR.
"""

import gc
import io
import logging
from typing import Awaitable, Callable, List, Optional

import pdfplumber
import pytesseract
from pdf2image import convert_from_bytes
from playwright.async_api import Error as PlaywrightError

from browser_session import PortalSession
from errors import DocumentUnavailable
from portal_locators import VIEWER_SOURCE_JS
from retry_utils import polite_delay

logger = logging.getLogger(__name__)

OCR_DPI = 300


def _is_pdf_response(response) -> bool:
    content_type = (response.headers or {}).get("content-type", "")
    return "pdf" in content_type.lower() or ".pdf" in (response.url or "").lower()


async def _body(response) -> Optional[bytes]:
    if response is None:
        return None
    body = await response.body()
    return body or None


# ─────────────────────────────────────────────────────────────────────────────
# RETRIEVAL STRATEGIES
# ─────────────────────────────────────────────────────────────────────────────

async def _direct_response(session: PortalSession, page, url: str) -> Optional[bytes]:
    """The viewer URL already answers with the PDF"""
    timeout = session.settings.page_timeout_ms
    response = await page.goto(url, wait_until="domcontentloaded", timeout=timeout)
    await polite_delay(session.settings.request_delay_s)
    if response is not None and _is_pdf_response(response):
        return await _body(response)
    return None


async def _viewer_source(session: PortalSession, page, url: str) -> Optional[bytes]:
    """Follow the embedded viewer's source to the PDF itself"""
    source = await page.evaluate(VIEWER_SOURCE_JS)
    if not source:
        logger.debug("Viewer page has no embedded document source")
        return None
    logger.debug(f"Following viewer source {source}")
    response = await page.goto(source, wait_until="load", timeout=session.settings.page_timeout_ms)
    return await _body(response)


async def _reload_intercept(session: PortalSession, page, url: str) -> Optional[bytes]:
    """Reload the viewer and keep the first PDF-looking network response"""
    timeout = session.settings.page_timeout_ms
    if page.url != url:
        await page.goto(url, wait_until="domcontentloaded", timeout=timeout)

    captured: List = []

    def _on_response(response):
        if _is_pdf_response(response):
            captured.append(response)

    page.on("response", _on_response)
    try:
        await page.reload(wait_until="load", timeout=timeout)
        await polite_delay(session.settings.request_delay_s)
    finally:
        page.remove_listener("response", _on_response)

    for response in captured:
        try:
            body = await _body(response)
        except PlaywrightError as e:
            # redirects and aborted requests have no body
            logger.debug(f"No body for {response.url}: {e}")
            continue
        if body:
            return body
    return None


Strategy = Callable[[PortalSession, object, str], Awaitable[Optional[bytes]]]

STRATEGIES: List[Strategy] = [_direct_response, _viewer_source, _reload_intercept]


async def fetch_document(session: PortalSession, url: str, strategies: Optional[List[Strategy]] = None) -> bytes:
    """
    Download the document at ``url`` on an auxiliary page.

    Raises DocumentUnavailable when no strategy yields any bytes.
    """
    if session.context is None:
        raise DocumentUnavailable("Session has no browser context to open a document page in")

    page = await session.context.new_page()
    try:
        for strategy in strategies or STRATEGIES:
            try:
                pdf_bytes = await strategy(session, page, url)
            except PlaywrightError as e:
                logger.warning(f"⚠️ {strategy.__name__} failed for {url}: {e}")
                continue
            if pdf_bytes:
                logger.info(f"📥 Downloaded document ({len(pdf_bytes)} bytes) via {strategy.__name__}")
                return pdf_bytes
    finally:
        try:
            await page.close()
        except PlaywrightError as e:
            logger.debug(f"Error closing document page: {e}")

    raise DocumentUnavailable(f"Could not download PDF content from {url}")


# ─────────────────────────────────────────────────────────────────────────────
# TEXT EXTRACTION
# ─────────────────────────────────────────────────────────────────────────────

def ocr_pdf_bytes(pdf_bytes: bytes) -> str:
    """Rasterise each page and read it with Tesseract"""
    images = convert_from_bytes(pdf_bytes, dpi=OCR_DPI)
    logger.info(f"OCR: converted PDF to {len(images)} image(s)")
    out = []
    for idx, img in enumerate(images):
        try:
            out.append(pytesseract.image_to_string(img, lang="eng"))
        except pytesseract.TesseractError as e:
            logger.error(f"OCR failed on page {idx + 1}: {e}")
        finally:
            img.close()
    del images
    gc.collect()
    return "\n".join(out)


def extract_text(pdf_bytes: bytes, ocr_fallback: bool = False) -> str:
    """Text layer of every page joined by newlines; OCR when the layer is empty"""
    try:
        with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
    except Exception as e:
        raise DocumentUnavailable(f"Could not read PDF: {e}") from e

    text = "\n".join(pages).strip()
    if not text and ocr_fallback:
        logger.info("PDF has no text layer - running OCR")
        text = ocr_pdf_bytes(pdf_bytes).strip()
    return text


async def fetch_document_text(session: PortalSession, reference: str) -> str:
    session.require_ready()
    pdf_bytes = await fetch_document(session, reference)
    return extract_text(pdf_bytes, session.settings.ocr_fallback)
