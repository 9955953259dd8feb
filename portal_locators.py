"""
Portal Locators
===============

Every selector that depends on the Surrogate's Court markup lives here, so a
markup change on the portal touches this module only. Controls are looked up
by role through an ordered list of candidate selectors; tables and free text
are read from page HTML with BeautifulSoup.
"""

import logging
import re
from typing import Callable, Dict, List, Optional

from bs4 import BeautifulSoup, Tag

from errors import ControlNotFound

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# CONTROL SELECTORS (tried in order)
# ─────────────────────────────────────────────────────────────────────────────

CONTROL_SELECTORS: Dict[str, List[str]] = {
    # gate
    "welcome_proceed": [
        'button[name="WelcomePageButton"][value="Start"]',
        "button:has-text('Start Search')",
        "input[value='Start Search']",
    ],
    "search_entry": [
        'a[href*="/File/FileSearch"]',
        "a:has-text('File Search')",
    ],
    "challenge_widget": [
        "iframe[src*='hcaptcha']",
        "div.h-captcha",
        "iframe[src*='recaptcha']",
        "div.g-recaptcha",
    ],
    "challenge_response": [
        "textarea[name='h-captcha-response']",
        "textarea[name='g-recaptcha-response']",
    ],
    # search form
    "court_select": ["#CourtSelect", 'select[id*="Court"]', 'select[name*="Court"]'],
    "proceeding_select": ["#SelectedProceeding", 'select[id*="Proceeding"]'],
    "file_number_input": ["#FileNumber", 'input[name="FileNumber"]'],
    "date_from_input": ["#txtFilingDateFrom", 'input[name="FromDateString"]'],
    "date_to_input": ["#txtFilingDateTo", 'input[name="ToDateString"]'],
    "date_search_submit": ["#FileSearchSubmit2"],
    "file_search_submit": ["#FileSearchSubmit"],
    # results
    "next_page": ["a:has-text('>')"],
}

# Controls the search page must expose (used by the connection check)
SEARCH_FORM_ROLES = [
    "court_select",
    "proceeding_select",
    "file_number_input",
    "date_from_input",
    "date_to_input",
]

FILING_SELECT_BUTTON = "button.ButtonAsLink"

CHALLENGE_URL_MARKERS = ("captcha", "challenge")

NO_RECORDS_MARKERS = ("No records found", "no records")
MONTH_LIMIT_MARKER = "must be within one calendar month"

RESULTS_SUMMARY_RE = re.compile(r"Results\s+(\d+)\s*-\s*(\d+)\s+of\s+(\d+)", re.IGNORECASE)

# Embedded PDF viewer sources, in the order they are checked
VIEWER_SOURCE_JS = """
() => {
  const embed = document.querySelector('embed[type="application/pdf"]');
  if (embed && embed.src) return embed.src;
  const iframe = document.querySelector('iframe');
  if (iframe && iframe.src) return iframe.src;
  const obj = document.querySelector('object[type="application/pdf"]');
  if (obj && obj.data) return obj.data;
  const link = document.querySelector('a[href*=".pdf"], a[download]');
  if (link) return link.href;
  return null;
}
"""

# ─────────────────────────────────────────────────────────────────────────────
# CONTROL LOOKUP
# ─────────────────────────────────────────────────────────────────────────────

async def find_control(page, role: str):
    """Return the first element matching one of the role's selectors, or None"""
    for sel in CONTROL_SELECTORS[role]:
        try:
            element = await page.query_selector(sel)
        except Exception as e:
            logger.debug(f"Selector failed {sel}: {e}")
            continue
        if element:
            logger.debug(f"Found '{role}' via {sel}")
            return element
    return None


async def require_control(page, role: str):
    element = await find_control(page, role)
    if element is None:
        raise ControlNotFound(role, getattr(page, "url", ""))
    return element


async def wait_for_control(page, role: str, timeout_ms: int):
    """Wait (bounded) until any of the role's selectors is attached"""
    return await page.wait_for_selector(", ".join(CONTROL_SELECTORS[role]), timeout=timeout_ms)


def filing_button_selector(file_number: str) -> str:
    return f'{FILING_SELECT_BUTTON}[value="{file_number}"], button[value="{file_number}"]'


def document_link_selector(label: str) -> str:
    return f'a:has-text("{label}")'

# ─────────────────────────────────────────────────────────────────────────────
# HTML READERS
# ─────────────────────────────────────────────────────────────────────────────

def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def page_text(html: str) -> str:
    """Visible text with one line per block, for line-anchored patterns"""
    soup = make_soup(html)
    for tag in soup(["script", "style"]):
        tag.decompose()
    lines = (line.strip() for line in soup.get_text("\n").splitlines())
    return "\n".join(line for line in lines if line)


def _cell_text(cell: Tag) -> str:
    return re.sub(r"\s+", " ", cell.get_text(" ", strip=True)).strip()


def extract_table(html: str, header_predicate: Callable[[List[str]], bool]) -> List[Dict[str, str]]:
    """
    Rows of the first table whose upper-cased header cells satisfy
    ``header_predicate``, each row keyed by its column header.
    """
    soup = make_soup(html)
    for table in soup.find_all("table"):
        headers = [_cell_text(th).upper() for th in table.find_all("th")]
        if not headers or not header_predicate(headers):
            continue
        rows = []
        for tr in table.find_all("tr"):
            cells = tr.find_all("td")
            if cells:
                rows.append(dict(zip(headers, (_cell_text(td) for td in cells))))
        return rows
    return []


def extract_result_rows(html: str) -> List[Dict[str, str]]:
    """Search-result rows that carry a filing-selection button"""
    soup = make_soup(html)
    results = []
    for tr in soup.select("table tr"):
        cells = tr.find_all("td")
        if len(cells) < 5:
            continue
        button = cells[0].select_one(FILING_SELECT_BUTTON)
        if button is None:
            continue
        file_number = (button.get("value") or "").strip()
        if not file_number:
            continue
        results.append({
            "file_number": file_number,
            "file_date": _cell_text(cells[1]),
            "file_name": _cell_text(cells[2]),
            "proceeding": _cell_text(cells[3]),
            "date_of_death": _cell_text(cells[4]),
        })
    return results


def find_document_link(html: str, label: str) -> Optional[Tag]:
    """First <a> whose visible text contains the document label"""
    soup = make_soup(html)
    wanted = label.upper()
    for link in soup.find_all("a"):
        if wanted in _cell_text(link).upper():
            return link
    return None


def parse_results_summary(text: str) -> Optional[Dict[str, int]]:
    match = RESULTS_SUMMARY_RE.search(text or "")
    if not match:
        return None
    return {
        "start": int(match.group(1)),
        "end": int(match.group(2)),
        "total": int(match.group(3)),
    }
