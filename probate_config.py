"""
Probate Scraper Configuration
=============================

Portal constants, the county/proceeding registries, and runtime settings
loaded from the environment (``.env`` supported via python-dotenv).

To add a county: add an entry to COURTS.
To add a proceeding type: add an entry to LIST_TYPES.
"""

import os
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from errors import ConfigurationError

# ─────────────────────────────────────────────────────────────────────────────
# REGISTRIES
# ─────────────────────────────────────────────────────────────────────────────

COURTS: Dict[str, str] = {
    "15": "Erie County",
    # "31": "New York County",
    # "24": "Kings County",
}

LIST_TYPES: Dict[str, str] = {
    "PROBATE PETITION": "Probate",
    # "ADMINISTRATION PETITION": "Administration",
}

# Document link label on the File History page, per proceeding type
DOCUMENT_LABELS: Dict[str, str] = {
    "PROBATE PETITION": "PROBATE PETITION",
}

# ─────────────────────────────────────────────────────────────────────────────
# PORTAL PATHS
# ─────────────────────────────────────────────────────────────────────────────

BASE_URL = "https://websurrogates.nycourts.gov"
WELCOME_PATH = "/Home/Welcome"
SEARCH_PATH = "/File/FileSearch"
FILE_HISTORY_MARKER = "FileHistory"

DEFAULT_ENDPOINT = "wss://production-sfo.browserless.io/stealth?token={token}&solveCaptchas=true"
PLACEHOLDER_KEYS = {"", "your_api_key_here"}

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/125 Safari/537.36"
)


# ─────────────────────────────────────────────────────────────────────────────
# SETTINGS
# ─────────────────────────────────────────────────────────────────────────────

class ScraperSettings(BaseModel):
    """Runtime settings for one scraper process"""

    browserless_api_key: Optional[str] = Field(default=None, description="Browserless.io API token")
    browserless_endpoint: str = Field(default=DEFAULT_ENDPOINT, description="CDP websocket URL template")
    base_url: str = Field(default=BASE_URL, description="Portal base URL")

    local_browser: bool = Field(default=False, description="Launch a local Chromium instead of Browserless")
    headless: bool = Field(default=True, description="Headless mode for a local browser")
    user_agent: str = Field(default=USER_AGENT)

    request_delay_ms: int = Field(default=1500, ge=0, description="Pause between filings")
    max_retries: int = Field(default=2, ge=1, description="Attempts per retried operation")
    retry_step_ms: int = Field(default=2000, ge=0, description="Linear backoff step")
    page_timeout_ms: int = Field(default=15000, gt=0, description="Default page/navigation timeout")
    challenge_timeout_s: float = Field(default=25.0, gt=0, description="Upper bound on challenge solving")
    challenge_poll_s: float = Field(default=0.5, gt=0)
    max_gate_transitions: int = Field(default=4, ge=1)
    batch_size: int = Field(default=2, ge=1, description="Filings per processing session")
    max_result_pages: int = Field(default=50, ge=1)
    ocr_fallback: bool = Field(default=False, description="OCR scanned petitions with tesseract")

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v):
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")

    @property
    def request_delay_s(self) -> float:
        return self.request_delay_ms / 1000

    @property
    def retry_step_s(self) -> float:
        return self.retry_step_ms / 1000

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def has_api_key(self) -> bool:
        return (self.browserless_api_key or "").strip() not in PLACEHOLDER_KEYS

    def ws_endpoint(self) -> str:
        """Browserless websocket URL; raises ConfigurationError without a key"""
        if not self.has_api_key():
            raise ConfigurationError(
                "BROWSERLESS_API_KEY is not configured. Set it in the environment or .env file."
            )
        return self.browserless_endpoint.format(token=self.browserless_api_key)

    def redacted_endpoint(self) -> str:
        return self.browserless_endpoint.format(token="API_KEY_HIDDEN")


def _env_bool(name: str) -> Optional[bool]:
    value = os.getenv(name)
    if value is None:
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


# env var -> (field, parser)
_ENV_FIELDS = {
    "BROWSERLESS_API_KEY": ("browserless_api_key", str),
    "BROWSERLESS_WS_ENDPOINT": ("browserless_endpoint", str),
    "PORTAL_BASE_URL": ("base_url", str),
    "REQUEST_DELAY_MS": ("request_delay_ms", int),
    "MAX_RETRIES": ("max_retries", int),
    "RETRY_STEP_MS": ("retry_step_ms", int),
    "PAGE_TIMEOUT_MS": ("page_timeout_ms", int),
    "CHALLENGE_TIMEOUT_S": ("challenge_timeout_s", float),
    "BATCH_SIZE": ("batch_size", int),
    "MAX_RESULT_PAGES": ("max_result_pages", int),
}

_ENV_FLAGS = {
    "SCRAPER_LOCAL_BROWSER": "local_browser",
    "SCRAPER_HEADLESS": "headless",
    "OCR_FALLBACK": "ocr_fallback",
}


def load_settings(**overrides) -> ScraperSettings:
    """Build settings from the environment, then apply explicit overrides"""
    load_dotenv()

    values = {}
    for env_name, (field, parser) in _ENV_FIELDS.items():
        raw = os.getenv(env_name)
        if raw is None or raw.strip() == "":
            continue
        try:
            values[field] = parser(raw.strip())
        except ValueError as e:
            raise ConfigurationError(f"Invalid value for {env_name}: {raw!r}") from e

    for env_name, field in _ENV_FLAGS.items():
        flag = _env_bool(env_name)
        if flag is not None:
            values[field] = flag

    values.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return ScraperSettings(**values)
    except ValueError as e:
        raise ConfigurationError(f"Invalid scraper settings: {e}") from e
