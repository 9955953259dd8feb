from datetime import date

import pytest
from pydantic import ValidationError

import probate_config
from errors import ConfigurationError
from probate_config import ScraperSettings, load_settings
from schemas import BatchStats, DateChunk, FilingStub, Outcome, OutcomeStatus, ParsedRecord, ProbateQuery

ENV_VARS = [
    "BROWSERLESS_API_KEY", "BROWSERLESS_WS_ENDPOINT", "PORTAL_BASE_URL", "SCRAPER_LOCAL_BROWSER",
    "SCRAPER_HEADLESS", "REQUEST_DELAY_MS", "MAX_RETRIES", "RETRY_STEP_MS", "PAGE_TIMEOUT_MS",
    "CHALLENGE_TIMEOUT_S", "BATCH_SIZE", "MAX_RESULT_PAGES", "OCR_FALLBACK",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # keep a developer's .env out of the tests
    monkeypatch.setattr(probate_config, "load_dotenv", lambda: False)
    return monkeypatch


def test_defaults(clean_env):
    settings = load_settings()

    assert settings.request_delay_ms == 1500
    assert settings.max_retries == 2
    assert settings.retry_step_s == 2.0
    assert settings.batch_size == 2
    assert settings.base_url == "https://websurrogates.nycourts.gov"
    assert not settings.has_api_key()


def test_environment_values(clean_env):
    clean_env.setenv("BROWSERLESS_API_KEY", "abc123")
    clean_env.setenv("REQUEST_DELAY_MS", "250")
    clean_env.setenv("SCRAPER_LOCAL_BROWSER", "true")
    clean_env.setenv("PORTAL_BASE_URL", "https://example.test/")

    settings = load_settings(batch_size=5, headless=None)

    assert settings.has_api_key()
    assert settings.request_delay_s == 0.25
    assert settings.local_browser is True
    assert settings.headless is True
    assert settings.batch_size == 5
    assert settings.url("/File/FileSearch") == "https://example.test/File/FileSearch"


def test_bad_number_is_configuration_error(clean_env):
    clean_env.setenv("MAX_RETRIES", "lots")

    with pytest.raises(ConfigurationError):
        load_settings()


def test_placeholder_key_counts_as_missing():
    settings = ScraperSettings(browserless_api_key="your_api_key_here")

    assert not settings.has_api_key()
    with pytest.raises(ConfigurationError):
        settings.ws_endpoint()


def test_endpoint_hides_key():
    settings = ScraperSettings(browserless_api_key="secret-token")

    assert "secret-token" in settings.ws_endpoint()
    assert "secret-token" not in settings.redacted_endpoint()


def test_query_validation():
    query = ProbateQuery(county="15", proceeding="probate petition", from_date="01/01/2026", to_date="02/15/2026")

    assert query.proceeding == "PROBATE PETITION"
    assert query.start == date(2026, 1, 1)
    assert query.min_estate_value == 100000


@pytest.mark.parametrize("overrides", [
    {"county": "99"},
    {"proceeding": "DIVORCE"},
    {"from_date": "2026-01-01"},
    {"from_date": "03/01/2026"},
    {"min_estate_value": -1},
])
def test_query_rejects(overrides):
    fields = dict(county="15", proceeding="PROBATE PETITION", from_date="01/01/2026", to_date="02/15/2026")
    fields.update(overrides)

    with pytest.raises(ValidationError):
        ProbateQuery(**fields)


def test_date_chunk_must_stay_in_one_month():
    with pytest.raises(ValidationError):
        DateChunk(date_from=date(2026, 1, 31), date_to=date(2026, 2, 1))


def test_outcomes_and_stats():
    stub = FilingStub(file_number="2026-0001", file_date="01/20/2026", file_name="PUBLIC, JOHN")
    included = Outcome.included(stub, ParsedRecord(estate_value_upper=500000), "Jane Lawyer")
    skipped = Outcome.skipped(stub, "below threshold")
    stats = BatchStats()
    for outcome in (included, skipped, Outcome.error(stub, "No PDF available")):
        stats.count(outcome)

    assert included.status is OutcomeStatus.INCLUDED
    assert included.data.attorney == "Jane Lawyer"
    assert included.data.estate_value_upper == 500000
    assert skipped.data is None
    assert (stats.included, stats.skipped, stats.errors) == (1, 1, 1)
