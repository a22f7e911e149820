"""Shared test fixtures and configuration."""

import os

import pytest

from corpus_builder.config import Settings


# Complete test environment that overrides every setting the suite depends on
TEST_ENV = {
    "CRAWLER_USER_AGENT": "CorpusBuilderTest/1.0",
    "HTTP_TIMEOUT": "30",
    "ROBOTS_TIMEOUT": "5",
    "CRAWL_TARGET_TOKENS": "100000",
    "CRAWL_MIN_TOKENS_PER_PAGE": "0",
    "CRAWL_MAX_PAGES": "50",
    "CRAWL_SAME_DOMAIN_ONLY": "true",
    "CRAWL_DELAY_MS": "0",  # No politeness delay in tests
    "CRAWL_RESPECT_ROBOTS_TXT": "true",
    "MAX_TOKENS_PER_CORPUS": "900000",
    "MAX_REPO_FILE_BYTES": "500000",
    "LOG_LEVEL": "info",
    "LOG_JSON": "true",
}

# Variables that must not leak in from the developer's shell
UNSET_ENV = ("CRAWL_MAX_SUBREQUESTS", "GIT_AUTH_TOKEN_ENV", "LOG_LEVELS")


for key, value in TEST_ENV.items():
    os.environ[key] = value


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Pin settings to test defaults and keep stray .env files out of the way."""
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)
    for key in UNSET_ENV:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def settings() -> Settings:
    return Settings()
