"""Centralized configuration for corpus-builder using Pydantic Settings."""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strictly typed configuration loaded from environment variables.

    Crawl defaults live here so callers can resolve a complete crawl
    configuration before a crawl starts. Every value can be overridden per
    invocation (CLI flags, ``UrlAdapter.load`` keyword arguments).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",  # Ignore extra env vars not defined in model
    )

    # HTTP/Request settings
    crawler_user_agent: str = Field(
        default="CorpusBuilder/0.1 (context-loader)",
        description="User-Agent header sent with page and robots.txt requests",
    )
    http_timeout: float = Field(default=30.0, gt=0, description="Per-page fetch timeout in seconds")
    robots_timeout: float = Field(default=5.0, gt=0, description="robots.txt fetch timeout in seconds")

    # Crawl defaults
    crawl_target_tokens: int = Field(default=100_000, ge=1, description="Soft token target for a crawl")
    crawl_min_tokens_per_page: int = Field(
        default=500, ge=0, description="Pages with fewer estimated tokens are discarded"
    )
    crawl_max_pages: int = Field(default=50, ge=1, description="Hard cap on accepted pages")
    crawl_same_domain_only: bool = Field(default=True, description="Only follow links on the discovering origin")
    crawl_delay_ms: int = Field(default=100, ge=0, description="Politeness delay between requests in milliseconds")
    crawl_respect_robots_txt: bool = Field(default=True, description="Honor robots.txt rules")
    crawl_max_subrequests: int | None = Field(
        default=None,
        ge=1,
        description="Hard cap on page fetches per crawl (set below the platform ceiling, e.g. 40)",
    )

    # Corpus limits
    max_tokens_per_corpus: int = Field(
        default=900_000, ge=1, description="Token ceiling for file, directory and combined corpora"
    )
    max_repo_file_bytes: int = Field(
        default=500_000, ge=1, description="Repository files larger than this are skipped"
    )
    git_auth_token_env: str | None = Field(
        default=None, description="Environment variable holding a token for private git clones"
    )

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")
    log_levels: dict[str, str] = Field(
        default_factory=dict,
        description="Per-logger level overrides as JSON, e.g. {\"httpx\": \"debug\"}",
    )

    @model_validator(mode="after")
    def _check_crawl_defaults(self) -> "Settings":
        if self.crawl_min_tokens_per_page > self.crawl_target_tokens:
            raise ValueError(
                "CRAWL_MIN_TOKENS_PER_PAGE cannot exceed CRAWL_TARGET_TOKENS; "
                "no page could ever be accepted towards the target."
            )
        return self
