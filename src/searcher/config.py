"""Searcher configuration loaded from environment variables."""
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from searcher.retry import RetryPolicy


class Settings(BaseSettings):
    """Searcher configuration loaded from environment variables.

    Attributes:
        host: Bind address for the API server.
        port: Port number for the API server.
        debug: Enable debug logging and API documentation.
        base_url: Route prefix for search result pages.
        items_per_page: Page size for search result listings.
        retry_delay: Initial retry delay in milliseconds.
        retry_factor: Multiplier applied to the delay after each retry.
        retry_attempts: Maximum attempts per backend operation.
        backend: Search backend implementation to use.
        elasticsearch_url: Elasticsearch node URL.
        default_index: Backend index name of the shared default target.
        reindex_concurrency: Records fetched and written per reindex page.
        reindex_interval_ms: Pause between reindex pages.
        event_queue_size: Mutation event queue bound (0 = unbounded).
    """

    model_config = SettingsConfigDict(
        env_prefix="SEARCHER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False
    base_url: str = "/search"
    items_per_page: int = 20

    retry_delay: int = 200
    retry_factor: float = 4
    retry_attempts: int = 4

    backend: Literal["elasticsearch", "memory"] = "elasticsearch"
    elasticsearch_url: str = "http://localhost:9200"
    default_index: str = "searcher"

    reindex_concurrency: int = 1000
    reindex_interval_ms: int = 100
    event_queue_size: int = 0

    @computed_field
    @property
    def retry_policy(self) -> RetryPolicy:
        """Build the backend retry policy from the retry settings.

        Returns:
            RetryPolicy with the configured delay, factor and attempts.
        """
        return RetryPolicy(
            delay_ms=self.retry_delay,
            factor=self.retry_factor,
            max_attempts=self.retry_attempts,
        )
