# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from dataclasses import dataclass

from pydantic_settings import BaseSettings

from linkembed import __version__


class Settings(BaseSettings):
    # Project configuration
    PROJECT_NAME: str = "LinkEmbed"
    VERSION: str = __version__
    API_PREFIX: str = "/api"
    # API docs toggle (from env ENABLE_API_DOCS, default True)
    ENABLE_API_DOCS: bool = True
    LOG_LEVEL: str = "INFO"

    # Outbound HTTP configuration
    HTTP_REQUEST_TIMEOUT: float = 30.0  # seconds, per attempt
    MAX_REDIRECTS: int = 10  # Location hops followed before giving up
    # Appended to the User-Agent comment as "+<url>" when set
    USER_AGENT_URL: str = ""
    # Bytes of an HTML page read for Open Graph tags; other media bodies are never read
    MAX_HTML_BYTES: int = 2 * 1024 * 1024

    # Retry configuration
    REQUEST_RETRY_WAIT: float = 1.0  # initial wait after a failed attempt (seconds)
    REQUEST_RETRY_FACTOR: float = 2.0  # multiplier applied to the wait per retry
    REQUEST_RETRY_COUNT: int = 4  # retries after the first attempt
    # A failed resolution is replayed (not refetched) for this long
    ERROR_RESPONSE_CACHE_AGE: float = 300.0  # 5 minutes in seconds
    # Upper bound on resolving the moved-to URL of a redirected resource
    RESTART_TIMEOUT: float = 300.0

    # Metadata cache configuration
    # memory: in-process store sharing live objects across requests
    # redis: serialized store shared by workers
    # none: every request resolves from scratch
    METADATA_CACHE_BACKEND: str = "memory"
    METADATA_CACHE_TTL: int = 3600  # 1 hour in seconds
    METADATA_CACHE_MAX_ENTRIES: int = 10000
    REDIS_URL: str = "redis://127.0.0.1:6379/0"

    # Providers
    # Catch-all Open Graph scraper; disabling it leaves unmatched hosts unresolved
    UNKNOWN_PROVIDER_ENABLED: bool = True
    # JSON list of oEmbed endpoints, registered before the catch-all provider
    # Example:
    # [
    #     {
    #         "name": "YouTube",
    #         "hosts": ["youtube.com", "youtu.be"],
    #         "schemes": ["https://*.youtube.com/watch*", "https://youtu.be/*"],
    #         "endpoint": "https://www.youtube.com/oembed"
    #     }
    # ]
    OEMBED_PROVIDERS: str = "[]"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Global configuration instance
settings = Settings()


@dataclass(frozen=True)
class ServiceConfig:
    """Retry, timeout and transport options of one MetadataService.

    Passed explicitly to the service instead of read from module globals so
    tests and embedders can run services with different policies side by side.
    """

    http_request_timeout: float = 30.0
    max_redirects: int = 10
    request_retry_wait: float = 1.0
    request_retry_factor: float = 2.0
    request_retry_count: int = 4
    error_response_cache_age: float = 300.0
    user_agent_url: str = ""
    max_html_bytes: int = 2 * 1024 * 1024
    restart_timeout: float = 300.0

    @classmethod
    def from_settings(cls, source: Settings) -> "ServiceConfig":
        return cls(
            http_request_timeout=source.HTTP_REQUEST_TIMEOUT,
            max_redirects=source.MAX_REDIRECTS,
            request_retry_wait=source.REQUEST_RETRY_WAIT,
            request_retry_factor=source.REQUEST_RETRY_FACTOR,
            request_retry_count=source.REQUEST_RETRY_COUNT,
            error_response_cache_age=source.ERROR_RESPONSE_CACHE_AGE,
            user_agent_url=source.USER_AGENT_URL,
            max_html_bytes=source.MAX_HTML_BYTES,
            restart_timeout=source.RESTART_TIMEOUT,
        )
