"""
Shared configuration management for the content proxy.
"""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="PROXY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = "local"
    log_level: str = "info"

    # Identity provider (client credentials)
    client_id: str = ""
    client_secret: str = ""
    tenant_id: str = ""
    authority_url: str = "https://login.microsoftonline.com"
    scope: str = "https://graph.microsoft.com/.default"
    token_expiry_margin: int = Field(default=600, ge=0)

    # Remote store
    graph_base_url: str = "https://graph.microsoft.com/v1.0"
    site_host: str = "technikapraha.sharepoint.com"
    site_path: str = "sites/jachting"
    gallery_path: str = "verejne/fotky-verejne"
    news_path: str = "verejne/novinky-verejne"
    http_timeout: float = Field(default=30.0, gt=0)
    max_redirects: int = Field(default=5, ge=0)
    max_listing_pages: int = Field(default=20, ge=1)
    auth_redirect_hosts: List[str] = ["login.microsoftonline.com"]

    # Caching
    cache_dir: str = "/tmp/content-proxy-cache"
    site_id_cache_seconds: int = 86400
    gallery_cache_seconds: int = 300
    news_cache_seconds: int = 600
    article_cache_seconds: int = 600
    image_cache_seconds: int = 3600

    # HTTP caching policy (Cache-Control max-age)
    years_max_age: int = 3600
    gallery_max_age: int = 300
    news_max_age: int = 600
    article_max_age: int = 3600
    image_max_age: int = 3600

    # CORS
    allowed_origins: List[str] = ["https://jachting.technika-praha.cz"]

    # Pagination
    default_page_size: int = Field(default=20, ge=1)

    # Enrichment
    enrichment_concurrency: int = Field(default=8, ge=1)
    excerpt_max_length: int = Field(default=220, ge=1)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
