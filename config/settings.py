"""Configuration management using pydantic-settings."""
from pathlib import Path
from typing import Optional

from pydantic import PositiveInt
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Hygraph endpoints (CDN first, Content API as fallback)
    hygraph_cdn_api: str = "https://cdn.hygraph.example/v2/blog/master"
    hygraph_content_api: str = "https://api.hygraph.example/v2/blog/master"
    hygraph_auth_token: Optional[str] = None

    # Upstream request behaviour
    request_timeout_seconds: float = 15.0
    slow_query_threshold_ms: int = 3000

    # Request deduplication
    dedup_completed_ttl_seconds: float = 5.0
    coalesce_wait_timeout_seconds: float = 45.0

    # Cache settings
    cache_namespace: str = "hygraph:"
    cache_durable_enabled: bool = False
    cache_db_path: Path = Path("./cache/hygraph_cache.db")

    # TTL per data category (seconds)
    ttl_default_seconds: PositiveInt = 60 * 60             # 1 hour
    ttl_image_seconds: PositiveInt = 48 * 60 * 60          # 48 hours
    ttl_categories_seconds: PositiveInt = 12 * 60 * 60     # 12 hours
    ttl_post_details_seconds: PositiveInt = 6 * 60 * 60    # 6 hours
    ttl_featured_posts_seconds: PositiveInt = 30 * 60      # 30 minutes
    ttl_recent_posts_seconds: PositiveInt = 15 * 60        # 15 minutes
    ttl_search_seconds: PositiveInt = 5 * 60               # 5 minutes
    ttl_live_scores_seconds: PositiveInt = 30              # 30 seconds

    # Image optimisation
    image_quality: int = 80

    # Admin access for destructive monitoring actions
    admin_key: Optional[str] = None

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
