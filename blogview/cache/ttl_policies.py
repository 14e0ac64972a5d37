"""
TTL configuration by operation category.
"""
from typing import Dict, Optional

from config.settings import settings

from .core import OperationCategory


def build_ttl_config(overrides: Optional[Dict[OperationCategory, int]] = None) -> Dict[OperationCategory, int]:
    """
    Build the category -> TTL (seconds) table from settings.

    Args:
        overrides: Optional per-category replacements (mainly for tests)

    Returns:
        Mapping covering every OperationCategory
    """
    config = {
        OperationCategory.IMAGE: settings.ttl_image_seconds,
        OperationCategory.CATEGORIES: settings.ttl_categories_seconds,
        OperationCategory.POST_DETAILS: settings.ttl_post_details_seconds,
        OperationCategory.DEFAULT: settings.ttl_default_seconds,
        OperationCategory.FEATURED_POSTS: settings.ttl_featured_posts_seconds,
        OperationCategory.RECENT_POSTS: settings.ttl_recent_posts_seconds,
        OperationCategory.SEARCH: settings.ttl_search_seconds,
        OperationCategory.LIVE_SCORES: settings.ttl_live_scores_seconds,
    }
    if overrides:
        config.update(overrides)
    return config


# Static table, read once at process start
TTL_CONFIG: Dict[OperationCategory, int] = build_ttl_config()


def get_ttl_for(
    category: OperationCategory,
    ttl_config: Optional[Dict[OperationCategory, int]] = None,
) -> int:
    """
    Get the TTL in seconds for an operation category.

    Unknown categories fall back to the DEFAULT TTL.
    """
    config = ttl_config if ttl_config is not None else TTL_CONFIG
    return config.get(category, config[OperationCategory.DEFAULT])
