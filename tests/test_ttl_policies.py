"""
TTL table and cache key generation tests.
"""
import pytest
from pydantic import ValidationError

from blogview.cache import OperationCategory, TTL_CONFIG, build_ttl_config, generate_cache_key, get_ttl_for
from config.settings import Settings


class TestTTLTable:
    """Category -> lifetime mapping."""

    def test_default_lifetimes(self):
        assert TTL_CONFIG[OperationCategory.IMAGE] == 48 * 3600
        assert TTL_CONFIG[OperationCategory.CATEGORIES] == 12 * 3600
        assert TTL_CONFIG[OperationCategory.POST_DETAILS] == 6 * 3600
        assert TTL_CONFIG[OperationCategory.DEFAULT] == 3600
        assert TTL_CONFIG[OperationCategory.FEATURED_POSTS] == 30 * 60
        assert TTL_CONFIG[OperationCategory.RECENT_POSTS] == 15 * 60
        assert TTL_CONFIG[OperationCategory.SEARCH] == 5 * 60
        assert TTL_CONFIG[OperationCategory.LIVE_SCORES] == 30

    def test_every_category_is_covered(self):
        assert set(TTL_CONFIG) == set(OperationCategory)

    def test_lookup_is_deterministic(self):
        for category in OperationCategory:
            assert get_ttl_for(category) == get_ttl_for(category) == TTL_CONFIG[category]

    def test_overrides(self):
        config = build_ttl_config({OperationCategory.SEARCH: 1})
        assert config[OperationCategory.SEARCH] == 1
        assert config[OperationCategory.DEFAULT] == 3600

    def test_non_positive_ttl_setting_rejected(self):
        with pytest.raises(ValidationError):
            Settings(ttl_search_seconds=0)

    def test_missing_category_falls_back_to_default(self):
        partial = {OperationCategory.DEFAULT: 42}
        assert get_ttl_for(OperationCategory.LIVE_SCORES, partial) == 42


class TestCacheKeys:
    """Deterministic keys from operation name + variables."""

    def test_operation_without_variables(self):
        assert generate_cache_key("categories") == "categories"
        assert generate_cache_key("categories", {}) == "categories"

    def test_variables_are_json_encoded(self):
        assert generate_cache_key("posts", {"limit": 12}) == "posts:limit=12"
        assert generate_cache_key("post", {"slug": "hello"}) == 'post:slug="hello"'

    def test_variable_order_does_not_matter(self):
        a = generate_cache_key("search", {"term": "x", "first": 5})
        b = generate_cache_key("search", {"first": 5, "term": "x"})
        assert a == b == 'search:first=5&term="x"'

    def test_nested_values_are_canonical(self):
        a = generate_cache_key("q", {"where": {"b": 1, "a": 2}})
        b = generate_cache_key("q", {"where": {"a": 2, "b": 1}})
        assert a == b

    def test_none_and_timestamp_are_ignored(self):
        assert generate_cache_key("posts", {"limit": 12, "after": None}) == "posts:limit=12"
        assert generate_cache_key("posts", {"limit": 12, "_timestamp": 1700000000}) == "posts:limit=12"

    def test_different_values_differ(self):
        assert generate_cache_key("posts", {"limit": 12}) != generate_cache_key("posts", {"limit": 13})
