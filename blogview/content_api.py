"""
Content data-access functions for pages and components.
All reads go through the fetch orchestrator (cache + dedup + CDN fallback).
"""
import logging
from typing import Any, Dict, List, Optional

from blogview.cache import FetchOrchestrator, Operation, OperationCategory, get_orchestrator
from config.settings import settings

# Configure logging for the data layer
logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger("content_api")

DEFAULT_PAGE_SIZE = 12
MAX_POSTS_PER_PAGE = 50

# Served when the CMS is unreachable and nothing is cached
FALLBACK_CATEGORIES = [
    {"name": "Technology", "slug": "technology"},
    {"name": "Web Development", "slug": "web-development"},
    {"name": "Programming", "slug": "programming"},
]

POST_CARD_FIELDS = """
    title
    slug
    excerpt
    createdAt
    publishedAt
    featuredImage { url }
    author { name photo { url } }
    categories { name slug }
"""


def _edge_nodes(connection: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Flatten a Relay-style connection into its nodes."""
    if not isinstance(connection, dict):
        raise TypeError(f"expected a connection object, got {type(connection).__name__}")
    return [edge["node"] for edge in connection.get("edges") or [] if edge.get("node")]


# ===== OPERATIONS =====

POSTS = Operation(
    name="posts",
    query=f"""
    query GetPosts($limit: Int!) {{
      postsConnection(first: $limit, orderBy: publishedAt_DESC) {{
        edges {{ cursor node {{ {POST_CARD_FIELDS} }} }}
      }}
    }}
    """,
    category=OperationCategory.DEFAULT,
    root_field="postsConnection",
    transform=_edge_nodes,
    optimize_images=True,
)

RECENT_POSTS = Operation(
    name="recent",
    query=f"""
    query GetRecentPosts($limit: Int!) {{
      posts(orderBy: publishedAt_DESC, first: $limit) {{ {POST_CARD_FIELDS} }}
    }}
    """,
    category=OperationCategory.RECENT_POSTS,
    root_field="posts",
    optimize_images=True,
)

FEATURED_POSTS = Operation(
    name="featured",
    query=f"""
    query GetFeaturedPosts {{
      posts(where: {{ featuredpost: true }}, orderBy: publishedAt_DESC) {{ {POST_CARD_FIELDS} }}
    }}
    """,
    category=OperationCategory.FEATURED_POSTS,
    root_field="posts",
    optimize_images=True,
)

CATEGORIES = Operation(
    name="categories",
    query="""
    query GetCategories {
      categories(where: { show: true }, orderBy: name_DESC) { name slug }
    }
    """,
    category=OperationCategory.CATEGORIES,
    root_field="categories",
    default_factory=lambda: [dict(c) for c in FALLBACK_CATEGORIES],
)

CATEGORY_POSTS = Operation(
    name="category_posts",
    query=f"""
    query GetCategoryPosts($slug: String!) {{
      postsConnection(where: {{ categories_some: {{ slug: $slug }} }}, orderBy: publishedAt_DESC) {{
        edges {{ cursor node {{ {POST_CARD_FIELDS} }} }}
      }}
    }}
    """,
    category=OperationCategory.DEFAULT,
    root_field="postsConnection",
    transform=_edge_nodes,
    optimize_images=True,
)

POST_DETAILS = Operation(
    name="post",
    query="""
    query GetPostDetails($slug: String!) {
      post(where: { slug: $slug }) {
        title
        excerpt
        featuredImage { url }
        author { name bio photo { url } }
        createdAt
        publishedAt
        slug
        content { raw }
        categories { name slug }
      }
    }
    """,
    category=OperationCategory.POST_DETAILS,
    root_field="post",
    default_factory=dict,
    propagate_errors=True,
    optimize_images=True,
)

AUTHORS = Operation(
    name="authors",
    query="""
    query GetAuthors {
      authors { id name bio photo { url } }
    }
    """,
    category=OperationCategory.IMAGE,
    root_field="authors",
    optimize_images=True,
)

SEARCH_POSTS = Operation(
    name="search",
    query=f"""
    query SearchPosts($term: String!) {{
      posts(where: {{ _search: $term }}, orderBy: publishedAt_DESC, first: 20) {{ {POST_CARD_FIELDS} }}
    }}
    """,
    category=OperationCategory.SEARCH,
    root_field="posts",
)


# ===== DATA ACCESS =====

def _orchestrator(orchestrator: Optional[FetchOrchestrator]) -> FetchOrchestrator:
    return orchestrator or get_orchestrator()


def get_posts(
    limit: int = DEFAULT_PAGE_SIZE,
    force_refresh: bool = False,
    orchestrator: Optional[FetchOrchestrator] = None,
) -> List[Dict[str, Any]]:
    """Latest posts for the home page, newest first."""
    limit = max(1, min(limit, MAX_POSTS_PER_PAGE))
    return _orchestrator(orchestrator).fetch(POSTS, {"limit": limit}, force_refresh=force_refresh)


def get_recent_posts(limit: int = 3, orchestrator: Optional[FetchOrchestrator] = None) -> List[Dict[str, Any]]:
    """Small recent-posts widget list."""
    limit = max(1, min(limit, MAX_POSTS_PER_PAGE))
    return _orchestrator(orchestrator).fetch(RECENT_POSTS, {"limit": limit})


def get_featured_posts(orchestrator: Optional[FetchOrchestrator] = None) -> List[Dict[str, Any]]:
    return _orchestrator(orchestrator).fetch(FEATURED_POSTS)


def get_categories(orchestrator: Optional[FetchOrchestrator] = None) -> List[Dict[str, Any]]:
    """
    Visible categories for navigation.

    Falls back to a small built-in list when the CMS is unreachable.
    """
    return _orchestrator(orchestrator).fetch(CATEGORIES)


def get_category_posts(slug: str, orchestrator: Optional[FetchOrchestrator] = None) -> List[Dict[str, Any]]:
    return _orchestrator(orchestrator).fetch(CATEGORY_POSTS, {"slug": slug})


def get_post_details(slug: str, orchestrator: Optional[FetchOrchestrator] = None) -> Dict[str, Any]:
    """
    Full post by slug.

    Raises:
        TotalFailureError: The post could not be loaded from any endpoint
            (unknown slug or CMS outage)
    """
    return _orchestrator(orchestrator).fetch(POST_DETAILS, {"slug": slug})


def get_authors(orchestrator: Optional[FetchOrchestrator] = None) -> List[Dict[str, Any]]:
    """Author profiles with photos."""
    return _orchestrator(orchestrator).fetch(AUTHORS)


def search_posts(term: str, orchestrator: Optional[FetchOrchestrator] = None) -> List[Dict[str, Any]]:
    term = (term or "").strip()
    if not term:
        return []
    return _orchestrator(orchestrator).fetch(SEARCH_POSTS, {"term": term})


def get_cache_stats(orchestrator: Optional[FetchOrchestrator] = None) -> Dict[str, Any]:
    """Get comprehensive cache statistics."""
    return _orchestrator(orchestrator).stats()
