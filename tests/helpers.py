"""
Data factories shared by the test modules.
"""

from utils.blog.types.post import Post


def make_post(post_id, url=None, **overrides):
    """
    Build a published Post with sensible defaults.

    Usage:
        make_post(3, "hello-world", tags=["travel"], url_historic=["old-hello"])
    """
    values = {
        "id": post_id,
        "author_name": "Author",
        "date_posted": 1_600_000_000 + post_id,
        "date_modified": 1_600_000_000 + post_id,
        "state": "published",
        "title": f"Post {post_id}",
        "content": f"<p>Intro {post_id}<!--more-->rest of post {post_id}</p>",
        "url_canonical": url if url is not None else f"post-{post_id}",
    }
    values.update(overrides)
    return Post(**values)
