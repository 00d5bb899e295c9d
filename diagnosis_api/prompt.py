"""Composite profile text and tone instructions for the generation service."""

import re
from typing import Any

from .models import Mode

HASHTAG_PATTERN = re.compile(r"#\w+")

BASE_QUERY = "Please diagnose this Instagram account."
MODE_QUERIES = {
    Mode.MILD: f"{BASE_QUERY} Please be gentle in your diagnosis.",
    Mode.MEDIUM: f"{BASE_QUERY} Please give a balanced diagnosis.",
    Mode.SPICY: BASE_QUERY,
}
COMPETITOR_QUERY = (
    " Information about a competitor account is also provided,"
    " so include a comparative analysis in the diagnosis."
)


def count_hashtags(caption: str) -> int:
    """Count ``#word`` tokens in a caption."""
    return len(HASHTAG_PATTERN.findall(caption))


def post_type(post: dict[str, Any]) -> str:
    """Infer a display type from the post's type and video flags."""
    kind = post.get("type") or ""
    if kind == "Video" or post.get("isVideo") is True:
        return "Reel"
    if kind in ("Sidecar", "Carousel"):
        return "Carousel"
    return "Feed"


def _count(value: Any) -> str:
    return f"{value:,}" if isinstance(value, int | float) else str(value)


def profile_lines(profile: dict[str, Any], fallback_username: str) -> list[str]:
    """Profile fields as labelled lines, skipping empty ones."""
    followers = profile.get("followersCount")
    follows = profile.get("followsCount")
    lines = [
        f"Username: {profile.get('username') or fallback_username}",
        f"Display name: {profile['fullName']}" if profile.get("fullName") else "",
        f"Bio: {profile['biography']}" if profile.get("biography") else "",
        f"Followers: {_count(followers)}" if followers is not None else "",
        f"Following: {_count(follows)}" if follows is not None else "",
    ]
    return [line for line in lines if line.strip()]


def format_post(index: int, post: dict[str, Any], caption_limit: int = 100) -> str:
    """One line summarising a post."""
    likes = post.get("likesCount") or post.get("likeCount") or 0
    comments = post.get("commentsCount") or post.get("commentCount") or 0
    caption = post.get("caption") or post.get("text") or ""
    hashtags = count_hashtags(caption)

    if len(caption) > caption_limit:
        caption = caption[:caption_limit] + "..."

    views = post.get("videoViewCount") or post.get("viewCount")
    views_text = f" views: {_count(views)}" if views is not None else ""

    return (
        f"Post {index} [{post_type(post)}]: likes: {_count(likes)} comments: {_count(comments)}"
        f" hashtags: {hashtags}{views_text} \"{caption}\""
    )


def build_profile_context(
    target: dict[str, Any],
    username: str,
    competitor: dict[str, Any] | None = None,
    competitor_id: str | None = None,
    max_posts: int = 5,
    caption_limit: int = 100,
) -> str:
    """Build the text block describing the profile, its posts and its competitor."""
    sections = ["[Profile]\n" + "\n".join(profile_lines(target, username))]

    posts = target.get("latestPosts")
    if isinstance(posts, list) and posts:
        post_lines = [
            format_post(i, post, caption_limit)
            for i, post in enumerate(posts[:max_posts], start=1)
            if isinstance(post, dict)
        ]
        if post_lines:
            sections.append("[Recent posts]\n" + "\n".join(post_lines))

    if competitor is not None and not competitor.get("error"):
        sections.append(
            "[Competitor account]\n"
            + "\n".join(profile_lines(competitor, competitor_id or ""))
        )

    return "\n\n".join(sections)


def build_query(mode: Mode, has_competitor: bool = False) -> str:
    """Natural-language instruction for the requested tone."""
    query = MODE_QUERIES[Mode(mode)]
    if has_competitor:
        query += COMPETITOR_QUERY
    return query
