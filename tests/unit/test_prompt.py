"""Tests for profile context and query building."""

from diagnosis_api.models import Mode
from diagnosis_api.prompt import (
    build_profile_context,
    build_query,
    count_hashtags,
    format_post,
    post_type,
    profile_lines,
)


def test_count_hashtags():
    assert count_hashtags("Sunny day #beach #summer_2024 #") == 2
    assert count_hashtags("no tags here") == 0


def test_post_type():
    assert post_type({"type": "Video"}) == "Reel"
    assert post_type({"type": "Image", "isVideo": True}) == "Reel"
    assert post_type({"type": "Sidecar"}) == "Carousel"
    assert post_type({"type": "Carousel"}) == "Carousel"
    assert post_type({"type": "Image"}) == "Feed"
    assert post_type({}) == "Feed"


def test_profile_lines_skip_missing_fields():
    lines = profile_lines({"username": "foo", "followersCount": 12345}, "foo")

    assert lines == ["Username: foo", "Followers: 12,345"]


def test_profile_lines_fall_back_to_requested_username():
    lines = profile_lines({"fullName": "Foo", "biography": "hi", "followsCount": 0}, "foo")

    assert lines == ["Username: foo", "Display name: Foo", "Bio: hi", "Following: 0"]


def test_format_post_truncates_caption_after_counting_hashtags():
    caption = "x" * 120 + " #late"
    line = format_post(1, {"likesCount": 1500, "commentsCount": 3, "caption": caption}, 100)

    assert line.startswith("Post 1 [Feed]: likes: 1,500 comments: 3 hashtags: 1")
    assert f'"{"x" * 100}..."' in line
    assert "views" not in line


def test_format_post_uses_alternative_field_names_and_views():
    post = {"likeCount": 7, "commentCount": 2, "text": "#a #b", "type": "Video", "videoViewCount": 2000}

    line = format_post(2, post)

    assert line == 'Post 2 [Reel]: likes: 7 comments: 2 hashtags: 2 views: 2,000 "#a #b"'


def test_build_profile_context_limits_posts():
    target = {
        "username": "foo",
        "biography": "hi",
        "latestPosts": [{"caption": f"post {i}"} for i in range(8)],
    }

    context = build_profile_context(target, "foo", max_posts=5)

    assert context.startswith("[Profile]\nUsername: foo\nBio: hi")
    assert "[Recent posts]" in context
    assert "Post 5 " in context
    assert "Post 6 " not in context
    assert "[Competitor account]" not in context


def test_build_profile_context_includes_competitor():
    context = build_profile_context(
        {"username": "foo"},
        "foo",
        competitor={"username": "bar", "followersCount": 10},
        competitor_id="bar",
    )

    assert context.endswith("[Competitor account]\nUsername: bar\nFollowers: 10")
    assert "[Recent posts]" not in context


def test_build_profile_context_skips_errored_competitor():
    context = build_profile_context(
        {"username": "foo"}, "foo", competitor={"error": "not_found"}, competitor_id="bar"
    )

    assert "[Competitor account]" not in context


def test_build_query_per_mode():
    assert "gentle" in build_query(Mode.MILD)
    assert "balanced" in build_query(Mode.MEDIUM)
    assert build_query(Mode.SPICY) == "Please diagnose this Instagram account."
    assert build_query("mild") == build_query(Mode.MILD)


def test_build_query_with_competitor():
    query = build_query(Mode.SPICY, has_competitor=True)

    assert query.startswith("Please diagnose this Instagram account.")
    assert "comparative analysis" in query
