from __future__ import annotations

import pytest

from mailbridge.domain.origins import origin_allowed


@pytest.mark.parametrize(
    "origin, expected",
    [
        ("https://a.com", True),
        ("https://a.com/", True),
        ("https://b.com", False),
        ("https://sub.a.com", False),
        ("https://a.com//", False),
        (None, True),
    ],
)
def test_origin_allow_list(origin, expected):
    assert origin_allowed(["https://a.com"], origin) is expected


def test_listed_trailing_slash_matches_bare_origin():
    assert origin_allowed(["https://a.com/"], "https://a.com")


def test_empty_allow_list_admits_everything():
    assert origin_allowed([], "https://anything.example")
    assert origin_allowed([], None)
