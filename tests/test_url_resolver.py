from __future__ import annotations

import pytest

from catalog_assets.core.urls import DEFAULT_RULES, PLACEHOLDER_PATH, ResolveRule, matching_rule, resolve

BASE = "http://h:3001"


@pytest.mark.parametrize(
    ("stored", "expected"),
    [
        ("", PLACEHOLDER_PATH),
        ("https://x/y.jpg", "https://x/y.jpg"),
        ("/uploads/products/1/0.webp", "http://h:3001/uploads/products/1/0.webp"),
        ("../../image/catalog/foo/bar.jpg", "http://h:3001/image/catalog/foo/bar.jpg"),
        ("bare.jpg", "http://h:3001/uploads/bare.jpg"),
    ],
)
def test_resolves_every_historical_shape(stored, expected):
    assert resolve(stored, BASE) == expected


def test_none_and_whitespace_resolve_to_placeholder():
    assert resolve(None, BASE) == PLACEHOLDER_PATH
    assert resolve("   ", BASE) == PLACEHOLDER_PATH


def test_legacy_fragment_behind_unknown_prefix():
    assert resolve("/static/image/catalog/a.png", BASE) == "http://h:3001/image/catalog/a.png"


def test_protocol_relative_and_other_schemes_pass_through():
    assert resolve("//cdn.example.com/a.jpg", BASE) == "//cdn.example.com/a.jpg"
    assert resolve("s3://bucket/a.jpg", BASE) == "s3://bucket/a.jpg"


def test_fallback_prefixes_unknown_rooted_paths():
    assert resolve("/media/a.jpg", BASE) == "http://h:3001/media/a.jpg"
    assert matching_rule("/media/a.jpg") == "fallback"


def test_trailing_slash_on_base_is_ignored():
    assert resolve("/uploads/a.webp", BASE + "/") == "http://h:3001/uploads/a.webp"


def test_non_string_values_never_raise():
    assert resolve(42, BASE) == "http://h:3001/uploads/42"


def test_custom_rule_can_be_prepended():
    cdn = ResolveRule("cdn", lambda value: value.startswith("cdn:"), lambda value, base: "https://cdn/" + value[4:])
    assert resolve("cdn:a.jpg", BASE, rules=(cdn, *DEFAULT_RULES)) == "https://cdn/a.jpg"
    assert resolve("a.jpg", BASE, rules=(cdn, *DEFAULT_RULES)) == "http://h:3001/uploads/a.jpg"
