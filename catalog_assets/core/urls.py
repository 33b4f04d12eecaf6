"""Render-time normalisation of stored image URLs.

Image rows written over the years carry several path shapes: absolute URLs,
``/uploads/...`` paths, relative ``../../image/catalog/...`` references left by
older catalog imports, and bare filenames. ``resolve`` maps all of them onto one
absolute URL without touching the stored data.

Rules are evaluated in order and the first matching predicate wins. Append new
shapes to ``DEFAULT_RULES`` (or pass a custom sequence) instead of editing the
existing entries, since several predicates overlap.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Sequence

PLACEHOLDER_PATH = "/placeholder-product.svg"
UPLOADS_MOUNT = "/uploads/"
LEGACY_FRAGMENT = "image/catalog/"
KNOWN_MOUNTS = (UPLOADS_MOUNT, "/" + LEGACY_FRAGMENT)

_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://")


@dataclass(frozen=True, slots=True)
class ResolveRule:
    name: str
    matches: Callable[[str], bool]
    transform: Callable[[str, str], str]


def _is_empty(value: str) -> bool:
    return not value


def _has_scheme(value: str) -> bool:
    return bool(_SCHEME.match(value)) or value.startswith("//")


def _has_known_mount(value: str) -> bool:
    return value.startswith(KNOWN_MOUNTS)


def _has_legacy_fragment(value: str) -> bool:
    return LEGACY_FRAGMENT in value


def _is_bare(value: str) -> bool:
    return not value.startswith("/")


def _rebase_legacy(value: str, base: str) -> str:
    tail = value[value.index(LEGACY_FRAGMENT) + len(LEGACY_FRAGMENT):]
    return f"{base}/{LEGACY_FRAGMENT}{tail}"


DEFAULT_RULES: tuple[ResolveRule, ...] = (
    ResolveRule("placeholder", _is_empty, lambda value, base: PLACEHOLDER_PATH),
    ResolveRule("absolute", _has_scheme, lambda value, base: value),
    ResolveRule("known_mount", _has_known_mount, lambda value, base: f"{base}{value}"),
    ResolveRule("legacy_fragment", _has_legacy_fragment, _rebase_legacy),
    ResolveRule("bare", _is_bare, lambda value, base: f"{base}{UPLOADS_MOUNT}{value}"),
    ResolveRule("fallback", lambda value: True, lambda value, base: f"{base}{value}"),
)


def resolve(stored_value: Any, api_base_url: str, *, rules: Sequence[ResolveRule] = DEFAULT_RULES) -> str:
    """Map any historical ``url`` shape to an absolute URL. Never raises."""
    value = "" if stored_value is None else str(stored_value).strip()
    base = (api_base_url or "").rstrip("/")
    for rule in rules:
        if rule.matches(value):
            return rule.transform(value, base)
    return f"{base}{value}" if value else PLACEHOLDER_PATH


def matching_rule(stored_value: Any, *, rules: Sequence[ResolveRule] = DEFAULT_RULES) -> str | None:
    """Name of the rule ``resolve`` would apply; handy for diagnostics."""
    value = "" if stored_value is None else str(stored_value).strip()
    for rule in rules:
        if rule.matches(value):
            return rule.name
    return None


__all__ = [
    "DEFAULT_RULES",
    "KNOWN_MOUNTS",
    "LEGACY_FRAGMENT",
    "PLACEHOLDER_PATH",
    "ResolveRule",
    "matching_rule",
    "resolve",
]
