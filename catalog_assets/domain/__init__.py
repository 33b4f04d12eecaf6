"""Pure asset rules shared by the API and the CLI."""

from catalog_assets.core.storage import is_thumbnail_name
from catalog_assets.core.urls import DEFAULT_RULES, ResolveRule, matching_rule, resolve
from catalog_assets.ingest.thumbnails import ResizeProfile, parse_profiles
from catalog_assets.ingest.transcoder import TranscodeResult, transcode
from catalog_assets.services.reconcile_service import canonical_candidates, select_canonical, url_basename

__all__ = [
    "DEFAULT_RULES",
    "ResizeProfile",
    "ResolveRule",
    "TranscodeResult",
    "canonical_candidates",
    "is_thumbnail_name",
    "matching_rule",
    "parse_profiles",
    "resolve",
    "select_canonical",
    "transcode",
    "url_basename",
]
