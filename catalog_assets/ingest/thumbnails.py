from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Literal

from PIL import Image, ImageOps

FitPolicy = Literal["cover", "inside"]
FIT_POLICIES: tuple[str, ...] = ("cover", "inside")


@dataclass(frozen=True, slots=True)
class ResizeProfile:
    width: int
    height: int
    fit: FitPolicy = "inside"

    @property
    def label(self) -> str:
        return f"{self.width}x{self.height}"

    @property
    def area(self) -> int:
        return self.width * self.height

    @classmethod
    def parse(cls, raw: str) -> "ResizeProfile":
        """Parse ``"<w>x<h>[:<fit>]"``, e.g. ``"200x200:cover"``."""
        box, _, fit = raw.strip().partition(":")
        fit = (fit or "inside").strip().lower()
        if fit not in FIT_POLICIES:
            raise ValueError(f"unknown fit policy: {fit!r}")
        width_raw, sep, height_raw = box.lower().partition("x")
        if not sep:
            raise ValueError(f"invalid resize profile: {raw!r}")
        width, height = int(width_raw), int(height_raw)
        if width <= 0 or height <= 0:
            raise ValueError(f"resize profile must be positive: {raw!r}")
        return cls(width=width, height=height, fit=fit)  # type: ignore[arg-type]


def parse_profiles(raw_profiles: Iterable[str]) -> list[ResizeProfile]:
    """Parse configured profiles, ordered smallest box first."""
    return sorted((ResizeProfile.parse(raw) for raw in raw_profiles), key=lambda p: (p.area, p.width))


def render_thumbnail(image: Image.Image, profile: ResizeProfile) -> Image.Image:
    """Resize a decoded image according to the profile's fit policy."""
    box = (profile.width, profile.height)
    if profile.fit == "cover":
        return ImageOps.fit(image, box, method=Image.Resampling.LANCZOS)
    thumb = image.copy()
    # Image.thumbnail only ever shrinks and keeps the aspect ratio.
    thumb.thumbnail(box, Image.Resampling.LANCZOS)
    return thumb


__all__ = ["FIT_POLICIES", "FitPolicy", "ResizeProfile", "parse_profiles", "render_thumbnail"]
