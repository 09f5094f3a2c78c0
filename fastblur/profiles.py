"""Processing profiles for balancing accuracy, speed, and file size.

Profiles pick the gamma transfer mode and the PNG compression effort:

- **quality**: exact gamma 2.2 curve, default PNG compression
- **balanced**: exact gamma 2.2 curve, lighter PNG compression
- **performance**: fast gamma 2.0 approximation, minimal PNG compression

Example Usage
-------------

    from fastblur import PROCESSING_PROFILES

    profile = PROCESSING_PROFILES["performance"]
    profile.resolve_fast_gamma(False)  # Returns True, the profile forces it
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class ProcessingProfile:
    """Configuration for accuracy/performance trade-offs.

    Attributes:
        name: Profile identifier.
        fast_gamma: Force the fast gamma approximation for every image.
        compress_level: zlib effort for PNG output (0-9).
    """

    name: str
    fast_gamma: bool
    compress_level: int

    def __post_init__(self) -> None:
        if not 0 <= self.compress_level <= 9:
            raise ValueError(f"compress_level must be between 0 and 9, got {self.compress_level}")

    def resolve_fast_gamma(self, requested: bool) -> bool:
        """Return ``True`` when either the caller or the profile asks for fast gamma."""

        return bool(requested) or self.fast_gamma

    def resolve_compress_level(self) -> int:
        """Return the zlib effort for PNG output under this profile."""

        return self.compress_level


DEFAULT_PROFILE_NAME = "quality"

PROCESSING_PROFILES: Dict[str, ProcessingProfile] = {
    "quality": ProcessingProfile(name="quality", fast_gamma=False, compress_level=6),
    "balanced": ProcessingProfile(name="balanced", fast_gamma=False, compress_level=3),
    "performance": ProcessingProfile(name="performance", fast_gamma=True, compress_level=1),
}


__all__ = [
    "DEFAULT_PROFILE_NAME",
    "PROCESSING_PROFILES",
    "ProcessingProfile",
]
