"""
Video URL resolution: ordered strategies that turn a content page into a
playable media URL.
"""

from .base import Candidate, ResolutionContext, ResolutionStrategy
from .resolver import VideoURLResolver
from .strategies import (
    BackgroundImageStrategy,
    CdnPatternStrategy,
    DataAttributeStrategy,
    ManifestStrategy,
    MediaElementStrategy,
    ScriptPatternStrategy,
    StateBlobStrategy,
    StructuredPayloadStrategy,
    default_strategies,
)

__all__ = [
    "Candidate",
    "ResolutionContext",
    "ResolutionStrategy",
    "VideoURLResolver",
    "StructuredPayloadStrategy",
    "DataAttributeStrategy",
    "MediaElementStrategy",
    "BackgroundImageStrategy",
    "StateBlobStrategy",
    "CdnPatternStrategy",
    "ScriptPatternStrategy",
    "ManifestStrategy",
    "default_strategies",
]
