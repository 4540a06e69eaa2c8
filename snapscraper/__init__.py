"""
snapscraper
Resilient extraction of profile metadata, tab content and playable video
URLs from public profile pages.

CLI Usage:
    python -m snapscraper <command> [options]

    Commands:
        profile <subject>              Profile header
        tab <subject> <category>       Tiles of one category
        categories <subject>           Categories that have content
        video <canonical_url>          Resolve a playable video URL
"""

from .availability import AvailabilityState, CategoryAvailability
from .cache import ResponseCache
from .cascade import ExtractionRule, extract_field, extract_nodes
from .categories import CategoryRegistry, CategorySpec
from .errors import FetchError, ParseFailure, ScraperError, ValidationTimeout
from .fetcher import DocumentFetcher, RetryPolicy
from .models import (
    Category,
    ContentTile,
    FetchFailure,
    LensTile,
    ProfileRecord,
    RawDocument,
    RelatedTile,
    SpotlightTile,
    StoryTile,
    TabResult,
    TaggedTile,
    VideoResolutionResult,
)
from .normalizer import TabContentNormalizer
from .profile import extract_profile
from .run_config import ScraperRunConfig
from .scheduler import CooperativeScheduler
from .service import ProfileScraper, RequestTracker
from .video import VideoURLResolver

__version__ = '1.0.0'

__all__ = [
    'ProfileScraper',
    'RequestTracker',
    'ScraperRunConfig',
    # Core
    'DocumentFetcher',
    'RetryPolicy',
    'ExtractionRule',
    'extract_field',
    'extract_nodes',
    'CategoryRegistry',
    'CategorySpec',
    'TabContentNormalizer',
    'extract_profile',
    'ResponseCache',
    'CooperativeScheduler',
    'CategoryAvailability',
    'AvailabilityState',
    'VideoURLResolver',
    # Models
    'Category',
    'ContentTile',
    'SpotlightTile',
    'StoryTile',
    'LensTile',
    'TaggedTile',
    'RelatedTile',
    'ProfileRecord',
    'RawDocument',
    'FetchFailure',
    'TabResult',
    'VideoResolutionResult',
    # Errors
    'ScraperError',
    'ParseFailure',
    'FetchError',
    'ValidationTimeout',
]
