"""translate.wordpress.org stats API client."""

from .scraper import TranslationScraper
from .segments import SegmentResolver, build_stats_url

__all__ = ["SegmentResolver", "TranslationScraper", "build_stats_url"]
