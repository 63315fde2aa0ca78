"""
Built-in SERP provider adapters.
"""

from app.scraping.providers.scrapingrobot import ScrapingRobotProvider
from app.scraping.providers.searchapi import SearchApiProvider
from app.scraping.providers.serpapi import SerpApiProvider
from app.scraping.providers.serply import SerplyProvider
from app.scraping.providers.spaceserp import SpaceSerpProvider
from app.scraping.providers.valueserp import ValueSerpProvider

BUILTIN_PROVIDERS = (
    SerpApiProvider,
    SearchApiProvider,
    ValueSerpProvider,
    SpaceSerpProvider,
    SerplyProvider,
    ScrapingRobotProvider,
)

__all__ = [
    "BUILTIN_PROVIDERS",
    "ScrapingRobotProvider",
    "SearchApiProvider",
    "SerpApiProvider",
    "SerplyProvider",
    "SpaceSerpProvider",
    "ValueSerpProvider",
]
