"""
Catalog crawler core components.
"""

from .url_frontier import URLFrontier, resolve_url
from .fetcher import PageFetcher, FetchResult, TransientFetchError
from .parser import CatalogParser, ParsedPage, Record

__all__ = [
    'URLFrontier', 'resolve_url',
    'PageFetcher', 'FetchResult', 'TransientFetchError',
    'CatalogParser', 'ParsedPage', 'Record'
]
