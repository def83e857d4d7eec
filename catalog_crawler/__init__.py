"""
Catalog Crawler

Crawls a paginated book catalog serially and in parallel and compares the results.
"""

__version__ = "1.0.0"
__description__ = "Serial versus parallel crawl of a linked catalog with concurrent statistics"
