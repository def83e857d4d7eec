"""
Catalog page parser: extracts book records, the category label and outbound links.
"""

import math
import re
import logging
from typing import List, Optional
from dataclasses import dataclass, field
from bs4 import BeautifulSoup


RATING_WORDS = {
    'One': 1,
    'Two': 2,
    'Three': 3,
    'Four': 4,
    'Five': 5,
}


@dataclass(frozen=True)
class Record:
    """One book listed on a category page. A rating of 0 means unrated."""
    title: str
    price: float
    rating: int = 0


@dataclass
class ParsedPage:
    """Everything extracted from a single catalog page."""
    url: str
    category: Optional[str] = None
    records: List[Record] = field(default_factory=list)
    links: List[str] = field(default_factory=list)


class CatalogParser:
    """
    Parses catalog markup.

    The page kind is inferred from the URL: listing pages (the URL contains
    ``listing_marker``) yield records, any other page is an index page whose
    category links are followed. Next-page links and the ``<h1>`` category
    label are taken from every page. Links are returned exactly as written in
    the markup; resolving them is the caller's job.
    """

    def __init__(self, listing_marker: str = "/category/",
                 category_link_marker: str = "catalogue/category/books/"):
        self.listing_marker = listing_marker
        self.category_link_marker = category_link_marker
        self.logger = logging.getLogger(__name__)

        self.whitespace_pattern = re.compile(r'\s+')
        self.price_pattern = re.compile(r'\d+(?:\.\d+)?')

    def is_listing_page(self, url: str) -> bool:
        return self.listing_marker in url

    def parse(self, url: str, html_content: str) -> ParsedPage:
        """
        Parse one page.

        Args:
            url: The URL the page was fetched from
            html_content: Raw HTML content

        Returns:
            ParsedPage; empty if the markup could not be parsed at all
        """
        try:
            soup = BeautifulSoup(html_content, 'lxml')

            page = ParsedPage(url=url)
            page.category = self._extract_category(soup)

            next_link = self._extract_next_link(soup)
            if next_link:
                page.links.append(next_link)

            if self.is_listing_page(url):
                page.records = self._extract_records(soup)
            else:
                page.links.extend(self._extract_category_links(soup))

            self.logger.debug(f"Parsed {url}: category={page.category!r}, "
                              f"{len(page.records)} records, {len(page.links)} links")
            return page

        except Exception as e:
            self.logger.error(f"Error parsing content from {url}: {e}")
            return ParsedPage(url=url)

    def _extract_category(self, soup: BeautifulSoup) -> Optional[str]:
        """Category label from the first <h1>."""
        heading = soup.find('h1')
        if heading:
            text = self._clean_text(heading.get_text())
            return text or None
        return None

    def _extract_next_link(self, soup: BeautifulSoup) -> Optional[str]:
        anchor = soup.select_one('li.next a[href]')
        if anchor:
            href = anchor['href'].strip()
            return href or None
        return None

    def _extract_category_links(self, soup: BeautifulSoup) -> List[str]:
        links = []
        for anchor in soup.find_all('a', href=True):
            href = anchor['href'].strip()
            if self.category_link_marker in href and '/index.html' in href:
                links.append(href)
        return links

    def _extract_records(self, soup: BeautifulSoup) -> List[Record]:
        records = []
        for article in soup.select('article.product_pod'):
            records.append(Record(
                title=self._extract_title(article),
                price=self._extract_price(article),
                rating=self._extract_rating(article)
            ))
        return records

    def _extract_title(self, article) -> str:
        anchor = article.select_one('h3 a')
        if not anchor:
            return ""
        return self._clean_text(anchor.get('title') or anchor.get_text())

    def _extract_price(self, article) -> float:
        tag = article.select_one('p.price_color')
        if not tag:
            return 0.0
        match = self.price_pattern.search(tag.get_text())
        if not match:
            return 0.0
        value = float(match.group())
        return value if math.isfinite(value) else 0.0

    def _extract_rating(self, article) -> int:
        tag = article.select_one('p.star-rating')
        if not tag:
            return 0
        for css_class in tag.get('class', []):
            if css_class in RATING_WORDS:
                return RATING_WORDS[css_class]
        return 0

    def _clean_text(self, text: str) -> str:
        if not text:
            return ""
        return self.whitespace_pattern.sub(' ', text.strip())
