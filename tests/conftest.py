"""Shared fixtures: catalog markup builders and an in-memory fetcher."""

import asyncio
import logging
import random
from typing import Dict, Iterable, List, Optional, Tuple

import pytest

from catalog_crawler.crawler.engine import CrawlEngine
from catalog_crawler.crawler.fetcher import FetchResult
from catalog_crawler.crawler.parser import CatalogParser
from catalog_crawler.storage.aggregator import Aggregator
from catalog_crawler.storage.ledger import VisitationLedger
from catalog_crawler.utils.monitoring import CrawlerMonitor

RATING_CLASSES = {0: 'Zero', 1: 'One', 2: 'Two', 3: 'Three', 4: 'Four', 5: 'Five'}

SITE = "https://site.example"


def book_html(title: str, price: float, rating: int) -> str:
    return f"""
    <article class="product_pod">
      <div class="image_container"><a href="../../../book/index.html">img</a></div>
      <p class="star-rating {RATING_CLASSES[rating]}"><i class="icon-star"></i></p>
      <h3><a href="../../../book/index.html" title="{title}">{title[:10]}...</a></h3>
      <div class="product_price"><p class="price_color">£{price:.2f}</p></div>
    </article>"""


def category_page(heading: str, books: Iterable[Tuple[str, float, int]],
                  next_href: Optional[str] = None) -> str:
    pager = f'<ul class="pager"><li class="next"><a href="{next_href}">next</a></li></ul>' if next_href else ""
    articles = "".join(book_html(*book) for book in books)
    return f"""<html><body>
    <div class="page-header"><h1>{heading}</h1></div>
    <ol class="row">{articles}</ol>
    {pager}
    </body></html>"""


def index_page(category_hrefs: Iterable[str], next_href: Optional[str] = None,
               heading: str = "All products") -> str:
    nav = "".join(f'<li><a href="{href}">cat</a></li>' for href in category_hrefs)
    pager = f'<ul class="pager"><li class="next"><a href="{next_href}">next</a></li></ul>' if next_href else ""
    return f"""<html><body>
    <div class="side_categories"><ul>
      <li><a href="catalogue/category/books_1/index.html">Books</a></li>
      {nav}
    </ul></div>
    <h1>{heading}</h1>
    <article class="product_pod"><h3><a href="catalogue/x_1/index.html" title="Ignored">Ignored</a></h3></article>
    {pager}
    </body></html>"""


class FakeFetcher:
    """Serves pages from a dict; unknown URLs fail like an exhausted retry budget."""

    def __init__(self, pages: Dict[str, str], max_delay: float = 0.0, seed: int = 0):
        self.pages = pages
        self.max_delay = max_delay
        self.rng = random.Random(seed)
        self.calls: List[str] = []
        self.stats = {'total_requests': 0}

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None

    async def fetch(self, url: str) -> FetchResult:
        self.calls.append(url)
        self.stats['total_requests'] += 1
        if self.max_delay:
            await asyncio.sleep(self.rng.uniform(0, self.max_delay))
        else:
            await asyncio.sleep(0)
        if url not in self.pages:
            return FetchResult(url=url, status_code=404, error="Client error 404", attempts=1)
        return FetchResult(url=url, status_code=200, content=self.pages[url], attempts=1)

    def get_stats(self):
        return dict(self.stats)

    def reset_stats(self):
        self.stats['total_requests'] = 0


def build_three_page_site() -> Tuple[str, Dict[str, str]]:
    """Index -> category page (ratings 3, 5) -> next page (rating 1)."""
    start = f"{SITE}/index.html"
    category = f"{SITE}/catalogue/category/books/travel_2/index.html"
    second = f"{SITE}/catalogue/category/books/travel_2/page-2.html"
    pages = {
        start: index_page(["catalogue/category/books/travel_2/index.html"]),
        category: category_page("Travel", [("Mid Book", 10.00, 3), ("Dear Book", 20.00, 5)],
                                next_href="page-2.html"),
        second: category_page("Travel", [("Cheap Book", 5.00, 1)]),
    }
    return start, pages


def build_catalog(num_categories: int = 6, pages_per_category: int = 3,
                  books_per_page: int = 5, seed: int = 7) -> Tuple[str, Dict[str, str]]:
    """
    A larger catalog with cycles, a dead link, tied prices and unrated books.

    The index links every category and a dead one; its next page links the
    same categories again with root-relative hrefs. The last page of each
    category points back to that category's first page.
    """
    rng = random.Random(seed)
    start = f"{SITE}/index.html"
    relative_hrefs = [f"catalogue/category/books/cat_{c}/index.html" for c in range(num_categories)]
    pages = {
        start: index_page(relative_hrefs + ["catalogue/category/books/missing_99/index.html"],
                          next_href="catalogue/page-2.html"),
        f"{SITE}/catalogue/page-2.html": index_page(
            [f"/catalogue/category/books/cat_{c}/index.html" for c in range(num_categories)],
            heading="All products"
        ),
    }

    for c in range(num_categories):
        base = f"{SITE}/catalogue/category/books/cat_{c}/"
        for p in range(1, pages_per_category + 1):
            url = base + ("index.html" if p == 1 else f"page-{p}.html")
            books = [
                (f"Book {c}-{p}-{b}", round(rng.choice([9.99, 51.77, rng.uniform(1, 60)]), 2),
                 rng.randint(0, 5))
                for b in range(books_per_page)
            ]
            next_href = f"page-{p + 1}.html" if p < pages_per_category else "index.html"
            pages[url] = category_page(f"Category {c}", books, next_href=next_href)

    return start, pages


@pytest.fixture
def three_page_site():
    return build_three_page_site()


@pytest.fixture
def make_engine():
    def _make(pages: Dict[str, str], max_delay: float = 0.0, seed: int = 0) -> CrawlEngine:
        return CrawlEngine(
            fetcher=FakeFetcher(pages, max_delay=max_delay, seed=seed),
            parser=CatalogParser(),
            ledger=VisitationLedger(),
            aggregator=Aggregator(),
            monitor=CrawlerMonitor()
        )
    return _make


@pytest.fixture
def restore_root_logger():
    """Undo whatever setup_logging installs on the root logger."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
