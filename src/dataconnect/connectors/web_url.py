"""
dataconnect Web URL Connector — Scrape a single web page.

The page is fetched once per connection and split into tables:
``content`` (text blocks of the main content), ``headings``, ``links``,
``images`` and one ``table_N`` per HTML table.

Query format:
    SCRAPE:<content|headings|links|images|table_N|all>
    EXTRACT:<css selector>
    GET_CONTENT:
    SEARCH:<term>
    ANALYZE:
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urljoin, urlparse
from urllib.robotparser import RobotFileParser

import httpx

from .api import valid_http_url
from .base import Probe
from .http import HTTPConnector
from .tabular import (
    TABULAR_DATA_TYPES,
    Grid,
    TableData,
    TabularConnector,
    cells_table,
    find_table,
    joined_term,
    search_table,
    text_metrics,
)
from .utils import elapsed_ms, word_count
from ..core.errors import SourceConnectionError
from ..core.schema import Capabilities, Connection
from ..core.validation import QueryGrammar, VerbQuery

logger = logging.getLogger(__name__)

WEB_GRAMMAR = QueryGrammar(
    label="web URL",
    verbs=("SCRAPE", "EXTRACT", "GET_CONTENT", "SEARCH", "ANALYZE"),
    example="SCRAPE:content",
    sample_verb="SCRAPE",
)

WEB_CAPABILITIES = Capabilities(
    supports_sql=False,
    supported_operations=("READ", "SCRAPE", "EXTRACT", "ANALYZE", "SEARCH", "PARSE", "CACHE"),
    supported_data_types=TABULAR_DATA_TYPES,
    native_data_types=("TEXT", "HTML", "JSON", "XML", "CSV", "IMAGE", "LINK", "METADATA"),
    max_query_size=100_000,
    max_result_size=1_000_000,
    max_connections=5,
)

DEFAULT_USER_AGENT = "InsighterBot/1.0 (+https://insighter.ai/bot)"
DEFAULT_MAX_CONTENT_LENGTH = 50_000

NOISE_TAGS = ("script", "style", "nav", "header", "footer", "aside")
NOISE_SELECTORS = (".advertisement", ".ads", ".sidebar", ".menu", ".navigation")
CONTENT_SELECTORS = (
    "main", "article", ".content", ".main-content", ".post-content", ".entry-content", "#content",
)


@dataclass
class WebPage:
    url: str
    title: str
    html: str
    text: str
    tables: List[TableData] = field(default_factory=list)
    description: Optional[str] = None
    status_code: int = 200
    content_type: str = ""


def _soup(html: str):
    try:
        from bs4 import BeautifulSoup
    except ImportError:
        raise ImportError(
            "Web scraping requires beautifulsoup4.\n"
            "Install it with: pip install beautifulsoup4"
        )
    return BeautifulSoup(html, "html.parser")


def parse_page(html: str, url: str, max_content_length: int = DEFAULT_MAX_CONTENT_LENGTH) -> WebPage:
    """Split an HTML page into text and tables."""
    soup = _soup(html)
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()

    title_tag = soup.find("title") or soup.find("h1")
    title = title_tag.get_text(strip=True) if title_tag else ""
    meta = soup.find("meta", attrs={"name": "description"})

    headings = [
        [int(h.name[1]), h.get_text(" ", strip=True)]
        for h in soup.find_all(["h1", "h2", "h3", "h4", "h5", "h6"])
        if h.get_text(strip=True)
    ]
    links = [
        [a.get_text(" ", strip=True), urljoin(url, a["href"])]
        for a in soup.find_all("a", href=True)
        if not a["href"].startswith(("#", "javascript:"))
    ]
    images = [
        [img.get("alt", ""), urljoin(url, img["src"])]
        for img in soup.find_all("img", src=True)
    ]
    html_tables = []
    for element in soup.find_all("table"):
        cells = [
            [cell.get_text(" ", strip=True) for cell in tr.find_all(["th", "td"])]
            for tr in element.find_all("tr")
        ]
        cells = [row for row in cells if any(row)]
        if cells:
            html_tables.append(cells_table(f"table_{len(html_tables) + 1}", cells))

    for tag in soup(list(NOISE_TAGS)):
        tag.decompose()
    for selector in NOISE_SELECTORS:
        for tag in soup.select(selector):
            tag.decompose()

    main = None
    for selector in CONTENT_SELECTORS:
        main = soup.select_one(selector)
        if main is not None:
            break
    if main is None:
        main = soup.body or soup

    blocks = [line.strip() for line in main.get_text("\n").splitlines() if line.strip()]
    text = "\n".join(blocks)
    if len(text) > max_content_length:
        text = text[:max_content_length]
        blocks = text.splitlines()

    content = TableData(
        name="content",
        columns=["block_number", "content", "word_count"],
        rows=[[i + 1, block, word_count(block)] for i, block in enumerate(blocks)],
    )
    return WebPage(
        url=url,
        title=title or "Untitled",
        html=html,
        text=text,
        tables=[
            content,
            TableData(name="headings", columns=["level", "text"], rows=headings),
            TableData(name="links", columns=["text", "url"], rows=links),
            TableData(name="images", columns=["alt", "src"], rows=images),
        ] + html_tables,
        description=meta.get("content") if meta else None,
    )


class WebURLConnector(TabularConnector, HTTPConnector):
    """Connector for a single web page.

    Config: ``url``. Options: ``respect_robots_txt`` (default true),
    ``user_agent`` and ``max_content_length`` (characters of main text).
    """

    display_name = "Web URL"
    capabilities = WEB_CAPABILITIES
    grammar = WEB_GRAMMAR
    test_error_type = "http_connection_failed"

    @property
    def source_type(self) -> str:
        return "web-url"

    # ──── Lifecycle ────

    def check_config(self, config: Dict[str, Any]) -> None:
        url = config.get("url") or config.get("api_url")
        if not url:
            raise ValueError("URL is required")
        if not valid_http_url(url):
            raise ValueError("Invalid URL format")

    def build_connection(self, config: Dict[str, Any]) -> Connection:
        url = config.get("url") or config.get("api_url")
        options = dict(config.get("additional_config") or {})
        for key in ("respect_robots_txt", "user_agent", "max_content_length"):
            if config.get(key) is not None:
                options[key] = config[key]
        options.setdefault("respect_robots_txt", True)
        options.setdefault("user_agent", DEFAULT_USER_AGENT)
        options.setdefault("max_content_length", DEFAULT_MAX_CONTENT_LENGTH)

        timeout = int(config.get("timeout") or config.get("query_timeout") or self.default_timeout)
        return Connection(
            source_type=self.source_type,
            connection_string=url,
            host=urlparse(url).netloc,
            connection_timeout=int(config.get("connection_timeout") or timeout),
            query_timeout=timeout,
            max_connections=int(config.get("max_connections") or self.capabilities.max_connections),
            additional_config=options,
        )

    def headers(self, connection: Connection) -> Dict[str, str]:
        return {
            "User-Agent": connection.option("user_agent", DEFAULT_USER_AGENT),
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
        }

    async def check_robots(self, connection: Connection, url: str) -> None:
        """Raise if the site's robots.txt forbids fetching ``url``.

        An unreachable or missing robots.txt allows everything.
        """
        if not connection.option("respect_robots_txt", True):
            return
        parsed = urlparse(url)
        robots_url = f"{parsed.scheme}://{parsed.netloc}/robots.txt"
        try:
            response = await self.client(connection).get(robots_url)
        except httpx.HTTPError as e:
            logger.debug("robots.txt unavailable for %s: %s", parsed.netloc, e)
            return
        if response.status_code != 200:
            return

        parser = RobotFileParser()
        parser.parse(response.text.splitlines())
        if not parser.can_fetch(connection.option("user_agent", DEFAULT_USER_AGENT), url):
            logger.warning("robots.txt disallows %s", url)
            raise SourceConnectionError("Robots.txt disallows scraping this URL")

    async def fetch(self, connection: Connection) -> WebPage:
        url = connection.connection_string
        await self.check_robots(connection, url)
        response = await self.request(connection, "GET", url)
        page = parse_page(
            response.text, str(response.url), int(connection.option("max_content_length"))
        )
        page.status_code = response.status_code
        page.content_type = response.headers.get("content-type", "")
        logger.info("Scraped %s (%d words)", url, word_count(page.text))
        return page

    async def probe(self, connection: Connection) -> Probe:
        start = time.perf_counter()
        self.client(connection)
        connection_ms = elapsed_ms(start)

        query_start = time.perf_counter()
        page = await self.fetch(connection)
        return connection_ms, elapsed_ms(query_start), {
            "url": page.url,
            "status_code": page.status_code,
            "content_type": page.content_type,
            "title": page.title,
            "word_count": word_count(page.text),
        }

    # ──── Discovery ────

    async def document(self, connection: Connection) -> WebPage:
        self.ensure_open(connection)
        if "document" not in connection.state:
            connection.state["document"] = await self.fetch(connection)
        return connection.state["document"]

    def tables(self, document: WebPage) -> List[TableData]:
        return document.tables

    async def get_database_info(self, connection: Connection) -> Dict[str, Any]:
        page = await self.document(connection)
        return {
            "name": page.title,
            "version": "unknown",
            "type": self.source_type,
            "url": page.url,
            "description": page.description,
        }

    def plan_source(self, connection: Connection) -> str:
        return connection.connection_string

    def result_metadata(self, connection: Connection) -> Dict[str, Any]:
        return {"url": connection.connection_string}

    # ──── Queries ────

    def handle(self, query: VerbQuery, document: WebPage, params: Optional[Sequence[Any]]) -> Grid:
        if query.verb == "SCRAPE":
            target = query.target.lower()
            if target in ("", "all", "*"):
                return ["url", "title", "content", "word_count"], [
                    [document.url, document.title, document.text, word_count(document.text)]
                ]
            return find_table(document.tables, query.target).grid()
        if query.verb == "EXTRACT":
            return self._select(document, joined_term(query))
        if query.verb == "GET_CONTENT":
            return ["title", "content"], [[document.title, document.text]]
        if query.verb == "SEARCH":
            return search_table(document.tables[0], joined_term(query))
        if query.verb == "ANALYZE":
            columns, rows = text_metrics(document.text)
            counts = [["title", document.title]]
            counts += [[f"{t.name}_count", len(t.rows)] for t in document.tables[1:4]]
            counts.append(["tables", len(document.tables) - 4])
            return columns, counts + rows
        raise ValueError(f"Unsupported web URL operation: {query.verb}")

    def _select(self, document: WebPage, selector: str) -> Grid:
        if not selector:
            raise ValueError("CSS selector is required (e.g., EXTRACT:div.price)")
        try:
            matches = _soup(document.html).select(selector)
        except ImportError:
            raise
        except Exception as e:
            raise ValueError(f"Invalid CSS selector '{selector}': {e}") from e
        rows = []
        for i, element in enumerate(matches, start=1):
            href = element.get("href") or element.get("src")
            rows.append([i, element.name, element.get_text(" ", strip=True),
                         urljoin(document.url, href) if href else None])
        return ["match_number", "tag", "text", "href"], rows
