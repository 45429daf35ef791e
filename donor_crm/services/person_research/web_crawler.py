"""
Web crawler - fetches search result pages and extracts their readable text
"""

import asyncio
import logging
import re
from datetime import datetime
from typing import Optional, Dict, Any, List
from urllib.parse import urljoin, urldefrag, urlparse

import httpx
from bs4 import BeautifulSoup

from ...config import get_crm_settings

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; ResearchBot/1.0)"

SKIPPED_EXTENSIONS = (
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    ".zip", ".rar", ".tar", ".gz",
    ".jpg", ".jpeg", ".png", ".gif", ".svg", ".webp",
    ".mp3", ".mp4", ".avi", ".mov",
)

REMOVED_TAGS = ["script", "style", "noscript", "nav", "footer", "header", "aside", "iframe"]

MAIN_CONTENT_SELECTORS = [
    "main",
    "article",
    "[role=main]",
    ".content",
    "#content",
    ".main-content",
    "#main-content",
    ".post-content",
    ".entry-content",
]


def is_valid_webpage_url(url: str) -> bool:
    """http(s) URLs that do not point at documents, archives or media."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return False
    return not parsed.path.lower().endswith(SKIPPED_EXTENSIONS)


def extract_page_text(html: str, max_length: int) -> Dict[str, str]:
    """Title and main text of an HTML page, whitespace collapsed and truncated."""
    soup = BeautifulSoup(html, "lxml")

    for element in soup(REMOVED_TAGS):
        element.decompose()

    title = ""
    if soup.title and soup.title.string:
        title = soup.title.string.strip()
    else:
        h1 = soup.find("h1")
        if h1:
            title = h1.get_text(strip=True)

    container = None
    for selector in MAIN_CONTENT_SELECTORS:
        container = soup.select_one(selector)
        if container is not None:
            break
    if container is None:
        container = soup.body or soup

    text = re.sub(r"\s+", " ", container.get_text(separator=" ", strip=True)).strip()
    if len(text) > max_length:
        text = text[:max_length] + "..."
    return {"title": title, "text": text}


def extract_same_site_links(html: str, base_url: str) -> List[str]:
    """Absolute http(s) links on the same host as base_url, fragments removed, in page order."""
    soup = BeautifulSoup(html, "lxml")
    host = urlparse(base_url).hostname
    links = []
    for anchor in soup.find_all("a", href=True):
        link, _ = urldefrag(urljoin(base_url, anchor["href"]))
        parsed = urlparse(link)
        if parsed.scheme in ("http", "https") and parsed.hostname == host and link not in links:
            links.append(link)
    return links


class WebCrawler:
    """Fetches pages with retries and returns crawl result dicts."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        settings = get_crm_settings()
        self.timeout = settings.crawler_timeout_seconds
        self.max_retries = max(1, settings.crawler_max_retries)
        self.max_content_length = settings.crawler_max_content_length
        self._transport = transport

    def _failure(self, url: str, message: str) -> Dict[str, Any]:
        return {
            "url": url,
            "title": "",
            "text": "",
            "word_count": 0,
            "crawl_success": False,
            "error_message": message,
            "timestamp": datetime.utcnow().isoformat(),
        }

    async def crawl_url(self, url: str, include_links: bool = False) -> Dict[str, Any]:
        """
        Crawl one URL.

        Returns:
            {url, title, text, word_count, crawl_success, error_message, timestamp},
            plus "links" (same-site links) on success when include_links is set
        """
        if not is_valid_webpage_url(url):
            return self._failure(url, "Invalid or non-webpage URL")

        last_error = "Unknown error"
        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
            transport=self._transport,
        ) as client:
            for attempt in range(1, self.max_retries + 1):
                try:
                    response = await client.get(url)
                    if response.status_code != 200:
                        last_error = f"HTTP {response.status_code}"
                        continue

                    content_type = response.headers.get("content-type", "")
                    if "text/html" not in content_type:
                        return self._failure(url, f"Unsupported content type: {content_type or 'unknown'}")

                    page = extract_page_text(response.text, self.max_content_length)
                    result = {
                        "url": url,
                        "title": page["title"],
                        "text": page["text"],
                        "word_count": len(page["text"].split()),
                        "crawl_success": True,
                        "error_message": None,
                        "timestamp": datetime.utcnow().isoformat(),
                    }
                    if include_links:
                        result["links"] = extract_same_site_links(response.text, str(response.url))
                    return result
                except httpx.HTTPError as e:
                    last_error = str(e) or type(e).__name__
                    logger.debug(f"[Crawler] Attempt {attempt} failed for {url}: {last_error}")

        logger.info(f"[Crawler] Failed to crawl {url}: {last_error}")
        return self._failure(url, last_error)

    async def crawl_urls(self, urls: List[str]) -> List[Dict[str, Any]]:
        """Crawl URLs concurrently; results keep the input order."""
        return list(await asyncio.gather(*(self.crawl_url(u) for u in urls)))
