from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from content_studio.config import settings
from content_studio.errors import FetchError
from content_studio.providers.base import ReferenceImage

logger = logging.getLogger(__name__)

UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/126.0 Safari/537.36"
)

MAX_PAGE_CHARS = 30_000
MIN_MAIN_CHARS = 200
MIN_PAGE_CHARS = 50
MAX_HEADINGS = 30
MAX_STYLE_IMAGES = 5
JS_RENDERED_NOTE = (
    "[Note: this page may be rendered with JavaScript. Little text could be extracted, "
    "so the analysis may be less accurate.]\n\n"
)

_STRIP_TAGS = ("script", "style", "noscript", "iframe", "nav", "footer", "header")
_MAIN_SELECTORS = (
    "main",
    "article",
    ".main-content",
    ".entry-content",
    ".post-content",
    "#content",
    ".content",
    "[role=main]",
)
_WS_RE = re.compile(r"\s+")
_IMAGE_SELECTORS = "article img, .post-content img, .entry-content img, main img, .content img"
_NOT_ARTICLE = ("/category/", "/tag/", "/author/", "contact", "about", "login", "search")


@dataclass(frozen=True)
class Page:
    url: str
    title: str
    text: str
    headings: tuple[str, ...] = ()


class _RetryableFetch(Exception):
    pass


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=6.0),
    retry=retry_if_exception_type(_RetryableFetch),
    reraise=True,
)
async def _get_with_retry(url: str, timeout: float) -> httpx.Response:
    headers = {
        "user-agent": UA,
        "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
        "accept-language": "ja,en-US;q=0.9,en;q=0.8",
        "cache-control": "no-cache",
    }
    try:
        async with httpx.AsyncClient(follow_redirects=True, timeout=timeout, headers=headers) as client:
            resp = await client.get(url)
    except httpx.TransportError as exc:
        raise _RetryableFetch(str(exc)) from exc
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise FetchError(f"Could not fetch {url}: {exc}", details={"url": url}) from exc
    if resp.status_code >= 500:
        raise _RetryableFetch(f"HTTP {resp.status_code}")
    return resp


def _collapse(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def extract_page(url: str, html: str) -> Page:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(list(_STRIP_TAGS)):
        tag.decompose()

    title = ""
    if soup.title and soup.title.string:
        title = soup.title.string.strip()
    if not title:
        h1 = soup.find("h1")
        title = h1.get_text(" ", strip=True) if h1 else ""

    headings = tuple(h.get_text(" ", strip=True) for h in soup.find_all("h2"))[:MAX_HEADINGS]

    content = ""
    for sel in _MAIN_SELECTORS:
        el = soup.select_one(sel)
        if el is None:
            continue
        candidate = _collapse(el.get_text(" "))
        if len(candidate) > MIN_MAIN_CHARS:
            content = candidate
            break

    if len(content) < MIN_MAIN_CHARS:
        body = soup.body or soup
        content = _collapse(body.get_text(" "))

    if len(content) < MIN_PAGE_CHARS:
        return Page(url=url, title=title, text=f"{JS_RENDERED_NOTE}{content}", headings=headings)
    return Page(url=url, title=title, text=content[:MAX_PAGE_CHARS], headings=headings)


async def _fetch_html(url: str) -> str:
    logger.info("Fetching %s", url)
    try:
        resp = await _get_with_retry(url, settings.fetch_timeout_seconds)
    except _RetryableFetch as exc:
        raise FetchError(f"Could not fetch {url}: {exc}", details={"url": url}) from exc
    if resp.status_code >= 400:
        raise FetchError(f"HTTP {resp.status_code} {resp.reason_phrase} (URL: {url})", details={"url": url})
    html = resp.text
    if not html or len(html) < 100:
        raise FetchError(f"The page at {url} returned an empty document", details={"url": url})
    return html


async def fetch_page(url: str) -> Page:
    html = await _fetch_html(url)
    page = extract_page(url, html)
    logger.info("Extracted %d chars from %s", len(page.text), url)
    return page


def first_article_link(url: str, html: str) -> str | None:
    """The first link that looks like an article on the same site as a listing page."""
    soup = BeautifulSoup(html, "html.parser")
    for a in soup.find_all("a", href=True):
        full = urljoin(url, a["href"].strip())
        if not full.startswith("http") or full == url:
            continue
        if any(part in full for part in _NOT_ARTICLE) or len(full) < len(url) + 10:
            continue
        return full
    return None


def collect_image_urls(url: str, html: str, limit: int = MAX_STYLE_IMAGES) -> list[str]:
    """Social-card images first, then article images, then any other image."""
    soup = BeautifulSoup(html, "html.parser")
    found: list[str] = []

    def add(raw: str | None) -> None:
        if not raw or len(found) >= limit:
            return
        full = urljoin(url, raw.strip())
        if not full.startswith("http") or full.endswith(".svg") or "favicon" in full or full in found:
            return
        found.append(full)

    for selector in ('meta[property="og:image"]', 'meta[name="twitter:image"]'):
        el = soup.select_one(selector)
        add(el.get("content") if el else None)
    for img in soup.select(_IMAGE_SELECTORS):
        add(img.get("src"))
        add(img.get("data-src"))
    for img in soup.find_all("img"):
        add(img.get("src"))
    return found


async def find_style_images(url: str) -> list[str]:
    """Image URLs representative of a site. A listing page is swapped for its first article."""
    html = await _fetch_html(url)
    base = url
    article = first_article_link(url, html)
    if article:
        try:
            html = await _fetch_html(article)
            base = article
        except FetchError as exc:
            logger.warning("Falling back to %s: %s", url, exc.message)
    images = collect_image_urls(base, html)
    logger.info("Found %d style images on %s", len(images), base)
    return images


async def fetch_image(url: str) -> ReferenceImage:
    try:
        async with httpx.AsyncClient(follow_redirects=True, timeout=settings.image_fetch_timeout_seconds) as client:
            resp = await client.get(url)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise FetchError(f"Could not fetch image {url}: {exc}", details={"url": url}) from exc
    if resp.status_code >= 400:
        raise FetchError(f"HTTP {resp.status_code} fetching image {url}", details={"url": url})
    mime = (resp.headers.get("content-type") or "image/jpeg").split(";")[0].strip()
    return ReferenceImage(data=resp.content, mime_type=mime)


async def load_reference(value: str) -> str:
    """A URL is fetched and reduced to text; anything else is used as pasted text."""
    value = (value or "").strip()
    if value.startswith("http"):
        page = await fetch_page(value)
        return page.text
    return value
