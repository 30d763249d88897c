from __future__ import annotations

import asyncio

import httpx
import pytest

from content_studio import web
from content_studio.errors import FetchError

LONG = "Espresso is brewed by forcing hot water through finely ground coffee. " * 5


def test_extract_page_prefers_main_content():
    html = f"""
    <html><head><title> Brew Guide </title><script>var x = 1;</script></head>
    <body>
      <nav>Home | Shop</nav>
      <main><h2>Grind</h2><p>{LONG}</p><h2>Tamp</h2></main>
      <footer>Copyright</footer>
    </body></html>
    """
    page = web.extract_page("https://example.com/brew", html)

    assert page.title == "Brew Guide"
    assert page.headings == ("Grind", "Tamp")
    assert "finely ground coffee" in page.text
    assert "Home | Shop" not in page.text
    assert "var x" not in page.text


def test_extract_page_falls_back_to_body_and_h1():
    html = f"<html><body><h1>Beans</h1><div><p>{LONG}</p></div><main>tiny</main></body></html>"
    page = web.extract_page("https://example.com", html)

    assert page.title == "Beans"
    assert page.text.startswith("Beans")
    assert "finely ground coffee" in page.text


def test_extract_page_flags_script_rendered_pages():
    page = web.extract_page("https://example.com", "<html><body><div id='app'>Loading</div></body></html>")
    assert page.text.startswith(web.JS_RENDERED_NOTE)
    assert page.text.endswith("Loading")


def test_extract_page_truncates():
    html = "<html><body><p>" + ("word " * 20_000) + "</p></body></html>"
    assert len(web.extract_page("https://example.com", html).text) == web.MAX_PAGE_CHARS


def _respond(status: int, text: str = ""):
    async def fake_get(url: str, timeout: float) -> httpx.Response:
        return httpx.Response(status, text=text, request=httpx.Request("GET", url))

    return fake_get


def test_fetch_page_http_error(monkeypatch):
    monkeypatch.setattr(web, "_get_with_retry", _respond(404))
    with pytest.raises(FetchError) as exc:
        asyncio.run(web.fetch_page("https://example.com/missing"))
    assert "404" in exc.value.message
    assert exc.value.details == {"url": "https://example.com/missing"}


def test_fetch_page_empty_document(monkeypatch):
    monkeypatch.setattr(web, "_get_with_retry", _respond(200, "<html></html>"))
    with pytest.raises(FetchError):
        asyncio.run(web.fetch_page("https://example.com"))


def test_fetch_page_success(monkeypatch):
    html = f"<html><head><title>T</title></head><body><article>{LONG}</article></body></html>"
    monkeypatch.setattr(web, "_get_with_retry", _respond(200, html))
    page = asyncio.run(web.fetch_page("https://example.com"))
    assert page.title == "T"
    assert page.url == "https://example.com"


def test_load_reference_passes_text_through():
    assert asyncio.run(web.load_reference("  pasted copy  ")) == "pasted copy"


@pytest.mark.parametrize("fetch", [web.fetch_page, web.fetch_image])
def test_malformed_url_is_a_fetch_error(fetch):
    url = "https://example.com/\x01brew"
    with pytest.raises(FetchError) as exc:
        asyncio.run(fetch(url))
    assert exc.value.details == {"url": url}


def test_collect_image_urls_orders_and_filters():
    html = """
    <html><head>
      <meta property="og:image" content="/og.jpg">
      <link rel="icon" href="/favicon.ico">
    </head><body>
      <img src="/favicon-32.png">
      <img src="data:image/png;base64,AAAA">
      <main><img data-src="https://cdn.example/lazy.jpg"><img src="/logo.svg"></main>
      <img src="https://cdn.example/a.jpg"><img src="/og.jpg">
      <img src="/b.jpg"><img src="/c.jpg"><img src="/d.jpg">
    </body></html>
    """
    urls = web.collect_image_urls("https://blog.example/post/1", html)

    assert urls == [
        "https://blog.example/og.jpg",
        "https://cdn.example/lazy.jpg",
        "https://cdn.example/a.jpg",
        "https://blog.example/b.jpg",
        "https://blog.example/c.jpg",
    ]


def test_first_article_link_skips_navigation():
    html = """
    <a href="/">Home</a><a href="/about">About</a><a href="/category/news">News</a>
    <a href="mailto:hi@blog.example">Mail</a><a href="/2024/05/first-post">First post</a>
    """
    assert web.first_article_link("https://blog.example", html) == "https://blog.example/2024/05/first-post"
    assert web.first_article_link("https://blog.example", "<a href='/tag/x'>x</a>") is None


def test_find_style_images_follows_first_article(monkeypatch):
    top = "<html><body>" + "x" * 100 + "<a href='/2024/05/first-post'>post</a><img src='/top.jpg'></body></html>"
    post = "<html><body>" + "y" * 100 + "<article><img src='/post.jpg'></article></body></html>"
    bodies = {"https://blog.example": top, "https://blog.example/2024/05/first-post": post}

    async def fake_get(url: str, timeout: float) -> httpx.Response:
        return httpx.Response(200, text=bodies[url], request=httpx.Request("GET", url))

    monkeypatch.setattr(web, "_get_with_retry", fake_get)
    assert asyncio.run(web.find_style_images("https://blog.example")) == ["https://blog.example/post.jpg"]
