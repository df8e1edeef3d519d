from __future__ import annotations

from bs4 import BeautifulSoup
from markdownify import markdownify as md

from .front_matter import with_front_matter
from .result import TransformMetadata, TransformResult, resolve_links


def _clean_soup_inplace(soup: BeautifulSoup) -> None:
    for tag_name in ["script", "style", "noscript", "template"]:
        for t in soup.find_all(tag_name):
            t.decompose()


def _pick_main_content(soup: BeautifulSoup):
    for selector in [
        "main",
        "article",
        "#main-content",
        ".documentation-hero + .container",
        "#content",
        "div[role='main']",
        "div[role='document']",
    ]:
        node = soup.select_one(selector)
        if node and node.get_text(strip=True):
            return node

    best = None
    best_len = 0
    for div in soup.find_all("div"):
        text_len = len(div.get_text(" ", strip=True))
        if text_len > best_len:
            best = div
            best_len = text_len
    return best or soup.body or soup


def extract_title(soup: BeautifulSoup) -> str | None:
    h1 = soup.find("h1")
    if h1 and h1.get_text(strip=True):
        return h1.get_text(" ", strip=True)
    if soup.title and soup.title.get_text(strip=True):
        return soup.title.get_text(" ", strip=True)
    return None


def extract_description(soup: BeautifulSoup) -> str | None:
    for attrs in ({"name": "description"}, {"property": "og:description"}):
        tag = soup.find("meta", attrs=attrs)
        if tag and (tag.get("content") or "").strip():
            return tag["content"].strip()
    return None


def _link_base(soup: BeautifulSoup, page_url: str) -> str:
    base = soup.find("base", href=True)
    if base is None:
        return page_url
    # <base href> may itself be relative to the page.
    resolved = resolve_links([base["href"]], page_url)
    return resolved[0] if resolved else page_url


def extract_links(soup: BeautifulSoup, page_url: str) -> list[str]:
    base = _link_base(soup, page_url)
    return resolve_links((a.get("href") or "" for a in soup.find_all("a")), base)


def html_to_markdown(html: str, *, source_url: str) -> TransformResult:
    soup = BeautifulSoup(html, "html.parser")
    # Links come from the whole document, navigation included.
    links = extract_links(soup, source_url)
    title = extract_title(soup)
    description = extract_description(soup)

    _clean_soup_inplace(soup)
    main = _pick_main_content(soup)
    markdown = md(str(main), heading_style="ATX").strip()

    return TransformResult(
        text=with_front_matter(
            markdown, source_url, title=title, description=description
        ),
        links=links,
        metadata=TransformMetadata(
            title=title,
            description=description,
        ),
    )
