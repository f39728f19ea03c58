"""HTML-to-text extraction for URL ingestion and uploaded HTML files."""

import re
from dataclasses import dataclass
from html.parser import HTMLParser
from urllib.parse import urlparse

_SKIP_TAGS = frozenset({"script", "style", "noscript", "svg", "head", "template"})
_BLOCK_TAGS = frozenset(
    {
        "p", "div", "section", "article", "header", "footer", "nav", "main",
        "h1", "h2", "h3", "h4", "h5", "h6", "li", "tr", "br", "hr",
        "blockquote", "pre", "table", "ul", "ol", "dl", "dt", "dd",
        "figure", "figcaption", "aside",
    }
)
# Page titles longer than this are cut when used as a document title
MAX_TITLE_LENGTH = 200


@dataclass
class HtmlPage:
    title: str | None
    text: str


class _VisibleTextParser(HTMLParser):
    """Collects visible text, turning block elements into line breaks.

    The first ``<title>`` is captured separately even though it sits inside
    the hidden ``<head>``; titles nested in ``<svg>`` are ignored.
    """

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self._parts: list[str] = []
        self._hidden = 0
        self._svg = 0
        self._title_parts: list[str] = []
        self._in_title = False
        self._title_done = False

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag == "svg":
            self._svg += 1
        if tag == "title" and not self._svg and not self._title_done:
            self._in_title = True
        if tag in _SKIP_TAGS:
            self._hidden += 1
        elif tag in _BLOCK_TAGS and not self._hidden:
            self._parts.append("\n")

    def handle_endtag(self, tag: str) -> None:
        if tag == "svg":
            self._svg = max(0, self._svg - 1)
        if tag == "title" and self._in_title:
            self._in_title = False
            self._title_done = True
        if tag in _SKIP_TAGS:
            self._hidden = max(0, self._hidden - 1)
        elif tag in _BLOCK_TAGS and not self._hidden:
            self._parts.append("\n")

    def handle_data(self, data: str) -> None:
        if self._in_title:
            self._title_parts.append(data)
        elif not self._hidden:
            self._parts.append(data)

    def text(self) -> str:
        return "".join(self._parts)

    def title(self) -> str | None:
        title = " ".join("".join(self._title_parts).split())
        return title[:MAX_TITLE_LENGTH] or None


def parse_html(html: str) -> HtmlPage:
    """Split an HTML document into its ``<title>`` and its visible text."""
    parser = _VisibleTextParser()
    parser.feed(html)
    parser.close()
    text = re.sub(r"[^\S\n]+", " ", parser.text())
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return HtmlPage(title=parser.title(), text=text.strip())


def html_to_text(html: str) -> str:
    """Convert HTML to plain text, dropping scripts/styles and tags."""
    return parse_html(html).text


def filename_from_url(url: str) -> str:
    """Derive a storable .txt filename from a URL's host and path."""
    parsed = urlparse(url)
    return re.sub(r"[^a-zA-Z0-9.-]", "_", f"{parsed.hostname or ''}{parsed.path}") + ".txt"


def title_from_url(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.hostname or ''}{parsed.path}"
