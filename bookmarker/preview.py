"""HTML preview page for a bookmark, carrying its Open Graph tags."""

from html import escape
from urllib.parse import urlparse

from bookmarker.models import Bookmark

__all__ = ["render_preview"]


def _og_tag(name: str, value: str | None) -> str:
    if value is None:
        return ""
    return f'<meta property="og:{name}" content="{escape(value)}">'


def render_preview(bookmark: Bookmark) -> str:
    title = escape(bookmark.title or "")
    head = [
        '<head prefix="og: http://ogp.me/ns#">',
        f"<title>{title}</title>",
        _og_tag("title", bookmark.title),
        _og_tag("type", bookmark.type),
        _og_tag("image", bookmark.image_url),
        _og_tag("url", bookmark.url),
        _og_tag("description", bookmark.description),
        _og_tag("site_name", urlparse(bookmark.url).hostname),
        "</head>",
    ]
    body = ['<body style="font-family: Helvetica, Arial, sans-serif;">', f"<h1>{title}</h1>"]
    if bookmark.description:
        body.append(f"<p>{escape(bookmark.description)}</p>")
    if bookmark.image_url:
        body.append(f'<img src="{escape(bookmark.image_url)}" />')
    body.append("</body>")
    return "<html>" + "".join(head) + "".join(body) + "</html>"
