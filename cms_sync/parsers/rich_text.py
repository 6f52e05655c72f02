"""
Rich-text sanitizing for content moving between CMSs.

Bodies arrive as HTML from a WYSIWYG editor, as Markdown, or as Markdown
that an editor wrapped in ``<p>`` tags.  :func:`sanitize_rich_text` decides
which of the three it is looking at and cleans it up without changing its
format: CSS that leaked into the text is removed, relative asset URLs are
made absolute on the asset host, links to the admin domain are moved to the
public site, empty paragraphs are dropped and tables flattened by an earlier
export are rebuilt.  Running it twice gives the same result as running it
once.

:func:`html_to_markdown` is the explicit conversion used when the destination
stores Markdown.  It relies on ``markdownify`` with a few rules for links,
quotes, figures and embeds, after a BeautifulSoup pre-clean.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple
from urllib.parse import urlsplit

from bs4 import BeautifulSoup, Comment
from markdownify import ATX, MarkdownConverter

from cms_sync.parsers.tables import recover_flat_tables

ASSET_PREFIXES = ("/wp-content/", "/wp-includes/")
UPLOADS_PATH = "/wp-content/uploads/"
MEDIA_EXTENSIONS = (
    ".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".avif",
    ".pdf", ".doc", ".docx", ".mp4", ".mp3", ".wav",
)
VIDEO_EMBED_MARKERS = ("youtube.com/embed/", "youtube-nocookie.com/embed/", "player.vimeo.com/video/")

_ZERO_WIDTH_RE = re.compile("[\u200b\u200c\u200d\u2060\ufeff]")
_CONTAINS_HTML_RE = re.compile(r"<\s*/?\s*[a-z][a-z0-9-]*(?:\s[^<>]*)?/?\s*>", re.IGNORECASE)
_COMPLEX_HTML_RE = re.compile(
    r"<\s*(img|iframe|figure|video|audio|table|pre|code|ul|ol|blockquote|h[1-6])\b", re.IGNORECASE
)
_IFRAME_RE = re.compile(r"<iframe\b[^>]*>.*?</iframe>", re.IGNORECASE | re.DOTALL)
_MARKDOWN_PATTERNS = (
    re.compile(r"(^|\n|\s)#{1,6}\s+\S"),
    re.compile(r"(^|\n)\s*[-*+]\s+\S"),
    re.compile(r"(^|\n)\s*\d{1,2}\.\s+\S"),
    re.compile(r"\*\*[^*\n]{2,}\*\*"),
    re.compile(r"__[^_\n]{2,}__"),
    re.compile(r"!\[[^\]]*\]\([^)]+\)"),
    re.compile(r"\[[^\]]+\]\([^)]+\)"),
)
_CSS_LEAK_PATTERNS = (
    re.compile(r"\bVisit Button\b\s*(?=\.modern-btn\b)", re.IGNORECASE),
    re.compile(r"\.modern-btn\b[^{<]{0,300}\{[^}]*\}\s*", re.IGNORECASE),
    re.compile(r"\.tg\b[^{<]{0,300}\{[^}]*\}\s*", re.IGNORECASE),
)
_IMAGE_URL_RE = re.compile(r"https?://[^\s\"'<>()\]]+?\.(?:png|jpe?g|webp|gif|avif|svg)(?:\?[^\s\"'<>()\]]*)?(?=[\s\"'<>()\]]|$)", re.IGNORECASE)
_SRC_ATTR_RE = re.compile(r"""\bsrc=(["'])([^"']+)\1""", re.IGNORECASE)
_MARKDOWN_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\(([^)\s]+)(?:\s+\"[^\"]*\")?\)")


###############################################################################
# URL policy
###############################################################################

def normalize_host(host: Optional[str]) -> str:
    value = (host or "").strip().lower()
    return value[4:] if value.startswith("www.") else value


def _host_of(url: str) -> str:
    value = (url or "").strip()
    if value.startswith("//"):
        value = "https:" + value
    try:
        return normalize_host(urlsplit(value).hostname)
    except ValueError:
        return ""


def is_media_url(url: str) -> bool:
    """True for upload paths and file extensions that point at a binary."""
    try:
        path = urlsplit(url or "").path.lower()
    except ValueError:
        return False
    if UPLOADS_PATH in path or "/wp-includes/" in path:
        return True
    return path.endswith(MEDIA_EXTENSIONS)


@dataclass(frozen=True)
class UrlPolicy:
    """
    The two URL targets of a destination site.

    ``asset_base_url`` is where binaries live (the CMS admin host);
    ``site_url`` is the public site that links should point to.
    ``allowed_hosts`` lists further hosts whose images are kept as-is.
    """

    asset_base_url: str = ""
    site_url: str = ""
    allowed_hosts: Tuple[str, ...] = ()

    @property
    def asset_base(self) -> str:
        return self.asset_base_url.rstrip("/")

    @property
    def site_base(self) -> str:
        return self.site_url.rstrip("/")

    @property
    def asset_host(self) -> str:
        return _host_of(self.asset_base_url)

    @property
    def site_host(self) -> str:
        return _host_of(self.site_url)

    @property
    def hosts(self) -> FrozenSet[str]:
        found = {self.asset_host, self.site_host, *(normalize_host(h) for h in self.allowed_hosts)}
        return frozenset(h for h in found if h)

    def is_allowed_url(self, url: str) -> bool:
        """Relative URLs and URLs on a known host are allowed."""
        value = (url or "").strip()
        if not value:
            return False
        host = _host_of(value)
        if not host:
            return not re.match(r"^[a-z][a-z0-9+.-]*:", value, re.IGNORECASE)
        return host in self.hosts

    def link_url(self, url: str) -> str:
        """Move an admin-domain (or relative) link onto the public site."""
        value = (url or "").strip()
        if not self.site_url or not value:
            return value
        if value.startswith("/") and not value.startswith("//"):
            return f"{self.site_base}{value}"
        if _host_of(value) != self.asset_host or self.asset_host == self.site_host:
            return value
        parts = urlsplit(value)
        rebuilt = f"{self.site_base}{parts.path or '/'}"
        if parts.query:
            rebuilt += f"?{parts.query}"
        if parts.fragment:
            rebuilt += f"#{parts.fragment}"
        return rebuilt


###############################################################################
# Building blocks
###############################################################################

def decode_html_entities(text: str) -> str:
    return html.unescape(text or "").replace("\xa0", " ")


def rewrite_admin_links(content: str, policy: Optional[UrlPolicy]) -> str:
    """Point ``href``s on the admin domain at the public site, uploads excepted."""
    if policy is None or not policy.site_url or not policy.asset_host:
        return content
    if policy.asset_host == policy.site_host:
        return content
    pattern = re.compile(
        r"""href=(["'])https?://(?:www\.)?%s(/[^"']*)?\1""" % re.escape(policy.asset_host),
        re.IGNORECASE,
    )

    def repl(m: "re.Match[str]") -> str:
        path = m.group(2) or "/"
        if UPLOADS_PATH in path.lower():
            return m.group(0)
        return f"href={m.group(1)}{policy.site_base}{path}{m.group(1)}"

    return pattern.sub(repl, content)


def rewrite_content_urls(text: str, policy: Optional[UrlPolicy]) -> str:
    """Move bare admin-domain URLs to the public site unless they point at media."""
    if policy is None or not policy.site_url or not policy.asset_host:
        return text
    if policy.asset_host == policy.site_host:
        return text
    pattern = re.compile(
        r"https?://(?:www\.)?%s(/[^\s\"'<>()\]]*)?" % re.escape(policy.asset_host), re.IGNORECASE
    )

    def repl(m: "re.Match[str]") -> str:
        if is_media_url(m.group(0)):
            return m.group(0)
        return f"{policy.site_base}{m.group(1) or ''}"

    return pattern.sub(repl, text)


def absolutize_relative_urls(text: str, base_url: str, prefixes: Tuple[str, ...] = ASSET_PREFIXES) -> str:
    """Prefix root-relative asset paths in attributes and Markdown links with ``base_url``."""
    if not text or not base_url:
        return text
    base = base_url.rstrip("/")
    for prefix in prefixes:
        attr = re.compile(r"""\b(src|href)=(["'])%s""" % re.escape(prefix), re.IGNORECASE)
        text = attr.sub(lambda m, p=prefix: f"{m.group(1)}={m.group(2)}{base}{p}", text)
        text = text.replace(f"]({prefix}", f"]({base}{prefix}")
    return text


def strip_css_leaks(text: str) -> str:
    """Remove ``.modern-btn``/``.tg`` rule blocks pasted into content as text."""
    if not text or (".modern-btn" not in text and ".tg" not in text):
        return text
    for pattern in _CSS_LEAK_PATTERNS:
        text = pattern.sub("", text)
    return text


def patch_strings(value: Any, fn: Callable[[str], str]) -> Tuple[Any, bool]:
    """Apply ``fn`` to every string nested in dicts and lists.

    Returns the patched copy and whether anything changed.
    """
    if isinstance(value, str):
        patched = fn(value)
        return patched, patched != value
    if isinstance(value, list):
        changed = False
        out = []
        for entry in value:
            new, did = patch_strings(entry, fn)
            out.append(new)
            changed = changed or did
        return out, changed
    if isinstance(value, dict):
        changed = False
        result: Dict[str, Any] = {}
        for key, entry in value.items():
            new, did = patch_strings(entry, fn)
            result[key] = new
            changed = changed or did
        return result, changed
    return value, False


def _is_empty_paragraph(p) -> bool:
    if p.find(lambda tag: tag.name not in ("br", "span")) is not None:
        return False
    text = _ZERO_WIDTH_RE.sub("", p.get_text())
    return not text.replace("\xa0", " ").strip()


def _srcset_urls(value: str) -> List[str]:
    return [part.strip().split(" ")[0] for part in value.split(",") if part.strip()]


def _clean_html_tree(content: str, policy: Optional[UrlPolicy], drop_external_images: bool) -> str:
    """Drop scripts, styles, image inline styles, empty paragraphs and (optionally) external images."""
    soup = BeautifulSoup(content, "html.parser")
    for tag in soup.find_all(["script", "style"]):
        tag.decompose()
    for tag in soup.find_all(["img", "figure"]):
        del tag["style"]

    if drop_external_images and policy is not None:
        for tag in soup.find_all(srcset=True):
            if any(not policy.is_allowed_url(u) for u in _srcset_urls(tag["srcset"])):
                del tag["srcset"]
        for img in soup.find_all("img"):
            src = img.get("src")
            if src and not policy.is_allowed_url(src):
                img.decompose()

    for p in soup.find_all("p"):
        if _is_empty_paragraph(p):
            p.decompose()
    return str(soup)


def _drop_external_images_markdown(text: str, policy: UrlPolicy) -> str:
    def repl(m: "re.Match[str]") -> str:
        return m.group(0) if policy.is_allowed_url(m.group(2)) else ""

    return _MARKDOWN_IMAGE_RE.sub(repl, text)


def looks_like_markdown(text: str) -> bool:
    return any(p.search(text) for p in _MARKDOWN_PATTERNS)


def contains_markup(text: str) -> bool:
    return bool(_CONTAINS_HTML_RE.search(text or ""))


def _markdown_candidate(content: str) -> str:
    """Peel simple paragraph wrappers off ``content`` to expose Markdown."""
    text = re.sub(r"<\s*br\s*/?\s*>", "\n", content, flags=re.IGNORECASE)
    text = re.sub(r"</p\s*>", "\n\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<p\b[^>]*>", "", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)
    text = re.sub(r"\n{3,}", "\n\n", text).strip()
    text = decode_html_entities(text)
    text = _ZERO_WIDTH_RE.sub("", text)
    text = re.sub(r"[ \t]+\n", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return strip_css_leaks(text).strip()


def _normalize_markdown(text: str, policy: Optional[UrlPolicy], drop_external_images: bool) -> str:
    if policy is not None and policy.asset_base_url:
        text = absolutize_relative_urls(text, policy.asset_base)
        text = rewrite_content_urls(text, policy)
    # headings and numbered items glued to the previous sentence
    text = re.sub(r"(^|[^\n])[ \t](#{1,6})[ \t]+(?=[0-9A-Za-z*])", r"\1\n\n\2 ", text)
    text = re.sub(r"(^|[^\n#])[ \t](\d{1,2}\.)[ \t]+(?=\*\*|__|[A-Za-z0-9])", r"\1\n\n\2 ", text)
    text = re.sub(r"^[ \t]{4,}(#{1,6}[ \t]+)", r"\1", text, flags=re.MULTILINE)
    text = re.sub(r"\n{3,}", "\n\n", text).strip()

    inline_bullet = re.compile(r"[ \t]-[ \t]+(?=\*\*|__|\[)")
    if len(inline_bullet.findall(text)) >= 2:
        text = inline_bullet.sub("\n- ", text)

    if drop_external_images and policy is not None:
        text = _drop_external_images_markdown(text, policy)
        text = re.sub(r"\n{3,}", "\n\n", text).strip()
    return text


def _normalize_html(content: str, policy: Optional[UrlPolicy], drop_external_images: bool) -> str:
    content = _clean_html_tree(content, policy, drop_external_images)
    content = strip_css_leaks(content)
    if policy is not None and policy.asset_base_url:
        content = absolutize_relative_urls(content, policy.asset_base)
    content = recover_flat_tables(content)
    return content.strip()


###############################################################################
# Public entry points
###############################################################################

def sanitize_rich_text(
    content: Any,
    policy: Optional[UrlPolicy] = None,
    *,
    drop_external_images: bool = False,
) -> Optional[str]:
    """
    Clean a rich-text field while keeping its format (HTML stays HTML,
    Markdown stays Markdown).

    :param content: Raw field value.  Non-strings and blank strings yield ``None``.
    :param policy: Asset and public-site targets.  Without one no URL is rewritten.
    :param drop_external_images: Remove images whose host is not allowed by
        ``policy`` instead of keeping them for a later upload.
    :return: The sanitized text, or ``None``.
    """
    if not isinstance(content, str):
        return None
    value = content.strip()
    if not value:
        return None

    value = rewrite_admin_links(value, policy)
    has_html = contains_markup(value)
    has_complex_html = bool(_COMPLEX_HTML_RE.search(value))
    candidate = _markdown_candidate(value) if has_html else strip_css_leaks(value)

    if has_html and (has_complex_html or not looks_like_markdown(candidate)):
        return _normalize_html(value, policy, drop_external_images) or None
    return _tidy_markdown(_normalize_markdown(candidate, policy, drop_external_images)) or None


def extract_image_urls(text: str) -> List[str]:
    """Absolute image URLs referenced by ``src`` attributes, Markdown images or bare links."""
    if not text:
        return []
    found: List[str] = []
    for m in _SRC_ATTR_RE.finditer(text):
        found.append(html.unescape(m.group(2)).strip())
    for m in _MARKDOWN_IMAGE_RE.finditer(text):
        found.append(m.group(2).strip())
    found.extend(m.group(0) for m in _IMAGE_URL_RE.finditer(text))
    urls: List[str] = []
    for url in found:
        if url.lower().startswith(("http://", "https://")) and url not in urls:
            urls.append(url)
    return urls


def replace_urls(text: Optional[str], mapping: Dict[str, str]) -> Optional[str]:
    """Replace every occurrence of each key in ``mapping`` (longest first)."""
    if not text or not mapping:
        return text
    for old in sorted(mapping, key=len, reverse=True):
        if old and mapping[old]:
            text = text.replace(old, mapping[old])
    return text


###############################################################################
# HTML to Markdown / plain text
###############################################################################

def _is_video_embed(src: str) -> bool:
    lowered = (src or "").lower()
    return any(marker in lowered for marker in VIDEO_EMBED_MARKERS)


class CmsMarkdownConverter(MarkdownConverter):
    """markdownify converter with the link, quote, figure and embed rules we need."""

    def convert_a(self, el, text, *args, **kwargs):
        href = el.get("href")
        if not href or not (text or "").strip():
            return text
        return f"[{text.strip()}]({href})"

    def convert_blockquote(self, el, text, *args, **kwargs):
        lines = [line.strip() for line in (text or "").strip().split("\n")]
        if not any(lines):
            return ""
        return "\n\n" + "\n".join(f"> {line}" if line else ">" for line in lines) + "\n\n"

    def convert_figure(self, el, text, *args, **kwargs):
        img = el.find("img")
        if img is None:
            return text
        caption_el = el.find("figcaption")
        caption = caption_el.get_text(" ", strip=True) if caption_el else ""
        alt = img.get("alt") or caption
        out = f"![{alt}]({img.get('src', '')})"
        if caption:
            out += f"\n*{caption}*"
        return f"\n\n{out}\n\n"

    def convert_iframe(self, el, text, *args, **kwargs):
        src = el.get("src") or ""
        if _is_video_embed(src):
            return f"\n\n{el}\n\n"
        if not src:
            return ""
        return f"\n\n[Embedded content]({src})\n\n"


_DROP_ATTRIBUTES = ("style", "loading", "class", "data-page-url")


def _preclean_html(content: str) -> str:
    soup = BeautifulSoup(content, "html.parser")
    for node in soup.find_all(string=lambda s: isinstance(s, Comment)):
        node.extract()
    for tag in soup.find_all(["script", "style"]):
        tag.decompose()
    for tag in soup.find_all(True):
        for attr in list(tag.attrs):
            if attr in _DROP_ATTRIBUTES or attr.startswith("data-rt-"):
                del tag.attrs[attr]
            elif attr == "id" and not str(tag.attrs.get("id") or "").strip():
                del tag.attrs[attr]
    for p in soup.find_all("p"):
        if not p.get_text(strip=True) and p.find(["img", "iframe", "video"]) is None:
            p.decompose()
    return str(soup)


def _tidy_markdown(text: str) -> str:
    text = re.sub(r"[ \t]+$", "", text, flags=re.MULTILINE)
    text = re.sub(r"\n{3,}", "\n\n", text).strip()
    return f"{text}\n" if text else ""


def html_to_markdown(content: Optional[str]) -> str:
    """
    Convert an HTML body to Markdown (ATX headings, ``-`` bullets).

    Text without markup, apart from kept video iframes, is only
    whitespace-normalized, so converting an already converted body is a no-op.
    """
    if not content or not content.strip():
        return ""
    if not contains_markup(_IFRAME_RE.sub("", content)):
        return _tidy_markdown(content)
    converter = CmsMarkdownConverter(
        heading_style=ATX,
        bullets="-",
        escape_asterisks=False,
        escape_underscores=False,
    )
    return _tidy_markdown(converter.convert(_preclean_html(content)))


def html_to_plain_text(content: Optional[str]) -> str:
    """Tags become spaces, entities are decoded, whitespace is collapsed."""
    if not content:
        return ""
    text = BeautifulSoup(content, "html.parser").get_text(" ")
    text = _ZERO_WIDTH_RE.sub("", decode_html_entities(text))
    return re.sub(r"\s+", " ", text).strip()
