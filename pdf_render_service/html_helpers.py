"""
Helper functions for preparing HTML documents for PDF rendering.

These functions normalize incoming HTML into a parseable document,
pick paper sizes and viewports, and decide which sub-resources the
page is allowed to fetch.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Pattern, Tuple

# Paper sizes Playwright's page.pdf(format=...) accepts, with their
# size in CSS pixels at 96 dpi (portrait).
PAGE_SIZES_PX: Dict[str, Tuple[int, int]] = {
    "A3": (1123, 1587),
    "A4": (794, 1123),
    "A5": (559, 794),
    "Legal": (816, 1344),
    "Letter": (816, 1056),
    "Tabloid": (1056, 1632),
}
PAGE_FORMATS = tuple(PAGE_SIZES_PX)

_DOCTYPE_RE = re.compile(r"^\ufeff?\s*(?:<!--.*?-->\s*)*<!doctype\s", re.IGNORECASE | re.DOTALL)
_CSS_PAGE_SIZE_RE = re.compile(r"@page\b[^{]*\{[^}]*\bsize\s*:", re.IGNORECASE)


def sanitize_for_path(text: str) -> str:
    """
    Sanitize text for use in filesystem paths and header values.

    Replaces special characters (except word chars, spaces, hyphens, dots)
    with underscores and replaces spaces with underscores.

    Example:
        >>> sanitize_for_path("Relatório (final)")
        "Relatório__final_"
    """
    cleaned = re.sub(r'[^\w\s.-]', '_', text)
    return cleaned.replace(" ", "_")


def sanitize_filename(name: str, default: str = "documento.pdf") -> str:
    """
    Build a safe attachment filename ending in .pdf.

    Non-ASCII characters are dropped because the value goes into a
    quoted Content-Disposition header.
    """
    ascii_name = name.encode("ascii", "ignore").decode("ascii").strip()
    cleaned = sanitize_for_path(ascii_name).strip("._")
    if not cleaned:
        return default
    if not cleaned.lower().endswith(".pdf"):
        cleaned = f"{cleaned}.pdf"
    return cleaned


def normalize_page_format(value: Optional[str]) -> Optional[str]:
    """
    Map a user-supplied paper size to Playwright's canonical spelling.

    Returns None for unknown sizes.

    Example:
        >>> normalize_page_format("letter")
        "Letter"
    """
    if not value:
        return None
    wanted = value.strip().lower()
    for page_format in PAGE_FORMATS:
        if page_format.lower() == wanted:
            return page_format
    return None


def viewport_for(page_format: str, landscape: bool = False) -> Dict[str, int]:
    """Viewport approximating the paper size, so print layout matches screen layout."""
    width, height = PAGE_SIZES_PX.get(page_format, PAGE_SIZES_PX["A4"])
    if landscape:
        width, height = height, width
    return {"width": width, "height": height}


def has_doctype(html: str) -> bool:
    """Check whether the document starts with a DOCTYPE declaration."""
    return bool(_DOCTYPE_RE.match(html))


def has_css_page_size(html: str) -> bool:
    """Check whether the document's CSS declares an @page size."""
    return bool(_CSS_PAGE_SIZE_RE.search(html))


def normalize_html(html: str) -> str:
    """
    Wrap HTML fragments in a minimal HTML5 document.

    Documents that already declare a DOCTYPE are returned unchanged.
    Fragments get a UTF-8 charset and a responsive viewport meta so the
    browser parses them in standards mode with the right encoding.
    """
    if has_doctype(html):
        return html

    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body>
{html}
</body>
</html>
"""


@dataclass(frozen=True)
class ResourcePolicy:
    """
    Allow/deny predicate over sub-resource requests.

    A request is denied when its Playwright resource type is in
    blocked_types or its URL matches any of blocked_url_patterns.
    Inline content (about: and data: URLs) is always allowed.
    """

    blocked_types: frozenset = field(default_factory=frozenset)
    blocked_url_patterns: Tuple[Pattern, ...] = ()

    @classmethod
    def from_lists(cls, resource_types: Iterable[str], url_patterns: Iterable[str]) -> "ResourcePolicy":
        return cls(
            blocked_types=frozenset(t.lower() for t in resource_types),
            blocked_url_patterns=tuple(re.compile(p, re.IGNORECASE) for p in url_patterns),
        )

    @property
    def is_empty(self) -> bool:
        return not self.blocked_types and not self.blocked_url_patterns

    def allows(self, resource_type: str, url: str) -> bool:
        if url.startswith(("about:", "data:")):
            return True
        if resource_type.lower() in self.blocked_types:
            return False
        return not any(pattern.search(url) for pattern in self.blocked_url_patterns)
