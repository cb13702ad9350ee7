from __future__ import annotations

"""
Text normalization utilities used across the crawler and composer.

``clean_text`` is for short strings pulled out of a single element (names,
SKUs, vendor).  ``basic_clean`` is for free text that can carry inline
markup or run to pages of copy: descriptions, feature bullets, spec
values and fit guides.  It caps the raw fragment at ``MAX_FIELD_CHARS``
before parsing it.  The SKU helpers derive fallback SKUs from URL slugs
or product names.
"""

import html
import re
import unicodedata
from urllib.parse import urlsplit

from bs4 import BeautifulSoup
from loguru import logger

from .config import SKU_MAX_LENGTH

MAX_FIELD_CHARS = 20_000


# ---------------------------
# Basic helpers
# ---------------------------

def clamp_text(text: str, max_chars: int = MAX_FIELD_CHARS) -> str:
    """Cut ``text`` to ``max_chars``.  Oversized copy is truncated, never rejected."""
    return text if len(text) <= max_chars else text[:max_chars]


def strip_tags(fragment: str) -> str:
    """
    Visible text of an HTML fragment.  Plain text is returned as is; a
    fragment lxml cannot parse is kept raw so no copy is lost.
    """
    if "<" not in fragment:
        return fragment
    try:
        text = BeautifulSoup(fragment, "lxml").get_text(" ", strip=True)
    except Exception as e:
        logger.debug("Keeping unparsed fragment ({}): {:.60}", e, fragment)
        return fragment
    # "<b>light</b>, lens" renders as "light , lens"
    return re.sub(r"\s+([.,!?;:])", r"\1", text)


def normalize_unicode(text: str) -> str:
    if not text:
        return ""
    return unicodedata.normalize("NFC", text)


def normalize_whitespace(text: str) -> str:
    """
    Collapse all whitespace runs into a single space and strip edges.
    """
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip()


def clean_text(text: str | None) -> str:
    """
    Cleaning applied to every string pulled out of markup:

    - decode HTML entities (``&amp;`` -> ``&``, ``&#8217;`` -> ``'``)
    - normalize unicode
    - collapse whitespace
    """
    if not text:
        return ""
    text = html.unescape(str(text))
    text = normalize_unicode(text)
    return normalize_whitespace(text)


def basic_clean(text: str | None, max_chars: int = MAX_FIELD_CHARS) -> str:
    if not text:
        return ""
    return clean_text(strip_tags(clamp_text(str(text), max_chars)))


# ---------------------------
# SKU fallbacks
# ---------------------------

def url_slug(url: str) -> str:
    """Last non-empty path segment of ``url`` (query and fragment ignored)."""
    if not url:
        return ""
    path = urlsplit(url).path
    parts = [p for p in path.split("/") if p]
    return parts[-1] if parts else ""


def sku_from_slug(slug: str, max_length: int = SKU_MAX_LENGTH) -> str:
    """
    ``test-product-x`` -> ``TESTPRODUCTX``.  Returns an empty string when
    the slug carries no alphanumeric character.
    """
    if not slug or not re.search(r"[A-Za-z0-9]", slug):
        return ""
    sku = slug.upper().replace("-", "")
    return sku[:max_length]


def sku_from_name(name: str, max_length: int = SKU_MAX_LENGTH) -> str:
    """
    ``Test Product!`` -> ``TEST-PRODUCT``.  Characters other than ASCII
    letters, digits, spaces and hyphens are dropped; spaces become hyphens.
    """
    if not name:
        return ""
    sku = re.sub(r"[^a-zA-Z0-9\s-]", "", name).strip()
    sku = re.sub(r"\s+", "-", sku).upper()
    return sku[:max_length]


def generate_sku(name: str, source_url: str, max_length: int = SKU_MAX_LENGTH) -> str:
    """URL slug first, product name when the slug is unusable."""
    return sku_from_slug(url_slug(source_url), max_length) or sku_from_name(name, max_length)
