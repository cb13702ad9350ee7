from __future__ import annotations

"""
Structural extraction of product records from storefront markup.

Extraction runs an ordered list of independent passes over the parsed
document.  Each pass is a plain function that looks at the soup, the
draft built so far and the extraction context, and returns a dict of
field updates.  The draft applies updates with fill-only semantics: a
field populated by an earlier pass is never overwritten, so the
structured-data pass is authoritative and the markup passes only fill
the gaps it left.

Every selector and pattern lives in ``ExtractionRules``.  A storefront
with a different theme gets its own rules object; the pass pipeline and
the crawler orchestration stay untouched.

Passes:

1. structured data (``ShopifyAnalytics.meta`` JSON in inline scripts)
2. markup fallback (name, SKU, description, price, features, fit guide)
3. SKU generation from the URL slug or the product name
4. lens options seeded from the catalog, overridden by page text
5. specifications and frame type/colour
6. product images, normalised to absolute URLs
7. category, collection and tags from the URL
"""

import json
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup, Comment, Tag
from loguru import logger

from .config import STOREFRONT_BASE_URL
from .lens_types import DEFAULT_LENS_CATALOG, LensCatalog, LensTypeInfo
from .models import LensOption, ProductRecord, utcnow
from .normalize import basic_clean, clean_text, generate_sku


@dataclass(frozen=True)
class LensSeed:
    """A lens option every product is assumed to offer until the page says otherwise."""

    lens_type: str
    default_protection: str
    description: str
    benefits: Tuple[str, ...]
    recommended_uses: Tuple[str, ...]
    keywords: Tuple[str, ...]


@dataclass(frozen=True)
class CollectionRule:
    url_keyword: str
    collection: str
    tags: Tuple[str, ...]


@dataclass(frozen=True)
class ExtractionRules:
    structured_data_markers: Tuple[re.Pattern, ...] = (
        re.compile(r"ShopifyAnalytics\.meta\s*=\s*", re.I),
        re.compile(r"\bvar\s+meta\s*=\s*"),
    )

    name_selectors: Tuple[str, ...] = ("h1.product-title", "h1[class*=product]", "h1")
    sku_selectors: Tuple[str, ...] = ("span[class*=sku]",)
    sku_text_marker: re.Pattern = re.compile(r"SKU")
    sku_pattern: re.Pattern = re.compile(r"SKU:?\s*([A-Z0-9-]+)", re.I)
    description_selectors: Tuple[str, ...] = (
        "div[class*=product-description]",
        "div[class*=description]",
    )
    price_selectors: Tuple[str, ...] = ("span[class*=price]", "[class*=money]")
    price_pattern: re.Pattern = re.compile(r"\$?(\d+(?:\.\d{2})?)")
    feature_selectors: Tuple[str, ...] = ("ul[class*=features] li", "div[class*=features] li")
    feature_keywords: Tuple[str, ...] = ("light", "protection", "lens")
    min_feature_length: int = 4
    fit_guide_selectors: Tuple[str, ...] = ("div[class*=fit-guide]", "div[class*=size-guide]", "#fit-guide")

    default_lens_type: str = "Amber"
    lens_text_keywords: Tuple[str, ...] = ("lens", "blue light")
    protection_pattern: re.Pattern = re.compile(r"(\d+)%\s*blue\s*light", re.I)
    lens_seeds: Tuple[LensSeed, ...] = (
        LensSeed(
            lens_type="Amber",
            default_protection="65%",
            description=(
                "Amber tinted lenses optimized for gaming with enhanced contrast "
                "and {protection} blue light protection"
            ),
            benefits=("Enhanced Contrast", "Reduced Eye Strain", "Gaming Optimized"),
            recommended_uses=("Gaming", "Long Gaming Sessions", "Low Light Gaming"),
            keywords=("amber", "yellow"),
        ),
        LensSeed(
            lens_type="Clear",
            default_protection="35%",
            description=(
                "Clear lenses with natural color accuracy and {protection} blue light protection"
            ),
            benefits=("Natural Color Accuracy", "All-Day Comfort", "Professional Use"),
            recommended_uses=("Office Work", "General Computer Use", "Video Calls"),
            keywords=("clear", "transparent"),
        ),
    )

    spec_selectors: Tuple[str, ...] = ("table[class*=spec] tr", "div[class*=specification] div")
    frame_text_keywords: Tuple[str, ...] = ("frame", "material")
    default_frame_type: str = "Full Frame"
    frame_color_pattern: re.Pattern = re.compile(
        r"\b(black|onyx|gunmetal|silver|gold|bronze|copper|tortoise|clear)\b", re.I
    )

    image_keyword: str = "product"
    image_fallback_selector: str = "img[class*=product]"

    category_rules: Tuple[Tuple[str, str], ...] = (("/gaming-glasses/", "Gaming Glasses"),)
    collection_rules: Tuple[CollectionRule, ...] = (
        CollectionRule("overwatch", "Overwatch", ("Overwatch", "Blizzard", "Gaming", "Esports")),
    )
    base_tags: Tuple[str, ...] = ("Gaming Glasses", "Blue Light Protection", "Computer Glasses")


@dataclass
class ExtractionContext:
    source_url: str
    base_url: str
    rules: ExtractionRules
    catalog: LensCatalog


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, Decimal):
        return value == 0
    if isinstance(value, (str, list, dict, tuple)):
        return len(value) == 0
    return False


@dataclass
class ProductDraft:
    """Mutable record under construction.  ``finalize`` freezes it into a ``ProductRecord``."""

    source_url: str
    fields: Dict[str, Any] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    def apply(self, updates: Dict[str, Any]) -> List[str]:
        """Fill empty fields from ``updates``; returns the names that were set."""
        filled: List[str] = []
        for key, value in updates.items():
            if _is_empty(value):
                continue
            if not _is_empty(self.fields.get(key)):
                continue
            self.fields[key] = value
            filled.append(key)
        return filled

    def finalize(self) -> ProductRecord:
        return ProductRecord(source_url=self.source_url, last_updated=utcnow(), **self.fields)


ExtractionPass = Callable[[BeautifulSoup, ProductDraft, ExtractionContext], Dict[str, Any]]


# ---------------------------
# Soup helpers
# ---------------------------

def _first(soup: BeautifulSoup, selectors: Sequence[str]) -> Optional[Tag]:
    for sel in selectors:
        node = soup.select_one(sel)
        if node is not None:
            return node
    return None


def _select_any(soup: BeautifulSoup, selectors: Sequence[str]) -> List[Tag]:
    for sel in selectors:
        nodes = soup.select(sel)
        if nodes:
            return nodes
    return []


def _visible_text_nodes(soup: BeautifulSoup, keywords: Sequence[str]) -> List[str]:
    """Text of elements whose own text mentions any keyword (case-insensitive)."""
    out: List[str] = []
    lowered = [k.lower() for k in keywords]
    for s in soup.find_all(string=True):
        if isinstance(s, Comment):
            continue
        parent = s.parent
        if parent is None or parent.name in ("script", "style", "noscript", "template"):
            continue
        text = str(s).lower()
        if any(k in text for k in lowered):
            out.append(clean_text(parent.get_text(" ")))
    return out


def _to_decimal(raw: Any) -> Optional[Decimal]:
    try:
        return Decimal(str(raw))
    except (InvalidOperation, ValueError):
        return None


# ---------------------------
# Pass 1: structured data
# ---------------------------

def _find_structured_payload(soup: BeautifulSoup, rules: ExtractionRules) -> Optional[Dict[str, Any]]:
    decoder = json.JSONDecoder()
    for script in soup.find_all("script"):
        if script.get("src"):
            continue
        body = script.string or script.get_text()
        if not body:
            continue
        for marker in rules.structured_data_markers:
            for m in marker.finditer(body):
                start = m.end()
                if start >= len(body) or body[start] != "{":
                    continue
                try:
                    obj, _ = decoder.raw_decode(body, start)
                except json.JSONDecodeError as e:
                    logger.warning("Failed to parse structured product data: {}", e)
                    continue
                if isinstance(obj, dict) and isinstance(obj.get("product"), dict):
                    return obj
    return None


def structured_data_pass(soup: BeautifulSoup, draft: ProductDraft, ctx: ExtractionContext) -> Dict[str, Any]:
    meta = _find_structured_payload(soup, ctx.rules)
    if meta is None:
        logger.warning("No structured product data found in page scripts for {}", ctx.source_url)
        return {}

    product = meta["product"]
    updates: Dict[str, Any] = {}
    if product.get("id") is not None:
        updates["shopify_product_id"] = str(product["id"])
    if product.get("gid"):
        updates["shopify_gid"] = str(product["gid"])
    if product.get("vendor"):
        updates["vendor"] = clean_text(product["vendor"])
    if product.get("type"):
        updates["category"] = clean_text(product["type"])

    variant_ids: List[str] = []
    variant_skus: List[str] = []
    for variant in product.get("variants") or []:
        if not isinstance(variant, dict):
            continue
        if variant.get("id") is not None:
            variant_ids.append(str(variant["id"]))
        sku = clean_text(variant.get("sku") or "")
        if sku:
            variant_skus.append(sku)
            updates.setdefault("sku", sku)
        if "price" not in updates and variant.get("price") is not None:
            cents = _to_decimal(variant["price"])
            if cents is not None:
                # prices are reported in cents
                updates["price"] = cents / 100
        full_name = clean_text(variant.get("name") or "")
        if full_name and "name" not in updates:
            updates["name"] = full_name.split("-")[0].strip()

    updates["variant_ids"] = variant_ids
    updates["variant_skus"] = variant_skus
    if meta.get("selectedVariantId"):
        updates["selected_variant_id"] = str(meta["selectedVariantId"])

    logger.debug(
        "Structured data: product_id={}, sku={}, variants={}, price={}",
        updates.get("shopify_product_id"),
        updates.get("sku"),
        len(variant_ids),
        updates.get("price"),
    )
    return updates


# ---------------------------
# Pass 2: markup fallback
# ---------------------------

def markup_pass(soup: BeautifulSoup, draft: ProductDraft, ctx: ExtractionContext) -> Dict[str, Any]:
    rules = ctx.rules
    updates: Dict[str, Any] = {}

    if _is_empty(draft.get("name")):
        node = _first(soup, rules.name_selectors)
        if node is not None:
            updates["name"] = clean_text(node.get_text(" "))

    if _is_empty(draft.get("sku")):
        candidates = [clean_text(n.get_text(" ")) for n in _select_any(soup, rules.sku_selectors)]
        if not candidates:
            candidates = [
                clean_text(s.parent.get_text(" "))
                for s in soup.find_all(string=rules.sku_text_marker)
                if s.parent is not None and s.parent.name not in ("script", "style")
            ]
        for text in candidates:
            m = rules.sku_pattern.search(text)
            if m:
                updates["sku"] = m.group(1)
                break

    node = _first(soup, rules.description_selectors)
    if node is not None:
        updates["description"] = basic_clean(node.decode_contents())
    else:
        meta = soup.find("meta", attrs={"name": "description"})
        if meta is not None:
            # some themes put raw HTML in the meta description
            updates["description"] = basic_clean(meta.get("content", ""))

    node = _first(soup, rules.price_selectors)
    if node is not None:
        m = rules.price_pattern.search(clean_text(node.get_text(" ")))
        if m:
            price = _to_decimal(m.group(1))
            if price is not None:
                updates["price"] = price

    feature_nodes = _select_any(soup, rules.feature_selectors)
    if not feature_nodes:
        feature_nodes = [
            li
            for li in soup.select("ul li")
            if any(k in li.get_text(" ").lower() for k in rules.feature_keywords)
        ]
    features: List[str] = []
    for li in feature_nodes:
        text = basic_clean(li.decode_contents())
        if len(text) >= rules.min_feature_length:
            features.append(text)
    updates["features"] = features

    node = _first(soup, rules.fit_guide_selectors)
    if node is not None:
        updates["fit_guide"] = basic_clean(node.decode_contents())
    return updates


# ---------------------------
# Pass 3: SKU generation
# ---------------------------

def sku_generation_pass(soup: BeautifulSoup, draft: ProductDraft, ctx: ExtractionContext) -> Dict[str, Any]:
    if not _is_empty(draft.get("sku")):
        return {}
    sku = generate_sku(draft.get("name", ""), ctx.source_url)
    if sku:
        logger.warning(
            "Generated fallback SKU '{}' for product '{}' ({})",
            sku,
            draft.get("name", ""),
            ctx.source_url,
        )
    return {"sku": sku}


# ---------------------------
# Pass 4: lens options
# ---------------------------

def _uv_protection(info: Optional[LensTypeInfo]) -> str:
    if info is None or info.has_uv_protection is False:
        return ""
    if info.has_uv_protection is None:
        return "Depends on base lens"
    return "UV protection"


def lens_pass(soup: BeautifulSoup, draft: ProductDraft, ctx: ExtractionContext) -> Dict[str, Any]:
    rules = ctx.rules
    protections: Dict[str, str] = {}
    for seed in rules.lens_seeds:
        info = ctx.catalog.get(seed.lens_type)
        protections[seed.lens_type] = info.blue_light_protection if info else seed.default_protection

    for text in _visible_text_nodes(soup, rules.lens_text_keywords):
        lowered = text.lower()
        m = rules.protection_pattern.search(lowered)
        if not m:
            continue
        percentage = f"{m.group(1)}%"
        for seed in rules.lens_seeds:
            if any(k in lowered for k in seed.keywords):
                protections[seed.lens_type] = percentage
                break

    lenses: List[LensOption] = []
    for seed in rules.lens_seeds:
        info = ctx.catalog.get(seed.lens_type)
        protection = protections[seed.lens_type]
        lenses.append(
            LensOption(
                lens_type=seed.lens_type,
                blue_light_protection=protection,
                price_modifier=Decimal("0"),
                is_available=True,
                description=seed.description.format(protection=protection),
                benefits=list(seed.benefits),
                recommended_uses=list(seed.recommended_uses),
                color_enhancement=info.color_enhancement if info else "",
                uv_protection=_uv_protection(info),
                tint_options=list(info.extra_values("tint_options")) if info else [],
            )
        )
    return {"default_lens_type": rules.default_lens_type, "supported_lenses": lenses}


# ---------------------------
# Pass 5: specifications
# ---------------------------

def specification_pass(soup: BeautifulSoup, draft: ProductDraft, ctx: ExtractionContext) -> Dict[str, Any]:
    rules = ctx.rules
    specs: Dict[str, str] = {}
    for node in _select_any(soup, rules.spec_selectors):
        text = basic_clean(node.decode_contents())
        if ":" not in text:
            continue
        key, value = (part.strip() for part in text.split(":", 1))
        if key and value:
            specs[key] = value

    updates: Dict[str, Any] = {"specifications": specs}
    for text in _visible_text_nodes(soup, rules.frame_text_keywords):
        if "frame" not in text.lower():
            continue
        updates.setdefault("frame_type", rules.default_frame_type)
        m = rules.frame_color_pattern.search(text)
        if m:
            updates["frame_color"] = m.group(1).capitalize()
            break
    return updates


# ---------------------------
# Pass 6: images
# ---------------------------

def absolutize_url(url: str, base_url: str) -> str:
    if url.startswith("//"):
        return "https:" + url
    if url.startswith("/"):
        return base_url.rstrip("/") + url
    return url


def image_pass(soup: BeautifulSoup, draft: ProductDraft, ctx: ExtractionContext) -> Dict[str, Any]:
    keyword = ctx.rules.image_keyword
    nodes = [
        img
        for img in soup.find_all("img")
        if keyword in (img.get("src") or "").lower() or keyword in (img.get("alt") or "").lower()
    ]
    if not nodes:
        nodes = soup.select(ctx.rules.image_fallback_selector)

    images: List[str] = []
    for img in nodes:
        raw = (img.get("data-src") or img.get("src") or "").strip()
        if not raw:
            continue
        url = absolutize_url(raw, ctx.base_url)
        if url not in images:
            images.append(url)
    return {"images": images}


# ---------------------------
# Pass 7: categorization
# ---------------------------

def categorization_pass(soup: BeautifulSoup, draft: ProductDraft, ctx: ExtractionContext) -> Dict[str, Any]:
    rules = ctx.rules
    url = ctx.source_url.lower()
    updates: Dict[str, Any] = {}
    for fragment, category in rules.category_rules:
        if fragment in url:
            updates["category"] = category
            break

    tags: List[str] = []
    for rule in rules.collection_rules:
        if rule.url_keyword in url:
            updates.setdefault("collection", rule.collection)
            tags.extend(rule.tags)
    tags.extend(rules.base_tags)
    updates["tags"] = tags
    return updates


DEFAULT_PASSES: Tuple[Tuple[str, ExtractionPass], ...] = (
    ("structured_data", structured_data_pass),
    ("markup", markup_pass),
    ("sku_generation", sku_generation_pass),
    ("lens", lens_pass),
    ("specifications", specification_pass),
    ("images", image_pass),
    ("categorization", categorization_pass),
)


class ProductExtractor:
    """Turns product page markup into a ``ProductRecord``.  No I/O."""

    def __init__(
        self,
        rules: Optional[ExtractionRules] = None,
        catalog: LensCatalog = DEFAULT_LENS_CATALOG,
        base_url: str = STOREFRONT_BASE_URL,
        passes: Sequence[Tuple[str, ExtractionPass]] = DEFAULT_PASSES,
    ):
        self.rules = rules or ExtractionRules()
        self.catalog = catalog
        self.base_url = base_url
        self.passes = tuple(passes)

    def extract(self, html: str, source_url: str) -> Optional[ProductRecord]:
        """
        Run every pass over ``html`` and return the record, or ``None`` when
        the document cannot be parsed at all.  A pass that blows up is
        logged and skipped; the remaining passes still run.
        """
        if not html or not html.strip():
            logger.warning("Nothing to parse for {}", source_url)
            return None
        try:
            soup = BeautifulSoup(html, "lxml")
        except Exception as e:
            logger.error("Could not parse markup from {}: {}", source_url, e)
            return None
        if soup.find(True) is None:
            logger.warning("Markup from {} contains no elements", source_url)
            return None

        ctx = ExtractionContext(
            source_url=source_url,
            base_url=self.base_url,
            rules=self.rules,
            catalog=self.catalog,
        )
        draft = ProductDraft(source_url=source_url)
        for name, extraction_pass in self.passes:
            try:
                updates = extraction_pass(soup, draft, ctx)
            except Exception:
                logger.exception("Extraction pass '{}' failed for {}", name, source_url)
                continue
            filled = draft.apply(updates)
            logger.debug("Pass '{}' filled {}", name, filled)

        record = draft.finalize()
        logger.info(
            "Parsed product '{}' (SKU: {}) from {} - features={}, lenses={}, images={}",
            record.name,
            record.sku,
            source_url,
            len(record.features),
            len(record.supported_lenses),
            len(record.images),
        )
        return record
