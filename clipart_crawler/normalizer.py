"""Conversion of vendor configuration payloads into a category tree.

Each vendor schema has its own normalizer producing the same ``Category``
tree.  Normalizers read the payload defensively: any missing or wrongly typed
field degrades to fewer categories or images, never to an exception.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from .config import LEGACY_ASSET_BASE, PARTNER_ASSET_BASE
from .models import Category, ImageRef, ImageRole, Manifest, ResolutionCounts, SchemaKind

logger = logging.getLogger("clipart_crawler")

UNKNOWN_NAME = "Unknown"
THUMBNAIL_SUFFIX = " (thumbnail)"

Normalizer = Callable[[Any, bool], List[Category]]


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _first_text(entry: Dict[str, Any], *keys: str, fallback: str = "") -> str:
    for key in keys:
        text = _text(entry.get(key))
        if text:
            return text
    return fallback


def _asset_key(value: Any) -> str:
    """Storage key from either a bare string or an object with ``key``."""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, dict):
        return _text(value.get("key"))
    return ""


def _legacy_clipart_images(clipart: Dict[str, Any], skip_thumbnails: bool) -> List[ImageRef]:
    label = _first_text(clipart, "title", "label")
    file_key = _asset_key(clipart.get("file"))

    images: List[ImageRef] = []
    if file_key:
        images.append(ImageRef.build(LEGACY_ASSET_BASE + file_key, label, ImageRole.PRIMARY))

    if skip_thumbnails:
        return images
    thumbnail_key = _asset_key(clipart.get("thumbnail"))
    if thumbnail_key and thumbnail_key != file_key:
        images.append(
            ImageRef.build(
                LEGACY_ASSET_BASE + thumbnail_key,
                label + THUMBNAIL_SUFFIX,
                ImageRole.THUMBNAIL,
            )
        )
    return images


def _legacy_category(node: Dict[str, Any], skip_thumbnails: bool) -> Category:
    category = Category(name=_first_text(node, "title", "label", fallback=UNKNOWN_NAME))
    for clipart in _as_list(node.get("cliparts")):
        if isinstance(clipart, dict):
            category.images.extend(_legacy_clipart_images(clipart, skip_thumbnails))
    for child in _as_list(node.get("children")):
        if isinstance(child, dict):
            category.children.append(_legacy_category(child, skip_thumbnails))
    return category


def normalize_legacy(raw: Any, skip_thumbnails: bool = False) -> List[Category]:
    """The legacy payload already is a category tree under ``clipartCategories``."""
    nodes = _as_list(_as_dict(raw).get("clipartCategories"))
    return [
        _legacy_category(node, skip_thumbnails) for node in nodes if isinstance(node, dict)
    ]


def _flat_categories(
    entries: Iterable[Any],
    image_field: str,
    asset_base: str,
) -> List[Category]:
    categories: List[Category] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        category = Category(name=_first_text(entry, "label", fallback=UNKNOWN_NAME))
        for value in _as_list(entry.get("values")):
            if not isinstance(value, dict):
                continue
            image_path = _text(value.get(image_field))
            if not image_path:
                continue
            label = _first_text(value, "tooltip", "value", fallback=UNKNOWN_NAME)
            category.images.append(ImageRef.build(asset_base + image_path, label))
        if category.images:
            categories.append(category)
    return categories


def normalize_unified(raw: Any, skip_thumbnails: bool = False) -> List[Category]:
    """One flat category per option of the first set.

    The ``thumb_image`` URL is the only image this schema carries, so it is
    always the primary image and ``skip_thumbnails`` has no effect.
    """
    sets = _as_list(_as_dict(raw).get("sets"))
    first_set = _as_dict(sets[0]) if sets else {}
    return _flat_categories(_as_list(first_set.get("options")), "thumb_image", "")


def normalize_partner(raw: Any, skip_thumbnails: bool = False) -> List[Category]:
    """One flat category per element of ``data.customizationForm.elements``."""
    form = _as_dict(_as_dict(_as_dict(raw).get("data")).get("customizationForm"))
    return _flat_categories(
        _as_list(form.get("elements")), "thumbnailPath", PARTNER_ASSET_BASE
    )


NORMALIZERS: Dict[SchemaKind, Normalizer] = {
    SchemaKind.LEGACY: normalize_legacy,
    SchemaKind.UNIFIED: normalize_unified,
    SchemaKind.PARTNER: normalize_partner,
}


def normalize(raw: Any, schema_kind: SchemaKind, skip_thumbnails: bool = False) -> List[Category]:
    """Convert a raw payload of the given schema into a category tree."""
    categories = NORMALIZERS[schema_kind](raw, skip_thumbnails)
    logger.debug(
        "Normalized %d top-level categories (%s schema)",
        len(categories),
        schema_kind.value,
    )
    return categories


def flatten(categories: Iterable[Category], parent_path: Optional[str] = None) -> Manifest:
    """Depth-first walk turning the tree into ``category path -> images``."""
    manifest: Manifest = {}
    _flatten_into(manifest, categories, parent_path)
    return manifest


def _flatten_into(
    manifest: Manifest,
    categories: Iterable[Category],
    parent_path: Optional[str],
) -> None:
    for category in categories:
        path = f"{parent_path}/{category.name}" if parent_path else category.name
        if category.images:
            manifest.setdefault(path, []).extend(category.images)
        _flatten_into(manifest, category.children, path)


def count_manifest(manifest: Manifest) -> ResolutionCounts:
    return ResolutionCounts(
        total_categories=len(manifest),
        total_images=sum(len(images) for images in manifest.values()),
    )
