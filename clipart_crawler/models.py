"""Data models used throughout the resolution pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from .utils import derive_filename


class SchemaKind(str, Enum):
    """Structural shape of a vendor configuration payload."""

    LEGACY = "legacy"
    UNIFIED = "unified"
    PARTNER = "partner"


class ImageRole(str, Enum):
    PRIMARY = "primary"
    THUMBNAIL = "thumbnail"


@dataclass(frozen=True)
class DetectionResult:
    """Outcome of one detection attempt against a rendered page."""

    matched: bool
    endpoint_url: Optional[str]
    schema_kind: Optional[SchemaKind]
    source_origin: str
    strategy: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.matched and self.endpoint_url:
            raise ValueError("An unmatched detection cannot carry an endpoint URL")

    @property
    def is_ready(self) -> bool:
        return self.matched and bool(self.endpoint_url)

    @classmethod
    def not_found(cls, source_origin: str) -> "DetectionResult":
        return cls(
            matched=False,
            endpoint_url=None,
            schema_kind=None,
            source_origin=source_origin,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matched": self.matched,
            "endpoint_url": self.endpoint_url,
            "schema_kind": self.schema_kind.value if self.schema_kind else None,
            "source_origin": self.source_origin,
            "strategy": self.strategy,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DetectionResult":
        kind = data.get("schema_kind")
        return cls(
            matched=bool(data.get("matched")),
            endpoint_url=data.get("endpoint_url") or None,
            schema_kind=SchemaKind(kind) if kind else None,
            source_origin=str(data.get("source_origin") or ""),
            strategy=data.get("strategy"),
        )


@dataclass(frozen=True)
class ImageRef:
    """A single downloadable clipart image."""

    source_url: str
    display_label: str
    derived_filename: str
    role: ImageRole = ImageRole.PRIMARY

    @classmethod
    def build(
        cls, source_url: str, display_label: str, role: ImageRole = ImageRole.PRIMARY
    ) -> "ImageRef":
        return cls(
            source_url=source_url,
            display_label=display_label,
            derived_filename=derive_filename(source_url),
            role=role,
        )


@dataclass
class Category:
    """Node of the normalized category tree."""

    name: str
    images: List[ImageRef] = field(default_factory=list)
    children: List["Category"] = field(default_factory=list)


Manifest = Dict[str, List[ImageRef]]


@dataclass(frozen=True)
class ResolutionCounts:
    total_categories: int
    total_images: int


@dataclass(frozen=True)
class Progress:
    """Progress notification broadcast to listeners."""

    status: str
    current: int
    total: int


@dataclass
class ResolutionResult:
    """Terminal artifact of a resolution run."""

    manifest: Manifest
    counts: ResolutionCounts
    endpoint_url: str
    schema_kind: SchemaKind
    total_steps: int
    downloaded: int = 0
    failed: int = 0
    archive_path: Optional[str] = None

    def summary(self) -> Dict[str, Any]:
        return {
            "endpoint_url": self.endpoint_url,
            "schema_kind": self.schema_kind.value,
            "total_categories": self.counts.total_categories,
            "total_images": self.counts.total_images,
            "downloaded": self.downloaded,
            "failed": self.failed,
            "archive_path": self.archive_path,
            "categories": {
                path: [
                    {
                        "url": image.source_url,
                        "label": image.display_label,
                        "filename": image.derived_filename,
                        "role": image.role.value,
                    }
                    for image in images
                ]
                for path, images in self.manifest.items()
            },
        }
