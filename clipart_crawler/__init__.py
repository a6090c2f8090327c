"""Detect product personalization widgets and package their clipart images."""

from .models import Category, DetectionResult, ImageRef, ImageRole, SchemaKind
from .normalizer import flatten, normalize
from .resolver import ResolutionOrchestrator, ResolutionService

__all__ = [
    "Category",
    "DetectionResult",
    "ImageRef",
    "ImageRole",
    "ResolutionOrchestrator",
    "ResolutionService",
    "SchemaKind",
    "flatten",
    "normalize",
]
