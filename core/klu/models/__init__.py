"""Models module - Catalog, registry, and weight resolution."""

from klu.models.catalog import (
    Backend,
    Capability,
    DownloadLocators,
    ModelDescriptor,
)
from klu.models.downloader import ModelDownloader
from klu.models.registry import ModelRegistry

__all__ = [
    "Backend",
    "Capability",
    "DownloadLocators",
    "ModelDescriptor",
    "ModelDownloader",
    "ModelRegistry",
]
