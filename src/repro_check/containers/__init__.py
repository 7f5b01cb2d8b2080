"""Deep inspection of container artifacts (module images, jars, tarballs)."""

from repro_check.containers.deep import DeepInspection, inspect_archives
from repro_check.containers.extractors import (
    CommandExtractor,
    Extractor,
    TarExtractor,
    ZipExtractor,
    build_extractor,
)

__all__ = [
    "DeepInspection",
    "inspect_archives",
    "Extractor",
    "ZipExtractor",
    "TarExtractor",
    "CommandExtractor",
    "build_extractor",
]
