"""Extraction of archived sources into a temporary directory."""

from __future__ import annotations

import logging
import shutil
import tempfile
import zipfile
from pathlib import Path

from .constants import TEMP_DIR_PREFIX
from .source_files import ExternalDependency, SourceFileInfo

logger = logging.getLogger(__name__)


def dependency_temp_dir(dependency: ExternalDependency | None) -> Path:
    """Return the temporary directory used for a dependency's sources."""
    base_dir = Path(tempfile.gettempdir()) / TEMP_DIR_PREFIX
    if dependency is None:
        return base_dir / "builtin"
    return base_dir / dependency.to_path_string()


def extract_zip_file_to_temp(source_info: SourceFileInfo) -> Path:
    """Extract every file of the archive into its temp directory and return it."""
    temp_dir = dependency_temp_dir(source_info.dependency)
    temp_dir.mkdir(parents=True, exist_ok=True)

    with zipfile.ZipFile(source_info.source_path) as archive:
        for entry in archive.infolist():
            if entry.is_dir():
                continue
            target = temp_dir / entry.filename
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                logger.error(
                    "Failed to create directory structure for %s: %s", target.parent, exc
                )
                continue
            with archive.open(entry) as src, target.open("wb") as dst:
                shutil.copyfileobj(src, dst)

    return temp_dir


def _path_to_file_uri(path: Path) -> str:
    return Path(path).absolute().as_uri()


def get_uri(source_info: SourceFileInfo) -> str:
    """Return a file URI for the source, extracting archive entries as needed."""
    if source_info.zip_internal_path is None:
        return _path_to_file_uri(source_info.source_path)

    temp_dir = dependency_temp_dir(source_info.dependency)
    target = temp_dir / source_info.zip_internal_path
    if not temp_dir.exists() or not target.exists():
        try:
            extract_zip_file_to_temp(source_info)
        except (OSError, zipfile.BadZipFile) as exc:
            logger.error("Failed to extract %s: %s", source_info.source_path, exc)
    return _path_to_file_uri(target)