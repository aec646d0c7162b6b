"""Descriptions of source files, on disk or inside archives."""

from __future__ import annotations

import threading
import zipfile
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class ExternalDependency:
    """A resolved external dependency coordinate."""

    group: str
    artifact: str
    version: str

    def to_path_string(self) -> str:
        return f"{self.group}.{self.artifact}.{self.version}"


@dataclass
class SourceFileInfo:
    """A source file, optionally an entry inside a ZIP/JAR, with cached content."""

    source_path: Path
    zip_internal_path: str | None = None
    dependency: ExternalDependency | None = None
    _content: str | None = field(default=None, init=False, repr=False, compare=False)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        self.source_path = Path(self.source_path)

    def get_content(self) -> str:
        """Return the file's text, reading it once and caching it."""
        with self._lock:
            if self._content is None:
                self._content = self._load_content()
            return self._content

    def clear_cache(self) -> None:
        with self._lock:
            self._content = None

    def _load_content(self) -> str:
        if self.zip_internal_path is not None:
            with zipfile.ZipFile(self.source_path) as archive:
                return archive.read(self.zip_internal_path).decode("utf-8")
        return self.source_path.read_text(encoding="utf-8")