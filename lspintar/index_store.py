"""Bulk loading and storing of the in-memory indexes in the index database."""

from __future__ import annotations

from pathlib import Path
from typing import Mapping

from .codec import (
    deserialize_external_dependency,
    deserialize_locations,
    file_metadata,
    serialize_external_dependency,
    serialize_locations,
)
from .database import IndexDatabase, _now
from .source_files import ExternalDependency, SourceFileInfo

SymbolKey = tuple[Path, str]
Location = tuple[Path, int, int]


def _dependency_or_none(text: str | None) -> ExternalDependency | None:
    if text is None:
        return None
    try:
        return deserialize_external_dependency(text)
    except ValueError:
        return None


def _mtime_and_size(path: Path) -> tuple[int, int]:
    metadata = file_metadata(path)
    if metadata is None:
        return 0, 0
    return metadata.mtime, metadata.size


class IndexStore(IndexDatabase):
    """Index database with whole-index load and store operations."""

    def _workspace_pattern(self) -> str:
        return f"{self._project_key}%"

    def _is_in_workspace(self, project_path: Path) -> bool:
        return Path(project_path).is_relative_to(self.project_path)

    def load_symbol_index(self) -> dict[SymbolKey, Path]:
        """Map (project root, fully qualified name) to the defining file."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT project_path, fully_qualified_name, file_path FROM symbol_index "
                "WHERE project_path LIKE ?",
                (self._workspace_pattern(),),
            ).fetchall()
        return {(Path(project), fqn): Path(file_path) for project, fqn, file_path in rows}

    def store_symbol_index(self, index: Mapping[SymbolKey, Path]) -> None:
        """Replace this project's symbol rows; keys outside the workspace are skipped."""
        now = _now()
        with self._transaction() as conn:
            conn.execute(
                "DELETE FROM symbol_index WHERE project_path = ?", (self._project_key,)
            )
            for (project_path, fqn), file_path in index.items():
                if not self._is_in_workspace(project_path):
                    continue
                mtime, size = _mtime_and_size(file_path)
                conn.execute(
                    "INSERT OR REPLACE INTO symbol_index "
                    "(project_path, fully_qualified_name, file_path, mtime, size, indexed_at) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (str(project_path), fqn, str(file_path), mtime, size, now),
                )

    def load_builtin_infos(self) -> dict[str, SourceFileInfo]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT class_name, source_path, zip_internal_path, dependency_info "
                "FROM builtin_infos"
            ).fetchall()
        return {
            class_name: SourceFileInfo(
                Path(source_path), zip_internal_path, _dependency_or_none(dependency)
            )
            for class_name, source_path, zip_internal_path, dependency in rows
        }

    def store_builtin_infos(self, infos: Mapping[str, SourceFileInfo]) -> None:
        """Replace every builtin row with the given infos."""
        now = _now()
        with self._transaction() as conn:
            conn.execute("DELETE FROM builtin_infos")
            for class_name, info in infos.items():
                mtime, size = _mtime_and_size(info.source_path)
                conn.execute(
                    "INSERT OR REPLACE INTO builtin_infos "
                    "(class_name, source_path, zip_internal_path, dependency_info, "
                    "mtime, size, indexed_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        class_name,
                        str(info.source_path),
                        info.zip_internal_path,
                        serialize_external_dependency(info.dependency),
                        mtime,
                        size,
                        now,
                    ),
                )

    def load_inheritance_index(self) -> dict[SymbolKey, list[Location]]:
        """Map (project root, type name) to implementor locations; undecodable rows are skipped."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT project_path, type_name, locations FROM inheritance_index "
                "WHERE project_path LIKE ?",
                (self._workspace_pattern(),),
            ).fetchall()
        index: dict[SymbolKey, list[Location]] = {}
        for project_path, type_name, blob in rows:
            try:
                index[(Path(project_path), type_name)] = deserialize_locations(bytes(blob))
            except (ValueError, UnicodeDecodeError):
                continue
        return index

    def store_inheritance_index(self, index: Mapping[SymbolKey, list[Location]]) -> None:
        now = _now()
        with self._transaction() as conn:
            conn.execute(
                "DELETE FROM inheritance_index WHERE project_path = ?", (self._project_key,)
            )
            for (project_path, type_name), locations in index.items():
                if not self._is_in_workspace(project_path):
                    continue
                conn.execute(
                    "INSERT OR REPLACE INTO inheritance_index "
                    "(project_path, type_name, locations, indexed_at) VALUES (?, ?, ?, ?)",
                    (str(project_path), type_name, serialize_locations(list(locations)), now),
                )

    def load_project_external_infos(self) -> dict[SymbolKey, SourceFileInfo]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT project_path, type_name, source_path, zip_internal_path, "
                "dependency_info FROM project_external_infos WHERE project_path LIKE ?",
                (self._workspace_pattern(),),
            ).fetchall()
        return {
            (Path(project_path), type_name): SourceFileInfo(
                Path(source_path), zip_internal_path, _dependency_or_none(dependency)
            )
            for project_path, type_name, source_path, zip_internal_path, dependency in rows
        }

    def store_project_external_infos(self, infos: Mapping[SymbolKey, SourceFileInfo]) -> None:
        now = _now()
        with self._transaction() as conn:
            conn.execute(
                "DELETE FROM project_external_infos WHERE project_path = ?",
                (self._project_key,),
            )
            for (project_path, type_name), info in infos.items():
                if not self._is_in_workspace(project_path):
                    continue
                mtime, size = _mtime_and_size(info.source_path)
                conn.execute(
                    "INSERT OR REPLACE INTO project_external_infos "
                    "(project_path, type_name, source_path, zip_internal_path, "
                    "dependency_info, mtime, size, indexed_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        str(project_path),
                        type_name,
                        str(info.source_path),
                        info.zip_internal_path,
                        serialize_external_dependency(info.dependency),
                        mtime,
                        size,
                        now,
                    ),
                )