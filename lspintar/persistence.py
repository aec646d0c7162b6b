"""Project metadata storage, lazy single-entry lookups and bulk cache save/load."""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Mapping

from .codec import GitStateError, current_git_state
from .index_store import IndexStore, Location, SymbolKey, _dependency_or_none
from .project_deps import IndexingStatus, ProjectMetadata
from .source_files import SourceFileInfo

logger = logging.getLogger(__name__)

_METADATA_TABLE = """CREATE TABLE IF NOT EXISTS project_metadata (
    project_path TEXT PRIMARY KEY,
    inter_project_deps TEXT,
    external_dep_names TEXT,
    indexing_status TEXT
)"""

_STORE_FAILURES = (sqlite3.Error, OSError, ValueError)

AllCaches = tuple[
    dict[SymbolKey, Path],
    dict[str, SourceFileInfo],
    dict[SymbolKey, list[Location]],
    dict[SymbolKey, SourceFileInfo],
]


def _status_text(metadata: ProjectMetadata) -> str:
    if metadata.indexing_status is IndexingStatus.FAILED:
        return f"Failed({json.dumps(metadata.failure or '')})"
    return metadata.indexing_status.value


def _parse_status(text: str | None) -> IndexingStatus:
    if text == IndexingStatus.COMPLETED.value:
        return IndexingStatus.COMPLETED
    return IndexingStatus.IN_PROGRESS


def _json_strings(text: str | None) -> list[str]:
    if text is None:
        return []
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return []
    if not isinstance(data, list):
        return []
    return [str(item) for item in data]


class PersistenceLayer(IndexStore):
    """The full on-disk cache of one project."""

    def store_project_metadata(self, project_metadata: Mapping[Path, ProjectMetadata]) -> None:
        """Replace all stored project metadata with the given mapping."""
        with self._transaction() as conn:
            conn.execute(_METADATA_TABLE)
            conn.execute("DELETE FROM project_metadata")
            for project_path, metadata in project_metadata.items():
                conn.execute(
                    "INSERT OR REPLACE INTO project_metadata "
                    "(project_path, inter_project_deps, external_dep_names, indexing_status) "
                    "VALUES (?, ?, ?, ?)",
                    (
                        str(project_path),
                        json.dumps(sorted(str(p) for p in metadata.inter_project_deps)),
                        json.dumps(sorted(metadata.external_dep_names)),
                        _status_text(metadata),
                    ),
                )

    def load_project_metadata(self) -> dict[Path, ProjectMetadata]:
        """Read stored metadata; statuses other than Completed load as in progress.

        Raises sqlite3.OperationalError when no metadata has ever been stored.
        """
        with self._lock:
            rows = self._conn.execute(
                "SELECT project_path, inter_project_deps, external_dep_names, indexing_status "
                "FROM project_metadata"
            ).fetchall()
        return {
            Path(project_path): ProjectMetadata(
                inter_project_deps={Path(p) for p in _json_strings(inter_deps)},
                external_dep_names=set(_json_strings(external_deps)),
                indexing_status=_parse_status(status),
            )
            for project_path, inter_deps, external_deps, status in rows
        }

    def lookup_symbol(self, project_root: Path, fqn: str) -> Path | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT file_path FROM symbol_index "
                "WHERE project_path = ? AND fully_qualified_name = ?",
                (str(project_root), fqn),
            ).fetchone()
        return None if row is None else Path(row[0])

    def lookup_builtin_info(self, class_name: str) -> SourceFileInfo | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT source_path, zip_internal_path, dependency_info "
                "FROM builtin_infos WHERE class_name = ?",
                (class_name,),
            ).fetchone()
        if row is None:
            return None
        source_path, zip_internal_path, dependency = row
        return SourceFileInfo(Path(source_path), zip_internal_path, _dependency_or_none(dependency))

    def lookup_project_external_info(
        self, project_root: Path, type_name: str
    ) -> SourceFileInfo | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT source_path, zip_internal_path, dependency_info "
                "FROM project_external_infos WHERE project_path = ? AND type_name = ?",
                (str(project_root), type_name),
            ).fetchone()
        if row is None:
            return None
        source_path, zip_internal_path, dependency = row
        return SourceFileInfo(Path(source_path), zip_internal_path, _dependency_or_none(dependency))

    def load_all_caches(self) -> AllCaches:
        """Load the four indexes; any that cannot be read comes back empty."""
        loaders = (
            self.load_symbol_index,
            self.load_builtin_infos,
            self.load_inheritance_index,
            self.load_project_external_infos,
        )
        results = []
        for loader in loaders:
            try:
                results.append(loader())
            except _STORE_FAILURES as exc:
                logger.debug("Failed to load cache with %s: %s", loader.__name__, exc)
                results.append({})
        return tuple(results)  # type: ignore[return-value]

    def store_all_caches(
        self,
        symbol_index: Mapping[SymbolKey, Path],
        builtin_infos: Mapping[str, SourceFileInfo],
        inheritance_index: Mapping[SymbolKey, list[Location]],
        project_external_infos: Mapping[SymbolKey, SourceFileInfo],
        project_metadata: Mapping[Path, ProjectMetadata],
    ) -> None:
        """Store every cache independently, then record the current git state."""
        stores = (
            (self.store_symbol_index, symbol_index),
            (self.store_builtin_infos, builtin_infos),
            (self.store_inheritance_index, inheritance_index),
            (self.store_project_external_infos, project_external_infos),
            (self.store_project_metadata, project_metadata),
        )
        for store, data in stores:
            try:
                store(data)
            except _STORE_FAILURES as exc:
                logger.debug("Failed to store cache with %s: %s", store.__name__, exc)

        try:
            self.update_git_state(current_git_state(self.project_path))
        except (GitStateError, OSError, sqlite3.Error) as exc:
            logger.debug("Failed to update git state: %s", exc)