"""SQLite-backed index database: schema, git-state tracking and maintenance."""

from __future__ import annotations

import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator

import platformdirs

from .codec import GitState, current_git_state, file_metadata, project_hash
from .constants import LSP_NAME

_SCHEMA = (
    """CREATE TABLE IF NOT EXISTS git_state (
        project_path TEXT PRIMARY KEY,
        head_commit TEXT NOT NULL,
        branch TEXT NOT NULL,
        dependencies_hash TEXT NOT NULL,
        updated_at INTEGER NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS symbol_index (
        project_path TEXT NOT NULL,
        fully_qualified_name TEXT NOT NULL,
        file_path TEXT NOT NULL,
        mtime INTEGER NOT NULL,
        size INTEGER NOT NULL,
        indexed_at INTEGER NOT NULL,
        PRIMARY KEY (project_path, fully_qualified_name)
    )""",
    """CREATE TABLE IF NOT EXISTS builtin_infos (
        class_name TEXT PRIMARY KEY,
        source_path TEXT NOT NULL,
        zip_internal_path TEXT,
        dependency_info TEXT,
        mtime INTEGER NOT NULL,
        size INTEGER NOT NULL,
        indexed_at INTEGER NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS inheritance_index (
        project_path TEXT NOT NULL,
        type_name TEXT NOT NULL,
        locations BLOB NOT NULL,
        indexed_at INTEGER NOT NULL,
        PRIMARY KEY (project_path, type_name)
    )""",
    """CREATE TABLE IF NOT EXISTS project_external_infos (
        project_path TEXT NOT NULL,
        type_name TEXT NOT NULL,
        source_path TEXT NOT NULL,
        zip_internal_path TEXT,
        dependency_info TEXT,
        mtime INTEGER NOT NULL,
        size INTEGER NOT NULL,
        indexed_at INTEGER NOT NULL,
        PRIMARY KEY (project_path, type_name)
    )""",
    "CREATE INDEX IF NOT EXISTS idx_symbol_file_path ON symbol_index(file_path)",
    "CREATE INDEX IF NOT EXISTS idx_indexed_at ON symbol_index(indexed_at)",
    "CREATE INDEX IF NOT EXISTS idx_builtin_indexed_at ON builtin_infos(indexed_at)",
    "CREATE INDEX IF NOT EXISTS idx_inheritance_indexed_at ON inheritance_index(indexed_at)",
    "CREATE INDEX IF NOT EXISTS idx_external_indexed_at ON project_external_infos(indexed_at)",
)

_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA temp_store=memory",
    "PRAGMA mmap_size=268435456",
)

# (table, filter); tables filtered by project bind :project_path.
_PRUNABLE_TABLES = (
    ("symbol_index", "project_path = :project_path"),
    ("builtin_infos", "1 = 1"),
    ("inheritance_index", "project_path = :project_path"),
    ("project_external_infos", "project_path = :project_path"),
)


class PersistenceError(RuntimeError):
    """Raised when the index database cannot be created or opened."""


def _canonical(path: Path) -> Path:
    try:
        return Path(path).resolve(strict=True)
    except OSError:
        return Path(path)


def _now() -> int:
    return int(time.time())


class IndexDatabase:
    """One project's index database, kept under `<cache_dir>/<project hash>/index.db`.

    `cache_dir` defaults to the user cache directory for this application.
    """

    def __init__(self, project_path: Path, cache_dir: Path | None = None) -> None:
        project_path = Path(project_path)
        base = (
            Path(cache_dir)
            if cache_dir is not None
            else Path(platformdirs.user_cache_dir(LSP_NAME))
        )
        db_dir = base / project_hash(project_path)
        try:
            db_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Failed to create cache directory: {db_dir}") from exc

        self.db_path = db_dir / "index.db"
        try:
            self._conn = sqlite3.connect(
                self.db_path, isolation_level=None, check_same_thread=False
            )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to open database: {self.db_path}") from exc

        self._lock = threading.RLock()
        self.project_path = _canonical(project_path)

        for pragma in _PRAGMAS:
            self._conn.execute(pragma)
        with self._transaction() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)

    @property
    def _project_key(self) -> str:
        return str(self.project_path)

    def __enter__(self) -> "IndexDatabase":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            self._conn.execute("BEGIN")
            try:
                yield self._conn
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")

    def _vacuum(self) -> None:
        with self._lock:
            self._conn.execute("VACUUM")

    def is_git_state_stale(self) -> bool:
        """True when HEAD, branch or manifests differ from the stored state, or none is stored."""
        current = current_git_state(self.project_path)
        with self._lock:
            row = self._conn.execute(
                "SELECT head_commit, branch, dependencies_hash FROM git_state "
                "WHERE project_path = ?",
                (self._project_key,),
            ).fetchone()
        if row is None:
            return True
        return GitState(*row) != current

    def update_git_state(self, git_state: GitState) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO git_state "
                "(project_path, head_commit, branch, dependencies_hash, updated_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    self._project_key,
                    git_state.head_commit,
                    git_state.branch,
                    git_state.dependencies_hash,
                    _now(),
                ),
            )

    def is_file_stale(self, file_path: Path) -> bool:
        """True when the file is missing, not indexed, or its mtime/size changed."""
        metadata = file_metadata(file_path)
        if metadata is None:
            return True
        with self._lock:
            row = self._conn.execute(
                "SELECT mtime, size FROM symbol_index WHERE file_path = ? AND project_path = ?",
                (str(file_path), self._project_key),
            ).fetchone()
        if row is None:
            return True
        stored_mtime, stored_size = row
        return stored_mtime != metadata.mtime or stored_size != metadata.size

    def invalidate_files(self, file_paths: Iterable[Path]) -> None:
        """Drop symbol and external-info rows that point at the given files."""
        with self._transaction() as conn:
            for file_path in file_paths:
                params = (str(file_path), self._project_key)
                conn.execute(
                    "DELETE FROM symbol_index WHERE file_path = ? AND project_path = ?",
                    params,
                )
                conn.execute(
                    "DELETE FROM project_external_infos "
                    "WHERE source_path = ? AND project_path = ?",
                    params,
                )

    def cleanup_missing_files(self, existing_files: Iterable[Path]) -> None:
        """Remove rows for files neither listed as existing nor present on disk."""
        existing = {Path(p) for p in existing_files}
        with self._transaction() as conn:
            indexed = [
                Path(row[0])
                for row in conn.execute(
                    "SELECT DISTINCT file_path FROM symbol_index WHERE project_path = ?",
                    (self._project_key,),
                ).fetchall()
            ]
            for file_path in indexed:
                if file_path in existing or file_path.exists():
                    continue
                params = (str(file_path), self._project_key)
                conn.execute(
                    "DELETE FROM symbol_index WHERE file_path = ? AND project_path = ?",
                    params,
                )
                conn.execute(
                    "DELETE FROM project_external_infos "
                    "WHERE source_path = ? AND project_path = ?",
                    params,
                )
        self._vacuum()

    def enforce_size_limit(self, max_size_mb: int) -> None:
        """If the database exceeds the limit, keep only the newest 70% of each table."""
        with self._lock:
            self._conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
            db_size = self.db_path.stat().st_size
            if db_size <= max_size_mb * 1024 * 1024:
                return
            with self._transaction() as conn:
                for table, condition in _PRUNABLE_TABLES:
                    conn.execute(
                        f"DELETE FROM {table} WHERE {condition} AND indexed_at < ("
                        f"SELECT indexed_at FROM {table} WHERE {condition} "
                        f"ORDER BY indexed_at DESC LIMIT 1 OFFSET "
                        f"(SELECT COUNT(*) * 7 / 10 FROM {table} WHERE {condition}))",
                        {"project_path": self._project_key},
                    )
            self._vacuum()