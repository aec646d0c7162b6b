"""Encodings, hashes and git/file state used by the on-disk index."""

from __future__ import annotations

import hashlib
import json
import struct
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .source_files import ExternalDependency

_U64 = struct.Struct("<Q")

_DEPENDENCY_FILES = (
    "build.gradle",
    "build.gradle.kts",
    "settings.gradle",
    "settings.gradle.kts",
    "Cargo.toml",
    "Cargo.lock",
    "pom.xml",
    "package.json",
)


class GitStateError(RuntimeError):
    """Raised when git cannot be executed for a project."""


@dataclass(frozen=True)
class GitState:
    head_commit: str
    branch: str
    dependencies_hash: str


@dataclass(frozen=True)
class FileMetadata:
    mtime: int
    size: int


def file_metadata(path: Path) -> FileMetadata | None:
    """Return whole-second mtime and size, or None if the file cannot be read."""
    try:
        stat = Path(path).stat()
    except OSError:
        return None
    return FileMetadata(int(stat.st_mtime), stat.st_size)


def serialize_locations(locations: list[tuple[Path, int, int]]) -> bytes:
    """Encode (path, line, column) triples as length-prefixed little-endian records."""
    parts = [_U64.pack(len(locations))]
    for path, line, column in locations:
        encoded = str(path).encode("utf-8")
        parts.append(_U64.pack(len(encoded)))
        parts.append(encoded)
        parts.append(_U64.pack(line))
        parts.append(_U64.pack(column))
    return b"".join(parts)


def deserialize_locations(data: bytes) -> list[tuple[Path, int, int]]:
    """Decode what serialize_locations produced; raise ValueError on bad data."""
    view = memoryview(data)
    offset = 0

    def read_u64() -> int:
        nonlocal offset
        if offset + _U64.size > len(view):
            raise ValueError("Failed to deserialize locations: unexpected end of data")
        (value,) = _U64.unpack_from(view, offset)
        offset += _U64.size
        return value

    count = read_u64()
    locations: list[tuple[Path, int, int]] = []
    for _ in range(count):
        length = read_u64()
        if offset + length > len(view):
            raise ValueError("Failed to deserialize locations: unexpected end of data")
        path = bytes(view[offset:offset + length]).decode("utf-8")
        offset += length
        line = read_u64()
        column = read_u64()
        locations.append((Path(path), line, column))
    return locations


def serialize_external_dependency(dep: ExternalDependency | None) -> str:
    if dep is None:
        return "null"
    return json.dumps(
        {"group": dep.group, "artifact": dep.artifact, "version": dep.version},
        separators=(",", ":"),
    )


def deserialize_external_dependency(text: str) -> ExternalDependency | None:
    """Parse a dependency JSON object; 'null' or empty gives None."""
    if text in ("null", ""):
        return None
    try:
        data = json.loads(text)
        return ExternalDependency(
            str(data["group"]), str(data["artifact"]), str(data["version"])
        )
    except (json.JSONDecodeError, KeyError, TypeError) as exc:
        raise ValueError(f"Failed to deserialize ExternalDependency: {exc}") from exc


def _canonical(path: Path) -> Path:
    try:
        return Path(path).resolve(strict=True)
    except OSError:
        return Path(path)


def project_hash(project_path: Path) -> str:
    """A 16-hex-digit identifier for the project's cache directory."""
    digest = hashlib.sha256(str(_canonical(project_path)).encode("utf-8")).hexdigest()
    return digest[:16]


def hash_dependency_files(project_path: Path) -> str:
    """Hash the build/dependency manifests present in the project root."""
    hasher = hashlib.sha256()
    root = Path(project_path)
    for file_name in _DEPENDENCY_FILES:
        file_path = root / file_name
        if not file_path.exists():
            continue
        try:
            content = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            continue
        hasher.update(file_name.encode("utf-8"))
        hasher.update(content.encode("utf-8"))
    return hasher.hexdigest()[:16]


def _git(project_path: Path, args: list[str], description: str) -> subprocess.CompletedProcess:
    try:
        return subprocess.run(
            ["git", *args], cwd=project_path, capture_output=True, check=False
        )
    except OSError as exc:
        raise GitStateError(f"Failed to execute {description}") from exc


def current_git_state(project_path: Path) -> GitState:
    """Read HEAD, the current branch ('HEAD' when detached) and the manifests hash."""
    root = Path(project_path)
    head = _git(root, ["rev-parse", "HEAD"], "git rev-parse HEAD")
    head_commit = head.stdout.decode("utf-8", errors="replace").strip()

    branch_output = _git(root, ["symbolic-ref", "--short", "HEAD"], "git symbolic-ref")
    if branch_output.returncode == 0:
        branch = branch_output.stdout.decode("utf-8", errors="replace").strip()
    else:
        branch = "HEAD"

    return GitState(head_commit, branch, hash_dependency_files(root))