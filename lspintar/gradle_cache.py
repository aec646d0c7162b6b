"""Lookup and indexing of dependency source jars in the local Gradle cache."""

from __future__ import annotations

import logging
import os
import zipfile
from pathlib import Path
from typing import Any

from .constants import GRADLE_CACHE_DIR
from .source_files import ExternalDependency, SourceFileInfo
from .state import get_global

logger = logging.getLogger(__name__)

_CACHE_SUBDIR = Path("caches") / "modules-2" / "files-2.1"
_SOURCE_SUFFIXES = (".java", ".groovy")
_SKIP_PACKAGES = ("META-INF/", "WEB-INF/", "org/gradle/", "org/apache/maven/")
_PACKAGE_SCAN_LINES = 50


def _strip_source_suffix(name: str) -> str:
    while name.endswith(".java"):
        name = name[: -len(".java")]
    while name.endswith(".groovy"):
        name = name[: -len(".groovy")]
    return name


def get_gradle_cache_base() -> Path | None:
    """Locate the Gradle module cache, trying configured and conventional places."""
    configured = get_global(GRADLE_CACHE_DIR)
    if isinstance(configured, str):
        path = Path(configured)
        if path.exists():
            return path

    for env_name in ("GRADLE_USER_HOME", "GRADLE_HOME"):
        value = os.environ.get(env_name)
        if value is not None:
            path = Path(value) / _CACHE_SUBDIR
            if path.exists():
                return path

    try:
        home = Path.home()
    except RuntimeError:
        return None

    sdkman_gradle = home / ".sdkman" / "candidates" / "gradle"
    if sdkman_gradle.exists():
        try:
            entries = list(sdkman_gradle.iterdir())
        except OSError:
            entries = []
        for entry in entries:
            if entry.is_dir():
                cache_path = entry / _CACHE_SUBDIR
                if cache_path.exists():
                    return cache_path

    fallback = home / ".gradle" / _CACHE_SUBDIR
    return fallback if fallback.exists() else None


def find_sources_jar_in_gradle_cache(dep: ExternalDependency) -> Path | None:
    """Return the path of the dependency's sources jar, if it has been downloaded."""
    cache_base = get_gradle_cache_base()
    if cache_base is None:
        return None

    artifact_dir = cache_base / dep.group / dep.artifact / dep.version
    if not artifact_dir.exists():
        artifact_dir = cache_base / dep.group.replace(".", "/") / dep.artifact / dep.version
        if not artifact_dir.exists():
            return None

    jar_name = f"{dep.artifact}-{dep.version}-sources.jar"
    try:
        entries = list(artifact_dir.iterdir())
    except OSError:
        return None
    for entry in entries:
        if entry.is_dir():
            jar_path = entry / jar_name
            if jar_path.exists():
                return jar_path
    return None


def extract_class_names_from_jar(jar_path: Path) -> set[str]:
    """Return the fully qualified names of the indexable sources in a jar."""
    class_names: set[str] = set()
    with zipfile.ZipFile(jar_path) as archive:
        for name in archive.namelist():
            if name.endswith(_SOURCE_SUFFIXES) and should_index_source_file(name):
                class_name = source_path_to_class_name(name)
                if class_name is not None:
                    class_names.add(class_name)
    return class_names


def should_index_source_file(file_path: str) -> bool:
    """Skip inner classes, test sources and build/framework artifacts."""
    if "$" in file_path:
        return False
    if "/test/" in file_path or "/tests/" in file_path:
        return False
    return not file_path.startswith(_SKIP_PACKAGES)


def source_path_to_class_name(source_path: str) -> str | None:
    """Turn 'com/example/MyClass.java' into 'com.example.MyClass'."""
    for suffix in _SOURCE_SUFFIXES:
        if source_path.endswith(suffix):
            return source_path[: -len(suffix)].replace("/", ".")
    return None


def extract_package_name(content: str) -> str | None:
    """Return the package declared near the top of a source file."""
    for raw_line in content.splitlines()[:_PACKAGE_SCAN_LINES]:
        line = raw_line.strip()
        if line.startswith("package "):
            package_part = line[len("package "):].strip().rstrip(";").strip()
            words = package_part.split()
            return words[0] if words else None
    return None


def index_jar_sources(
    jar_path: Path,
    project_path: Path,
    cache: Any,
    class_fqn_names: set[str],
    dependency: ExternalDependency,
) -> None:
    """Record each listed class of the jar in cache.project_external_infos."""
    jar_path = Path(jar_path)
    project_path = Path(project_path)

    with zipfile.ZipFile(jar_path) as archive:
        for entry in archive.infolist():
            file_name = entry.filename
            if not (file_name.endswith(_SOURCE_SUFFIXES) or should_index_source_file(file_name)):
                continue

            class_name = _strip_source_suffix(file_name.split("/")[-1])
            try:
                content = archive.read(entry).decode("utf-8")
            except (UnicodeDecodeError, OSError, zipfile.BadZipFile):
                continue

            package_name = extract_package_name(content)
            if package_name is None:
                continue

            fqn = f"{package_name}.{class_name}"
            if fqn not in class_fqn_names:
                continue

            cache.project_external_infos[(project_path, fqn)] = SourceFileInfo(
                jar_path, file_name, dependency
            )