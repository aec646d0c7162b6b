"""Per-project dependency metadata and the Gradle-driven indexing of it."""

from __future__ import annotations

import enum
import logging
import os
import subprocess
import zipfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from .build_tools import (
    DEPENDENCIES_TIMEOUT_SECS,
    BuildTool,
    GradleDependenciesResult,
    GradleError,
    execute_gradle_dependencies,
    gradle_command,
    parse_gradle_dependencies_output,
    parse_settings_gradle,
)
from .gradle_cache import (
    extract_class_names_from_jar,
    find_sources_jar_in_gradle_cache,
    index_jar_sources,
)
from .source_files import ExternalDependency

logger = logging.getLogger(__name__)

_ROOT_PROJECT_NAMES = ("", ":")
_GRADLE_FAILURES = (OSError, subprocess.SubprocessError, UnicodeDecodeError, GradleError)


class DependencyIndexingError(RuntimeError):
    """Raised when a project's dependencies cannot be resolved or mapped."""


class IndexingStatus(enum.Enum):
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    FAILED = "Failed"


@dataclass
class ProjectMetadata:
    """What one project depends on, and how far its indexing has got."""

    inter_project_deps: set[Path] = field(default_factory=set)
    external_dep_names: set[str] = field(default_factory=set)
    indexing_status: IndexingStatus = IndexingStatus.IN_PROGRESS
    failure: str | None = None


class ProjectMapper:
    """Resolves a workspace's projects and external dependencies into a cache."""

    def __init__(self, build_tool: BuildTool) -> None:
        self.build_tool = build_tool

    def index_project_dependencies(self, project_root: Path, cache: Any) -> None:
        """Index dependencies of the root and its subprojects into `cache`.

        `cache` must provide `project_metadata` and `project_external_infos`
        mappings. The root's metadata ends COMPLETED, or FAILED before the
        error is re-raised.
        """
        root = Path(project_root)
        cache.project_metadata[root] = ProjectMetadata()

        try:
            if self.build_tool is BuildTool.GRADLE:
                self._index_gradle(root, cache)
        except Exception as exc:
            metadata = cache.project_metadata.get(root)
            if metadata is not None:
                metadata.indexing_status = IndexingStatus.FAILED
                metadata.failure = str(exc)
            raise

        metadata = cache.project_metadata.get(root)
        if metadata is not None:
            metadata.indexing_status = IndexingStatus.COMPLETED
            metadata.failure = None

    def _index_gradle(self, project_root: Path, cache: Any) -> None:
        project_map = parse_settings_gradle(project_root)
        all_results = self.execute_gradle_dependencies_sequential(project_root, project_map)

        parsed = {
            name: parse_gradle_dependencies_output(result)
            for name, result in all_results.items()
        }

        for project_name, deps in parsed.items():
            if project_name in _ROOT_PROJECT_NAMES:
                project_path = project_root
            elif project_name in project_map:
                project_path = project_map[project_name]
            else:
                raise DependencyIndexingError(f"Project path not found for {project_name}")

            class_names = self.resolve_and_index_external_dependencies(
                deps.external_dependencies, project_path, cache
            )

            metadata = cache.project_metadata.setdefault(project_path, ProjectMetadata())
            metadata.external_dep_names = set(class_names)
            metadata.inter_project_deps = {
                project_map[ref] for ref in deps.project_dependencies if ref in project_map
            }
            metadata.indexing_status = IndexingStatus.COMPLETED
            metadata.failure = None

    def resolve_and_index_external_dependencies(
        self,
        external_deps: Iterable[ExternalDependency],
        project_path: Path,
        cache: Any,
    ) -> set[str]:
        """Index each dependency's sources jar; return all class names found."""
        deps = list(external_deps)
        if not deps:
            return set()

        project_path = Path(project_path)
        all_class_names: set[str] = set()
        workers = min(len(deps), os.cpu_count() or 1)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            for classes in executor.map(
                lambda dep: _resolve_one(dep, project_path, cache), deps
            ):
                all_class_names.update(classes)
        return all_class_names

    def execute_gradle_dependencies_sequential(
        self, project_root: Path, project_map: dict[str, Path]
    ) -> dict[str, GradleDependenciesResult]:
        """Run the dependency report for the root, then each subproject in turn.

        Projects whose report fails or is empty are left out; if none succeed,
        DependencyIndexingError is raised. The root is keyed by "".
        """
        all_results: dict[str, GradleDependenciesResult] = {}
        projects = [("", Path(project_root)), *project_map.items()]

        for project_name, project_path in projects:
            try:
                result = execute_gradle_dependencies(project_path)
            except _GRADLE_FAILURES as exc:
                logger.debug(
                    "Project '%s' at %s failed with error: %s", project_name, project_path, exc
                )
                continue
            if not result.is_empty():
                all_results[project_name] = result

        if not all_results:
            raise DependencyIndexingError("Failed to resolve dependencies for any project")
        return all_results

    def try_single_gradle_command(
        self, project_root: Path
    ) -> dict[str, GradleDependenciesResult]:
        """Fetch the compile classpath of the whole build in one Gradle run."""
        root = Path(project_root)
        output = subprocess.run(
            [
                gradle_command(root),
                "dependencies",
                "--configuration",
                "compileClasspath",
                "--quiet",
                "--parallel",
                "--max-workers=4",
            ],
            cwd=root,
            capture_output=True,
            timeout=DEPENDENCIES_TIMEOUT_SECS,
            check=False,
        )
        if output.returncode != 0:
            raise GradleError("Single command approach failed")

        result = GradleDependenciesResult()
        result.insert("compileClasspath", output.stdout.decode("utf-8"))
        return {"": result}


def _resolve_one(dep: ExternalDependency, project_path: Path, cache: Any) -> set[str]:
    jar_path = find_sources_jar_in_gradle_cache(dep)
    if jar_path is None:
        return set()
    try:
        classes = extract_class_names_from_jar(jar_path)
    except (OSError, zipfile.BadZipFile) as exc:
        logger.debug("Cannot read %s: %s", jar_path, exc)
        return set()
    try:
        index_jar_sources(jar_path, project_path, cache, classes, dep)
    except (OSError, zipfile.BadZipFile) as exc:
        logger.debug("Cannot index %s: %s", jar_path, exc)
    return classes