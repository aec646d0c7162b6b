"""Gradle project detection, invocation and dependency-report parsing."""

from __future__ import annotations

import enum
import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from .source_files import ExternalDependency

logger = logging.getLogger(__name__)

BUILD_TIMEOUT_SECS = 300
DEPENDENCIES_TIMEOUT_SECS = 45
FALLBACK_TIMEOUT_SECS = 30

_CONFIGURATIONS = ("compileClasspath", "testCompileClasspath")
_QUOTES = ("'", '"')


class GradleError(RuntimeError):
    """Raised when a Gradle invocation fails or times out."""


class BuildTool(enum.Enum):
    GRADLE = "gradle"


@dataclass
class GradleDependenciesResult:
    """Raw `gradle dependencies` output keyed by configuration name."""

    configurations: dict[str, str] = field(default_factory=dict)

    def insert(self, config: str, output: str) -> None:
        self.configurations[config] = output

    def is_empty(self) -> bool:
        return not self.configurations


@dataclass
class ParsedGradleDependencies:
    external_dependencies: list[ExternalDependency] = field(default_factory=list)
    project_dependencies: list[str] = field(default_factory=list)


def detect_build_tool(project_root: Path) -> BuildTool | None:
    root = Path(project_root)
    if (root / "build.gradle").exists() or (root / "build.gradle.kts").exists():
        return BuildTool.GRADLE
    return None


def parse_settings_gradle(project_root: Path) -> dict[str, Path]:
    """Map included subproject names to their directories from settings.gradle."""
    root = Path(project_root)
    settings_file = root / "settings.gradle"
    if not settings_file.exists():
        return {}

    project_map: dict[str, Path] = {}
    in_include_block = False
    include_content = ""

    for raw_line in settings_file.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if line.startswith("//") or line.startswith("/*"):
            continue

        if line.startswith("include "):
            in_include_block = True
            include_content = line[len("include "):]
            if "(" not in include_content or include_content.rstrip().endswith(_QUOTES):
                _parse_include_content(include_content, root, project_map)
                in_include_block = False
                include_content = ""
        elif in_include_block:
            include_content += " " + line
            if ")" in line or line.rstrip().endswith(_QUOTES):
                _parse_include_content(include_content, root, project_map)
                in_include_block = False
                include_content = ""

    return project_map


def _parse_include_content(content: str, root: Path, project_map: dict[str, Path]) -> None:
    for part in content.strip("() ").split(","):
        project_ref = part.strip().strip("'\" ")
        if project_ref.startswith(":"):
            name = project_ref[1:].replace(":", "/")
        elif project_ref:
            name = project_ref.replace(":", "/")
        else:
            continue
        project_map[name] = root / name


def gradle_command(project_root: Path) -> str:
    """Prefer the project's wrapper script over a system Gradle."""
    root = Path(project_root)
    if (root / "gradlew").exists():
        return "./gradlew"
    if (root / "gradlew.bat").exists():
        return "./gradlew.bat"
    return "gradle"


def _run_gradle(project_root: Path, args: list[str], timeout: int) -> subprocess.CompletedProcess:
    return subprocess.run(
        [gradle_command(project_root), *args],
        cwd=project_root,
        capture_output=True,
        timeout=timeout,
        check=False,
    )


def run_gradle_build(project_root: Path) -> None:
    """Run a quiet parallel build, raising GradleError on failure or timeout."""
    logger.info("Running gradle build...")
    try:
        result = _run_gradle(
            Path(project_root), ["build", "--quiet", "--parallel"], BUILD_TIMEOUT_SECS
        )
    except subprocess.TimeoutExpired as exc:
        raise GradleError("Gradle build timed out after 5 minutes") from exc
    if result.returncode != 0:
        raise GradleError("Gradle build failed. See logs for detail.")


def execute_gradle_dependencies(project_root: Path) -> GradleDependenciesResult:
    """Collect dependency reports, falling back to one run per configuration."""
    root = Path(project_root)
    results = GradleDependenciesResult()

    output = _run_gradle(
        root,
        ["dependencies", "--configuration", "compileClasspath", "--quiet", "--no-daemon"],
        DEPENDENCIES_TIMEOUT_SECS,
    )
    if output.returncode == 0:
        text = output.stdout.decode("utf-8")
        for config, content in parse_multi_configuration_output(text).items():
            results.insert(config, content)
        return results

    for config in _CONFIGURATIONS:
        output = _run_gradle(
            root,
            ["dependencies", "--configuration", config, "--quiet", "--no-daemon"],
            FALLBACK_TIMEOUT_SECS,
        )
        if output.returncode == 0:
            results.insert(config, output.stdout.decode("utf-8"))
    return results


def parse_multi_configuration_output(output: str) -> dict[str, str]:
    """Split a dependency report into per-configuration sections."""
    sections: dict[str, str] = {}
    current_config: str | None = None
    current_lines: list[str] = []

    for line in output.splitlines():
        if "compileClasspath - " in line:
            new_config = "compileClasspath"
        elif "testCompileClasspath - " in line:
            new_config = "testCompileClasspath"
        else:
            new_config = None

        if new_config is not None:
            if current_config is not None:
                sections[current_config] = "".join(current_lines)
            current_config = new_config
            current_lines = [line + "\n"]
        elif current_config is not None:
            current_lines.append(line + "\n")

    if current_config is not None:
        sections[current_config] = "".join(current_lines)
    return sections


def parse_gradle_dependencies_output(
    gradle_result: GradleDependenciesResult,
) -> ParsedGradleDependencies:
    """Extract unique external and project dependencies from all configurations."""
    parsed = ParsedGradleDependencies()
    seen_artifacts: set[tuple[str, str]] = set()

    for output in gradle_result.configurations.values():
        for line in output.splitlines():
            trimmed = line.strip()
            if not trimmed or is_configuration_header(trimmed):
                continue

            project_ref = extract_project_dependency(trimmed)
            if project_ref is not None and project_ref not in parsed.project_dependencies:
                parsed.project_dependencies.append(project_ref)

            dep = extract_external_dependency(trimmed)
            if dep is not None and (dep.group, dep.artifact) not in seen_artifacts:
                seen_artifacts.add((dep.group, dep.artifact))
                parsed.external_dependencies.append(dep)

    return parsed


def is_configuration_header(line: str) -> bool:
    return " - " in line and any(
        name in line
        for name in ("compileClasspath", "testCompileClasspath", "runtimeClasspath")
    )


def extract_project_dependency(line: str) -> str | None:
    """Return the project path from lines like '+--- project :my-project'."""
    marker = "project :"
    start = line.find(marker)
    if start < 0:
        return None
    words = line[start + len(marker):].split()
    return words[0] if words else None


def extract_external_dependency(line: str) -> ExternalDependency | None:
    """Parse 'group:artifact:version', honouring '-> resolved' versions."""
    parts = remove_tree_characters(line).split(":")
    if len(parts) < 3:
        return None

    group = parts[0].strip()
    artifact = parts[1].strip()
    version_part = parts[2].strip()

    arrow = version_part.find(" -> ")
    if arrow >= 0:
        version = version_part[arrow + 4:].strip()
    else:
        words = version_part.split()
        if not words:
            return None
        version = words[0]
    return ExternalDependency(group, artifact, version)


def remove_tree_characters(line: str) -> str:
    return line.lstrip("+-\\| ").strip()