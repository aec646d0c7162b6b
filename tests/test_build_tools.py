import stat

import pytest

from lspintar.build_tools import (
    BuildTool,
    GradleDependenciesResult,
    GradleError,
    detect_build_tool,
    execute_gradle_dependencies,
    extract_external_dependency,
    extract_project_dependency,
    gradle_command,
    is_configuration_header,
    parse_gradle_dependencies_output,
    parse_multi_configuration_output,
    parse_settings_gradle,
    remove_tree_characters,
    run_gradle_build,
)
from lspintar.source_files import ExternalDependency


def _write_gradlew(root, body):
    script = root / "gradlew"
    script.write_text("#!/bin/sh\n" + body)
    script.chmod(script.stat().st_mode | stat.S_IEXEC | stat.S_IXGRP | stat.S_IXOTH)


def test_detect_build_tool(tmp_path):
    assert detect_build_tool(tmp_path) is None
    (tmp_path / "build.gradle.kts").write_text("")
    assert detect_build_tool(tmp_path) is BuildTool.GRADLE


def test_gradle_command_prefers_wrapper(tmp_path):
    assert gradle_command(tmp_path) == "gradle"
    (tmp_path / "gradlew.bat").write_text("")
    assert gradle_command(tmp_path) == "./gradlew.bat"
    (tmp_path / "gradlew").write_text("")
    assert gradle_command(tmp_path) == "./gradlew"


def test_settings_missing_gives_empty_map(tmp_path):
    assert parse_settings_gradle(tmp_path) == {}


def test_settings_single_line_include(tmp_path):
    (tmp_path / "settings.gradle").write_text(
        "// include ':ignored'\ninclude ':core', ':app:web'\n"
    )
    assert parse_settings_gradle(tmp_path) == {
        "core": tmp_path / "core",
        "app/web": tmp_path / "app/web",
    }


def test_settings_multi_line_include(tmp_path):
    (tmp_path / "settings.gradle").write_text(
        "rootProject.name = 'demo'\ninclude (\n    ':a',\n    ':b'\n)\n"
    )
    assert parse_settings_gradle(tmp_path) == {"a": tmp_path / "a", "b": tmp_path / "b"}


def test_multi_configuration_sections():
    output = (
        "noise\n"
        "compileClasspath - Compile classpath.\n"
        "+--- a:b:1\n"
        "testCompileClasspath - Test classpath.\n"
        "+--- c:d:2\n"
    )
    sections = parse_multi_configuration_output(output)
    assert sections == {
        "compileClasspath": "compileClasspath - Compile classpath.\n+--- a:b:1\n",
        "testCompileClasspath": "testCompileClasspath - Test classpath.\n+--- c:d:2\n",
    }


def test_extract_external_dependency_with_conflict():
    dep = extract_external_dependency("+--- org.springframework:spring-core:5.3.21 -> 5.3.23")
    assert dep == ExternalDependency("org.springframework", "spring-core", "5.3.23")


def test_extract_external_dependency_plain_version():
    dep = extract_external_dependency("|    \\--- com.google.guava:guava:31.1-jre (*)")
    assert dep == ExternalDependency("com.google.guava", "guava", "31.1-jre")


def test_extract_external_dependency_rejects_project_line():
    assert extract_external_dependency("+--- project :my-project") is None


def test_extract_project_dependency():
    assert extract_project_dependency("+--- project :my-project") == "my-project"
    assert extract_project_dependency("\\--- project :other-module (*)") == "other-module"
    assert extract_project_dependency("+--- a:b:1") is None


def test_remove_tree_characters():
    assert remove_tree_characters("|    +--- a:b:c") == "a:b:c"


def test_is_configuration_header():
    assert is_configuration_header("compileClasspath - Compile classpath for source set 'main'.")
    assert not is_configuration_header("+--- a:b:1")


def test_parse_dependencies_output_deduplicates():
    result = GradleDependenciesResult()
    result.insert(
        "compileClasspath",
        "compileClasspath - Compile classpath.\n"
        "+--- project :core\n"
        "+--- org.springframework:spring-core:5.3.21 -> 5.3.23\n"
        "\\--- org.springframework:spring-core:5.3.21\n",
    )
    result.insert(
        "testCompileClasspath",
        "testCompileClasspath - Test classpath.\n+--- project :core\n\n",
    )
    parsed = parse_gradle_dependencies_output(result)
    assert parsed.project_dependencies == ["core"]
    assert parsed.external_dependencies == [
        ExternalDependency("org.springframework", "spring-core", "5.3.23")
    ]


def test_result_insert_and_is_empty():
    result = GradleDependenciesResult()
    assert result.is_empty()
    result.insert("compileClasspath", "x")
    assert not result.is_empty()
    assert result.configurations == {"compileClasspath": "x"}


def test_run_gradle_build_failure_raises(tmp_path):
    _write_gradlew(tmp_path, "exit 1\n")
    with pytest.raises(GradleError):
        run_gradle_build(tmp_path)


def test_execute_gradle_dependencies_success(tmp_path):
    _write_gradlew(
        tmp_path,
        'echo "compileClasspath - Compile classpath."\necho "+--- org.example:lib:1.0"\n',
    )
    result = execute_gradle_dependencies(tmp_path)
    assert result.configurations == {
        "compileClasspath": "compileClasspath - Compile classpath.\n+--- org.example:lib:1.0\n"
    }


def test_execute_gradle_dependencies_fallback(tmp_path):
    _write_gradlew(
        tmp_path,
        'if [ "$3" = "testCompileClasspath" ]; then echo "+--- a:b:1"; exit 0; fi\nexit 1\n',
    )
    result = execute_gradle_dependencies(tmp_path)
    assert result.configurations == {"testCompileClasspath": "+--- a:b:1\n"}


def test_execute_gradle_dependencies_all_fail(tmp_path):
    _write_gradlew(tmp_path, "exit 1\n")
    assert execute_gradle_dependencies(tmp_path).is_empty()