# lspintar

Building blocks for indexing Java and Groovy projects built with Gradle.
The package finds subprojects, runs `gradle dependencies` and parses its
tree output, locates the sources jars of external dependencies in the
local Gradle cache and records the classes in them, and keeps symbol,
inheritance and dependency indexes in a per-project SQLite database
whose validity is tied to the git state of the checkout.

## Installation

```
pip install lspintar
```

Python 3.10 or later is required. The only runtime dependency is
`platformdirs`, used to pick the default cache directory. Gradle and git
are started as external programs where the functions below say so.

## Modules

- `lspintar.build_tools`
  - `detect_build_tool(project_root)` returns `BuildTool.GRADLE` when the
    directory holds `build.gradle` or `build.gradle.kts`, otherwise `None`.
  - `parse_settings_gradle(project_root)` maps the subprojects named in
    `include` lines of `settings.gradle` (single or multi-line) to their
    directories; `:a:b` becomes `a/b`.
  - `gradle_command(project_root)` prefers `./gradlew`, then
    `./gradlew.bat`, then `gradle`.
  - `run_gradle_build(project_root)` runs `build --quiet --parallel`
    (5 minute timeout) and raises `GradleError` on failure.
  - `execute_gradle_dependencies(project_root)` returns a
    `GradleDependenciesResult` holding the report per configuration,
    falling back to separate `compileClasspath` and
    `testCompileClasspath` runs when the first run fails.
  - `parse_gradle_dependencies_output(result)` returns
    `ParsedGradleDependencies` with unique external dependencies (by
    group and artifact, honouring `a -> b` resolved versions) and
    project dependencies. The line-level helpers
    `parse_multi_configuration_output`, `is_configuration_header`,
    `extract_project_dependency`, `extract_external_dependency` and
    `remove_tree_characters` are public too.
- `lspintar.gradle_cache`
  - `get_gradle_cache_base()` looks for `caches/modules-2/files-2.1` in
    the `gradle_cache_dir` global state value, `GRADLE_USER_HOME`,
    `GRADLE_HOME`, SDKMAN's Gradle candidates and `~/.gradle`, in that
    order.
  - `find_sources_jar_in_gradle_cache(dep)` returns the
    `<artifact>-<version>-sources.jar` path if it has been downloaded.
  - `extract_class_names_from_jar(jar_path)` lists the fully qualified
    names of `.java`/`.groovy` sources, skipping inner classes, test
    sources and `META-INF/`, `WEB-INF/`, `org/gradle/`,
    `org/apache/maven/`.
  - `index_jar_sources(jar_path, project_path, cache, class_fqn_names, dependency)`
    reads each source's `package` line and stores a `SourceFileInfo`
    under `cache.project_external_infos[(project_path, fqn)]`.
- `lspintar.source_files`: `ExternalDependency` (group, artifact,
  version; `to_path_string()`) and `SourceFileInfo`, whose
  `get_content()` reads a file, or an entry inside a jar, once and
  caches it until `clear_cache()`.
- `lspintar.jar_utils`: `dependency_temp_dir(dependency)`,
  `extract_zip_file_to_temp(source_info)` and `get_uri(source_info)`,
  which returns a `file://` URI, extracting the jar to a temporary
  directory first when needed.
- `lspintar.project_deps`: `ProjectMapper(BuildTool.GRADLE)` with
  `index_project_dependencies(project_root, cache)`, which runs the
  dependency reports for the root and every subproject, indexes their
  sources jars in parallel and fills `cache.project_metadata` with
  `ProjectMetadata` (inter-project dependencies, external class names,
  `IndexingStatus`). The `cache` argument is any object with
  `project_metadata` and `project_external_infos` dictionaries.
- `lspintar.codec`: `GitState`, `FileMetadata`, `file_metadata`,
  `current_git_state` (runs git), `project_hash`,
  `hash_dependency_files`, and the encodings used in the database:
  `serialize_locations`/`deserialize_locations` and
  `serialize_external_dependency`/`deserialize_external_dependency`.
- `lspintar.database`: `IndexDatabase(project_path, cache_dir=None)`
  opens `<cache_dir>/<project hash>/index.db` (default cache directory
  from `platformdirs`), with `is_git_state_stale`, `update_git_state`,
  `is_file_stale`, `invalidate_files`, `cleanup_missing_files`,
  `enforce_size_limit` and `close`; it is also a context manager.
- `lspintar.index_store`: `IndexStore`, adding `load_`/`store_` methods
  for the symbol index, builtin infos, inheritance index and project
  external infos.
- `lspintar.persistence`: `PersistenceLayer`, adding project metadata
  storage, single-entry lookups (`lookup_symbol`,
  `lookup_builtin_info`, `lookup_project_external_info`) and
  `load_all_caches` / `store_all_caches`, the latter also recording the
  current git state.
- `lspintar.state`: `StateManager` and a process-wide store
  (`init_state_manager`, `set_global`, `get_global`).
- `lspintar.constants`: shared names such as `SOURCE_DIRS`,
  `EXTENSIONS` and the global state keys.

## Example

```python
from pathlib import Path
from types import SimpleNamespace

from lspintar.build_tools import detect_build_tool, parse_settings_gradle
from lspintar.persistence import PersistenceLayer
from lspintar.project_deps import ProjectMapper

root = Path("/path/to/project")
tool = detect_build_tool(root)
if tool is not None:
    print(parse_settings_gradle(root))

    cache = SimpleNamespace(project_metadata={}, project_external_infos={})
    ProjectMapper(tool).index_project_dependencies(root, cache)

    with PersistenceLayer(root, cache_dir=Path("/tmp/lspintar-cache")) as db:
        db.store_all_caches({}, {}, {}, cache.project_external_infos, cache.project_metadata)
        print(db.lookup_project_external_info(root, "org.example.Widget"))
```

## What this package does not do

It does not parse Java, Groovy or Kotlin source, so it extracts no
symbols or inheritance relations itself; the symbol and inheritance
indexes are stored and loaded as they are given. There is no in-memory
cache object that falls back to the database, no indexing of the JDK or
Groovy built-in sources, and no language server or command-line
program: it is a library only.

## Running the tests

```
pip install "lspintar[test]"
pytest
```