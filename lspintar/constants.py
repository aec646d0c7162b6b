"""Shared constants for the language server."""

LSP_NAME = "lspintar"

SOURCE_DIRS = (
    "src/main/java",
    "src/test/java",
    "src/main/groovy",
    "src/test/groovy",
)

EXTENSIONS = ("java", "kt", "gradle", "kts", "groovy")

PROJECT_ROOT_MARKER = ("build.gradle", "build.gradle.kts", "pom.xml", ".git")

IS_INDEXING_COMPLETED = "is_indexing_completed"
GRADLE_CACHE_DIR = "gradle_cache_dir"
BUILD_ON_INIT = "build_on_init"

TEMP_DIR_PREFIX = "lspintar_builtin_sources"