import sqlite3
from pathlib import Path

import pytest

from lspintar.persistence import PersistenceLayer
from lspintar.project_deps import IndexingStatus, ProjectMetadata
from lspintar.source_files import ExternalDependency, SourceFileInfo


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "proj"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def layer(tmp_path, project):
    db = PersistenceLayer(project, cache_dir=tmp_path / "cache")
    yield db
    db.close()


def test_project_metadata_round_trip(layer, project):
    sub = project / "sub"
    metadata = {
        project: ProjectMetadata(
            inter_project_deps={sub},
            external_dep_names={"org.example.Widget", "org.example.Gadget"},
            indexing_status=IndexingStatus.COMPLETED,
        )
    }
    layer.store_project_metadata(metadata)
    loaded = layer.load_project_metadata()
    assert set(loaded) == {project}
    assert loaded[project].inter_project_deps == {sub}
    assert loaded[project].external_dep_names == {"org.example.Widget", "org.example.Gadget"}
    assert loaded[project].indexing_status is IndexingStatus.COMPLETED


def test_failed_status_loads_as_in_progress(layer, project):
    metadata = {
        project: ProjectMetadata(indexing_status=IndexingStatus.FAILED, failure="boom")
    }
    layer.store_project_metadata(metadata)
    loaded = layer.load_project_metadata()
    assert loaded[project].indexing_status is IndexingStatus.IN_PROGRESS


def test_store_project_metadata_replaces_previous(layer, project):
    other = project / "other"
    layer.store_project_metadata({other: ProjectMetadata()})
    layer.store_project_metadata({project: ProjectMetadata()})
    assert set(layer.load_project_metadata()) == {project}


def test_load_project_metadata_without_table_raises(layer):
    with pytest.raises(sqlite3.OperationalError):
        layer.load_project_metadata()


def test_lookup_symbol(layer, project):
    source = project / "src" / "Foo.java"
    layer.store_symbol_index({(project, "com.example.Foo"): source})
    assert layer.lookup_symbol(project, "com.example.Foo") == source
    assert layer.lookup_symbol(project, "com.example.Missing") is None


def test_lookup_builtin_info(layer, tmp_path):
    dep = ExternalDependency("org.example", "lib", "1.0")
    info = SourceFileInfo(tmp_path / "src.zip", "java/lang/String.java", dep)
    layer.store_builtin_infos({"java.lang.String": info})
    found = layer.lookup_builtin_info("java.lang.String")
    assert found == info
    assert found.dependency == dep
    assert layer.lookup_builtin_info("java.lang.Missing") is None


def test_lookup_project_external_info(layer, project, tmp_path):
    info = SourceFileInfo(tmp_path / "lib.jar", "org/example/Widget.java", None)
    layer.store_project_external_infos({(project, "org.example.Widget"): info})
    assert layer.lookup_project_external_info(project, "org.example.Widget") == info
    assert layer.lookup_project_external_info(project / "other", "org.example.Widget") is None


def test_load_all_caches_empty(layer):
    assert layer.load_all_caches() == ({}, {}, {}, {})


def test_store_all_caches_round_trip(layer, project, tmp_path):
    source = project / "Foo.groovy"
    symbols = {(project, "com.example.Foo"): source}
    builtins = {"java.util.List": SourceFileInfo(tmp_path / "src.zip", "java/util/List.java")}
    inheritance = {(project, "com.example.Base"): [(source, 3, 7)]}
    externals = {
        (project, "org.example.Widget"): SourceFileInfo(
            tmp_path / "lib.jar",
            "org/example/Widget.java",
            ExternalDependency("org.example", "widget", "2.1"),
        )
    }
    metadata = {project: ProjectMetadata(external_dep_names={"org.example.Widget"})}

    layer.store_all_caches(symbols, builtins, inheritance, externals, metadata)

    loaded_symbols, loaded_builtins, loaded_inheritance, loaded_externals = (
        layer.load_all_caches()
    )
    assert loaded_symbols == symbols
    assert loaded_builtins == builtins
    assert loaded_inheritance == {(project, "com.example.Base"): [(Path(source), 3, 7)]}
    assert loaded_externals == externals
    assert layer.load_project_metadata()[project].external_dep_names == {"org.example.Widget"}


def test_store_all_caches_skips_out_of_workspace_entries(layer, project, tmp_path):
    outside = tmp_path / "elsewhere"
    layer.store_all_caches(
        {(outside, "com.example.Foo"): outside / "Foo.java"}, {}, {}, {}, {}
    )
    assert layer.lookup_symbol(outside, "com.example.Foo") is None