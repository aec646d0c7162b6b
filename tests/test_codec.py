import subprocess
from pathlib import Path
from unittest import mock

import pytest

from lspintar.codec import (
    FileMetadata,
    GitState,
    GitStateError,
    current_git_state,
    deserialize_external_dependency,
    deserialize_locations,
    file_metadata,
    hash_dependency_files,
    project_hash,
    serialize_external_dependency,
    serialize_locations,
)
from lspintar.source_files import ExternalDependency


def test_empty_locations_encoding():
    assert serialize_locations([]) == b"\x00" * 8
    assert deserialize_locations(b"\x00" * 8) == []


def test_single_location_wire_bytes():
    encoded = serialize_locations([(Path("a"), 1, 2)])
    expected = (
        (1).to_bytes(8, "little")
        + (1).to_bytes(8, "little")
        + b"a"
        + (1).to_bytes(8, "little")
        + (2).to_bytes(8, "little")
    )
    assert encoded == expected


def test_locations_round_trip():
    locations = [(Path("/src/A.java"), 10, 4), (Path("/src/sub/B.groovy"), 0, 0)]
    assert deserialize_locations(serialize_locations(locations)) == locations


def test_truncated_locations_rejected():
    encoded = serialize_locations([(Path("/src/A.java"), 10, 4)])
    with pytest.raises(ValueError):
        deserialize_locations(encoded[:-3])


def test_dependency_json_format():
    dep = ExternalDependency("g", "a", "1")
    assert serialize_external_dependency(dep) == '{"group":"g","artifact":"a","version":"1"}'


def test_dependency_round_trip():
    dep = ExternalDependency("org.springframework", "spring-core", "5.3.23")
    assert deserialize_external_dependency(serialize_external_dependency(dep)) == dep


def test_none_dependency():
    assert serialize_external_dependency(None) == "null"
    assert deserialize_external_dependency("null") is None
    assert deserialize_external_dependency("") is None


@pytest.mark.parametrize("text", ["{not json", '{"group":"g"}', "[1, 2]"])
def test_bad_dependency_json(text):
    with pytest.raises(ValueError):
        deserialize_external_dependency(text)


def test_project_hash_shape_and_stability(tmp_path):
    first = project_hash(tmp_path)
    assert len(first) == 16
    assert all(c in "0123456789abcdef" for c in first)
    assert project_hash(tmp_path) == first
    other = tmp_path / "other"
    other.mkdir()
    assert project_hash(other) != first


def test_hash_dependency_files_empty_project(tmp_path):
    assert hash_dependency_files(tmp_path) == "e3b0c44298fc1c14"


def test_hash_dependency_files_tracks_changes(tmp_path):
    (tmp_path / "build.gradle").write_text("plugins {}")
    first = hash_dependency_files(tmp_path)
    assert first == hash_dependency_files(tmp_path)
    (tmp_path / "build.gradle").write_text("plugins { id 'java' }")
    assert hash_dependency_files(tmp_path) != first


def test_hash_ignores_unlisted_files(tmp_path):
    before = hash_dependency_files(tmp_path)
    (tmp_path / "notes.txt").write_text("irrelevant")
    assert hash_dependency_files(tmp_path) == before


def test_file_metadata(tmp_path):
    path = tmp_path / "f.txt"
    path.write_bytes(b"12345")
    meta = file_metadata(path)
    assert meta == FileMetadata(int(path.stat().st_mtime), 5)
    assert file_metadata(tmp_path / "missing") is None


def _completed(returncode, stdout):
    return subprocess.CompletedProcess(args=["git"], returncode=returncode, stdout=stdout)


def test_current_git_state_on_branch(tmp_path):
    with mock.patch(
        "lspintar.codec.subprocess.run",
        side_effect=[_completed(0, b"abc123\n"), _completed(0, b"main\n")],
    ):
        state = current_git_state(tmp_path)
    assert state == GitState("abc123", "main", hash_dependency_files(tmp_path))


def test_current_git_state_detached(tmp_path):
    with mock.patch(
        "lspintar.codec.subprocess.run",
        side_effect=[_completed(0, b"abc123\n"), _completed(128, b"")],
    ):
        state = current_git_state(tmp_path)
    assert state.branch == "HEAD"
    assert state.head_commit == "abc123"


def test_current_git_state_without_git(tmp_path):
    with mock.patch("lspintar.codec.subprocess.run", side_effect=FileNotFoundError("git")):
        with pytest.raises(GitStateError):
            current_git_state(tmp_path)