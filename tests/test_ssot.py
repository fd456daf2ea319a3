"""Tests for resource ids, content hashing and the SSOT store."""

import tempfile
from pathlib import Path

import pytest

from cfgsync.errors import ValidationError
from cfgsync.kinds import COMMAND, HOOK, SKILL
from cfgsync.store.ssot import (
    SsotStore,
    build_id,
    composite_hash,
    copy_resource,
    git_blob_sha,
    hash_directory,
    id_to_relative_path,
    is_skipped,
    list_resource_ids,
    parse_id,
    relative_path_to_id,
    remove_resource,
    validate_id,
)


# --- Id Tests ---


def test_parse_id_splits_on_last_slash():
    assert parse_id("sc/agent") == ("sc", "agent")
    assert parse_id("a/b/c") == ("a/b", "c")
    assert parse_id("agent") == ("", "agent")


def test_build_id_inverts_parse_id():
    for rid in ("sc/agent", "a/b/c", "agent"):
        assert build_id(*parse_id(rid)) == rid


@pytest.mark.parametrize("rid", ["", "/abs", "a/../b", "a//b", " a", "a\\b", "a/./b", "sc/"])
def test_validate_id_rejects_unsafe_ids(rid):
    with pytest.raises(ValidationError):
        validate_id(rid)


def test_id_to_relative_path_per_kind():
    assert id_to_relative_path("sc/agent", COMMAND) == "sc/agent.md"
    assert id_to_relative_path("guard", HOOK) == "guard.json"
    assert id_to_relative_path("tools/pdf", SKILL) == "tools/pdf"


def test_relative_path_to_id():
    assert relative_path_to_id("sc/agent.md", COMMAND) == "sc/agent"
    assert relative_path_to_id("sc/Agent.md", COMMAND) == "sc/Agent"
    assert id_to_relative_path(relative_path_to_id("sc/Agent.md", COMMAND), COMMAND) == "sc/Agent.md"


def test_uppercase_extension_is_not_a_resource():
    assert not COMMAND.is_resource_file("LOUD.MD")
    with tempfile.TemporaryDirectory() as tmp:
        base = Path(tmp)
        (base / "LOUD.MD").write_text("x")
        (base / "quiet.md").write_text("x")
        assert list_resource_ids(base, COMMAND) == ["quiet"]


# --- Hash Tests ---


def test_git_blob_sha_matches_git():
    assert git_blob_sha(b"") == "e69de29bb2d1d6434b8b29ae775ad8c2e48c5391"
    assert git_blob_sha(b"hello\n") == "ce013625030ba8dba906f756967f9e9ca394464a"


def test_composite_hash_is_order_independent():
    blobs = [("b.txt", "2" * 40), ("a.txt", "1" * 40)]
    assert composite_hash(blobs) == composite_hash(list(reversed(blobs)))
    assert composite_hash(blobs) != composite_hash(blobs[:1])


def test_hash_directory_matches_remote_tree_hash():
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp) / "pdf"
        (root / "scripts").mkdir(parents=True)
        (root / "SKILL.md").write_text("skill")
        (root / "scripts" / "run.py").write_text("print()")
        (root / ".git").mkdir()
        (root / ".git" / "HEAD").write_text("ref")

        expected = composite_hash(
            [
                ("SKILL.md", git_blob_sha(b"skill")),
                ("scripts/run.py", git_blob_sha(b"print()")),
            ]
        )
        assert hash_directory(root) == expected


def test_is_skipped():
    assert is_skipped("scripts/__pycache__/run.cpython-312.pyc")
    assert is_skipped(".DS_Store")
    assert not is_skipped("scripts/run.py")


# --- Listing Tests ---


def test_list_command_ids_skips_docs_and_hidden_files():
    with tempfile.TemporaryDirectory() as tmp:
        base = Path(tmp)
        (base / "sc").mkdir()
        (base / "sc" / "agent.md").write_text("x")
        (base / "sc" / "README.md").write_text("x")
        (base / "top.md").write_text("x")
        (base / "notes.txt").write_text("x")
        (base / ".hidden").mkdir()
        (base / ".hidden" / "secret.md").write_text("x")

        assert sorted(list_resource_ids(base, COMMAND)) == ["sc/agent", "top"]


def test_list_skill_ids_ignores_nested_markers():
    with tempfile.TemporaryDirectory() as tmp:
        base = Path(tmp)
        (base / "pdf" / "examples").mkdir(parents=True)
        (base / "pdf" / "SKILL.md").write_text("x")
        (base / "pdf" / "examples" / "SKILL.md").write_text("x")
        (base / "tools" / "xlsx").mkdir(parents=True)
        (base / "tools" / "xlsx" / "SKILL.md").write_text("x")
        (base / "empty").mkdir()

        assert list_resource_ids(base, SKILL) == ["pdf", "tools/xlsx"]


def test_list_ids_of_missing_directory():
    assert list_resource_ids(Path("/nonexistent/cfgsync"), COMMAND) == []


# --- Store Tests ---


def test_store_write_read_hash_delete():
    with tempfile.TemporaryDirectory() as tmp:
        store = SsotStore(tmp)
        path = store.write_bytes(COMMAND, "sc/agent", b"hello\n")

        assert path == Path(tmp) / "commands" / "sc" / "agent.md"
        assert store.exists(COMMAND, "sc/agent")
        assert store.read_text(COMMAND, "sc/agent") == "hello\n"
        assert store.hash(COMMAND, "sc/agent") == git_blob_sha(b"hello\n")
        assert store.list_ids(COMMAND) == ["sc/agent"]

        assert store.delete(COMMAND, "sc/agent")
        assert not (Path(tmp) / "commands" / "sc").exists()
        assert (Path(tmp) / "commands").is_dir()
        assert store.hash(COMMAND, "sc/agent") is None


def test_store_directory_resource():
    with tempfile.TemporaryDirectory() as tmp:
        source = Path(tmp) / "src"
        (source / "scripts").mkdir(parents=True)
        (source / "SKILL.md").write_text("---\nname: pdf\n---\n")
        (source / "scripts" / "a.py").write_text("a")

        store = SsotStore(Path(tmp) / "data")
        store.write_tree(SKILL, "pdf", source)
        assert store.read_text(SKILL, "pdf").startswith("---")
        assert store.hash(SKILL, "pdf") == hash_directory(source)


def test_remove_resource_reports_missing():
    with tempfile.TemporaryDirectory() as tmp:
        assert not remove_resource(Path(tmp) / "missing.md", Path(tmp))


def test_copy_directory_replaces_existing_destination():
    with tempfile.TemporaryDirectory() as tmp:
        src = Path(tmp) / "src"
        src.mkdir()
        (src / "SKILL.md").write_text("new")
        dst = Path(tmp) / "dst"
        dst.mkdir()
        (dst / "stale.txt").write_text("old")

        copy_resource(src, dst)
        assert sorted(p.name for p in dst.iterdir()) == ["SKILL.md"]
