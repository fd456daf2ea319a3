"""Tests for the SQLite metadata database."""

import time

from cfgsync.kinds import COMMAND, HOOK
from cfgsync.models import (
    AppSet,
    DiscoverableResource,
    InstalledResource,
    LocalizedDescription,
    ResourceKind,
    Scope,
    SourceRepo,
)
from cfgsync.store.database import Database


def _command(rid="sc/agent", **kwargs) -> InstalledResource:
    namespace, _, filename = rid.rpartition("/")
    defaults = dict(
        id=rid,
        kind=ResourceKind.COMMAND,
        name=filename,
        namespace=namespace,
        filename=filename,
        metadata={"category": "workflow", "allowed_tools": ["Read"]},
        repo_owner="acme",
        repo_name="commands",
        repo_branch="main",
        source_path=f"commands/{rid}.md",
        apps=AppSet(claude=True),
        content_hash="abc",
    )
    defaults.update(kwargs)
    return InstalledResource(**defaults)


# --- Resource Tests ---


def test_save_and_get_resource():
    db = Database()
    db.save_resource(COMMAND, _command())

    record = db.get_resource(COMMAND, "sc/agent")
    assert record is not None
    assert record.namespace == "sc"
    assert record.filename == "agent"
    assert record.apps == AppSet(claude=True)
    assert record.metadata["allowed_tools"] == ["Read"]
    assert record.metadata["mcp_servers"] == []
    assert record.scope == Scope.GLOBAL
    assert record.content_hash == "abc"


def test_get_missing_resource():
    assert Database().get_resource(COMMAND, "nope") is None


def test_hook_columns_round_trip():
    db = Database()
    hook = InstalledResource(
        id="guard",
        kind=ResourceKind.HOOK,
        name="guard",
        filename="guard",
        metadata={
            "event_type": "PreToolUse",
            "rules": [{"matcher": "Bash", "hooks": []}],
            "enabled": False,
            "priority": 5,
        },
    )
    db.save_resource(HOOK, hook)
    record = db.get_resource(HOOK, "guard")
    assert record.event_type == "PreToolUse"
    assert record.rules == [{"matcher": "Bash", "hooks": []}]
    assert record.hook_enabled is False
    assert record.priority == 5
    assert record.is_local


def test_update_flags_hash_and_scope():
    db = Database()
    db.save_resource(COMMAND, _command())

    db.update_app_flag(COMMAND, "sc/agent", "codex", True)
    db.update_hash(COMMAND, "sc/agent", "def")
    db.update_scope(COMMAND, "sc/agent", Scope.PROJECT, "/work/app")

    record = db.get_resource(COMMAND, "sc/agent")
    assert record.apps == AppSet(claude=True, codex=True)
    assert record.content_hash == "def"
    assert record.scope == Scope.PROJECT
    assert record.project_path == "/work/app"


def test_delete_resource():
    db = Database()
    db.save_resource(COMMAND, _command())
    assert db.delete_resource(COMMAND, "sc/agent")
    assert not db.delete_resource(COMMAND, "sc/agent")


def test_list_namespaces_counts_and_root_label():
    db = Database()
    db.save_resource(COMMAND, _command("sc/agent"))
    db.save_resource(COMMAND, _command("sc/review"))
    db.save_resource(COMMAND, _command("top"))

    namespaces = db.list_namespaces(COMMAND)
    assert [(n.name, n.display_name, n.count) for n in namespaces] == [
        ("", "Root", 1),
        ("sc", "sc", 2),
    ]
    assert db.count_in_namespace(COMMAND, "sc") == 2


def test_kind_tables_are_separate():
    db = Database()
    db.save_resource(COMMAND, _command())
    assert db.list_resources(HOOK) == []


# --- Cache Tests ---


def test_cache_round_trip_and_expiry():
    db = Database()
    resource = DiscoverableResource(
        key="acme/commands:sc/agent",
        id="sc/agent",
        kind=ResourceKind.COMMAND,
        name="agent",
        metadata={"category": "workflow"},
        repo_owner="acme",
        repo_name="commands",
    )
    db.save_cache(COMMAND, "acme", "commands", "main", [resource])

    resources, scanned_at = db.get_cache(COMMAND, "acme", "commands", "main")
    assert resources == [resource]
    assert abs(scanned_at - time.time()) < 5
    assert db.get_cache(COMMAND, "acme", "commands", "dev") is None

    db.save_cache(COMMAND, "old", "repo", "main", [], scanned_at=int(time.time()) - 1000)
    assert db.delete_expired_cache(COMMAND, ttl_seconds=500) == 1
    assert db.cache_stats(COMMAND)["entries"] == 1

    assert db.delete_cache(COMMAND, "acme", "commands") == 1
    assert db.cache_stats(COMMAND) == {"entries": 0, "oldest": 0, "newest": 0}


# --- Repo and Settings Tests ---


def test_repo_crud():
    db = Database()
    repo = SourceRepo(
        owner="acme",
        name="commands",
        branch="dev",
        description=LocalizedDescription(en="Commands", zh="命令"),
    )
    db.save_repo(repo)

    loaded = db.get_repo("acme", "commands")
    assert loaded.branch == "dev"
    assert loaded.description.get("zh-CN") == "命令"
    assert loaded.description.get("ja") == "Commands"
    assert [r.full_name for r in db.list_repos()] == ["acme/commands"]

    assert db.delete_repo("acme", "commands")
    assert db.get_repo("acme", "commands") is None


def test_settings_key_value():
    db = Database()
    assert db.get_setting("github_pat") is None
    db.set_setting("github_pat", "ghp_x")
    assert db.get_setting("github_pat") == "ghp_x"
    db.delete_setting("github_pat")
    assert db.get_setting("github_pat") is None


def test_file_database_persists(tmp_path):
    path = tmp_path / "nested" / "cfgsync.db"
    db = Database(path)
    db.save_resource(COMMAND, _command())
    db.close()

    reopened = Database(path)
    assert reopened.get_resource(COMMAND, "sc/agent").name == "agent"
    reopened.close()
