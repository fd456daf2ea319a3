"""Tests for the source repository registry and GitHub token handling."""

import pytest

from cfgsync.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from cfgsync.kinds import COMMAND
from cfgsync.registry.repos import RepoRegistry, load_builtin_manifest, parse_repo_spec
from cfgsync.store.database import Database


# --- Manifest Tests ---


def test_builtin_manifest_has_localized_descriptions():
    repos = load_builtin_manifest()
    assert repos
    assert all(r.builtin for r in repos)
    assert "anthropics/skills" in {r.full_name for r in repos}
    assert all(r.description.en for r in repos)


def test_custom_manifest(tmp_path):
    manifest = tmp_path / "repos.yaml"
    manifest.write_text(
        "version: 1\n"
        "repos:\n"
        "  - owner: acme\n"
        "    name: tools\n"
        "    branch: dev\n"
        "    description: Plain text\n"
    )
    (repo,) = load_builtin_manifest(manifest)
    assert repo.branch == "dev"
    assert repo.description.get("ja") == "Plain text"


# --- Repo Spec Parsing Tests ---


def test_parse_repo_spec():
    assert parse_repo_spec("acme/tools") == ("acme", "tools", None)
    assert parse_repo_spec("acme/tools@dev") == ("acme", "tools", "dev")
    assert parse_repo_spec("https://github.com/acme/tools.git") == ("acme", "tools", None)


@pytest.mark.parametrize("spec", ["acme", "acme/tools/extra", "ac me/tools", ""])
def test_parse_repo_spec_rejects(spec):
    with pytest.raises(ValidationError):
        parse_repo_spec(spec)


# --- Registry Tests ---


def test_seed_builtin_is_idempotent_and_keeps_user_choices():
    registry = RepoRegistry(Database())
    seeded = registry.seed_builtin()
    assert seeded == len(load_builtin_manifest())

    first = registry.list()[0]
    registry.set_enabled(first.owner, first.name, False)
    assert registry.seed_builtin() == 0
    assert not registry.get(first.owner, first.name).enabled
    assert first.full_name not in {r.full_name for r in registry.list(enabled_only=True)}


def test_add_update_and_remove_user_repo():
    db = Database()
    registry = RepoRegistry(db)
    registry.add("acme", "tools", description="Tools")
    updated = registry.add("acme", "tools", branch="dev")
    assert updated.branch == "dev"
    assert [r.full_name for r in registry.list()] == ["acme/tools"]

    db.save_cache(COMMAND, "acme", "tools", "dev", [])
    registry.remove("acme", "tools")
    assert registry.list() == []
    assert db.cache_stats(COMMAND)["entries"] == 0

    with pytest.raises(NotFoundError):
        registry.remove("acme", "tools")


def test_builtin_repo_cannot_be_removed():
    registry = RepoRegistry(Database())
    registry.seed_builtin()
    builtin = registry.list()[0]
    with pytest.raises(ConflictError):
        registry.remove(builtin.owner, builtin.name)


# --- Token Tests ---


@pytest.mark.asyncio
async def test_token_storage_and_masking(ctx):
    assert ctx.github_token == ""
    ctx.set_token("ghp_abcdefghijklmnop")
    assert ctx.github_token == "ghp_abcdefghijklmnop"
    assert ctx.masked_token() == "ghp_...mnop"
    assert ctx.api.token == "ghp_abcdefghijklmnop"

    ctx.set_token(None)
    assert ctx.github_token == ""
    assert ctx.api.token == ""


@pytest.mark.asyncio
async def test_validate_token(ctx):
    info = await ctx.validate_token("good-token")
    assert info.authenticated
    assert info.limit == 5000
    with pytest.raises(UnauthorizedError):
        await ctx.validate_token("bad-token")

    anonymous = await ctx.validate_token()
    assert not anonymous.authenticated
