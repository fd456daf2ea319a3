"""cfgsync CLI -- the command-line entry point for the sync engine."""

from __future__ import annotations

import asyncio
import inspect
from datetime import datetime

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from cfgsync import __version__
from cfgsync.config import Settings
from cfgsync.errors import CfgSyncError
from cfgsync.log import configure_logging

console = Console()

KINDS = ["agent", "command", "hook", "skill"]
APPS = ["claude", "codex", "gemini"]


def _run(obj: dict, fn):
    """Call ``fn(ctx)`` inside a fresh SyncContext; render errors and exit 1."""
    from cfgsync.context import SyncContext

    async def runner():
        async with SyncContext(obj["settings"]) as ctx:
            ctx.repos.seed_builtin()
            result = fn(ctx)
            if inspect.isawaitable(result):
                result = await result
            return result

    try:
        return asyncio.run(runner())
    except CfgSyncError as e:
        console.print(f"[red]{e.user_message()}[/]")
        raise SystemExit(1)


def _app(name: str):
    from cfgsync.models import AppType

    return AppType.parse(name)


def _fmt_time(ts: int | None) -> str:
    if not ts:
        return "-"
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M")


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", default=None, help="Path to config.yaml")
@click.option("--verbose", "-v", count=True, help="Increase log verbosity (-v, -vv)")
@click.pass_context
def main(click_ctx: click.Context, config_path: str | None, verbose: int):
    """cfgsync -- keep agents, commands, hooks and skills in sync.

    One authoritative copy lives under the data root; enabled copies are
    projected into Claude, Codex and Gemini configuration directories.
    """
    settings = Settings.load(config_path)
    level = {0: settings.log_level, 1: "INFO"}.get(verbose, "DEBUG")
    configure_logging(level)
    click_ctx.obj = {"settings": settings}


# ── Discover / install ───────────────────────────────────────────────


@main.command()
@click.argument("kind", type=click.Choice(KINDS))
@click.option("--refresh", is_flag=True, help="Ignore cached results")
@click.pass_obj
def discover(obj: dict, kind: str, refresh: bool):
    """List installable resources from enabled source repositories."""
    console.print(f"\n[bold blue]cfgsync[/] -- Discovering {kind}s\n")
    resources = _run(obj, lambda ctx: ctx.engine(kind).discover(force_refresh=refresh))

    if not resources:
        console.print("[yellow]Nothing found.[/]")
        return

    table = Table(title=f"Discoverable {kind}s ({len(resources)})")
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Repository", style="dim")
    table.add_column("Description")
    for r in resources:
        table.add_row(r.id, r.name, f"{r.repo_owner}/{r.repo_name}", r.description[:60])
    console.print(table)


@main.command()
@click.argument("kind", type=click.Choice(KINDS))
@click.argument("resource_id")
@click.option("--app", "app_name", default="claude", type=click.Choice(APPS))
@click.option("--repo", default=None, help="Restrict the lookup to owner/name")
@click.option("--project", default=None, help="Install into this project directory instead")
@click.pass_obj
def install(obj: dict, kind: str, resource_id: str, app_name: str, repo: str | None, project: str | None):
    """Install a discovered resource and enable it for one app."""
    from cfgsync.errors import NotFoundError
    from cfgsync.models import Scope

    async def do_install(ctx):
        engine = ctx.engine(kind)
        candidates = [
            r for r in await engine.discover()
            if r.id == resource_id and (not repo or f"{r.repo_owner}/{r.repo_name}" == repo)
        ]
        if not candidates:
            raise NotFoundError(f"No discoverable {kind} with id {resource_id}")
        scope = Scope.PROJECT if project else Scope.GLOBAL
        return await engine.install(candidates[0], _app(app_name), scope=scope, project_path=project)

    record = _run(obj, do_install)
    where = record.project_path if record.project_path else app_name
    console.print(f"[green]Installed[/] {record.id} ({record.repo_label}) -> {where}")


@main.command()
@click.argument("kind", type=click.Choice(KINDS))
@click.argument("resource_id")
@click.pass_obj
def uninstall(obj: dict, kind: str, resource_id: str):
    """Remove a resource from every app, the SSOT and the database."""
    _run(obj, lambda ctx: ctx.engine(kind).uninstall(resource_id))
    console.print(f"[green]Uninstalled[/] {resource_id}")


@main.command(name="list")
@click.argument("kind", type=click.Choice(KINDS))
@click.pass_obj
def list_installed(obj: dict, kind: str):
    """List installed resources."""
    records = _run(obj, lambda ctx: ctx.engine(kind).list_installed())
    if not records:
        console.print(f"[yellow]No {kind}s installed.[/]")
        return

    table = Table(title=f"Installed {kind}s ({len(records)})")
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    for app in APPS:
        table.add_column(app.capitalize(), justify="center")
    table.add_column("Scope")
    table.add_column("Source", style="dim")
    table.add_column("Installed", style="dim")
    for r in records:
        flags = ["[green]v[/]" if getattr(r.apps, app) else "-" for app in APPS]
        scope = r.project_path if r.project_path else r.scope.value
        table.add_row(r.id, r.name, *flags, scope, r.repo_label, _fmt_time(r.installed_at))
    console.print(table)


# ── Projection ───────────────────────────────────────────────────────


@main.command()
@click.argument("kind", type=click.Choice(KINDS))
@click.argument("resource_id")
@click.argument("app_name", type=click.Choice(APPS))
@click.option("--on/--off", "enabled", default=True)
@click.pass_obj
def toggle(obj: dict, kind: str, resource_id: str, app_name: str, enabled: bool):
    """Enable or disable a resource for one app."""
    _run(obj, lambda ctx: ctx.engine(kind).toggle_app(resource_id, _app(app_name), enabled))
    state = "[green]enabled[/]" if enabled else "[yellow]disabled[/]"
    console.print(f"{resource_id} {state} for {app_name}")


@main.command()
@click.argument("kind", type=click.Choice(KINDS))
@click.argument("resource_id")
@click.argument("scope", type=click.Choice(["global", "project"]))
@click.option("--project", default=None, help="Project directory (project scope)")
@click.option("--app", "app_name", default="claude", type=click.Choice(APPS))
@click.pass_obj
def scope(obj: dict, kind: str, resource_id: str, scope: str, project: str | None, app_name: str):
    """Move a resource between global and project scope."""
    from cfgsync.models import Scope

    record = _run(
        obj,
        lambda ctx: ctx.engine(kind).change_scope(resource_id, Scope(scope), project, _app(app_name)),
    )
    console.print(f"{record.id} is now [cyan]{record.scope.value}[/] {record.project_path or ''}")


@main.command()
@click.argument("kind", type=click.Choice(KINDS))
@click.pass_obj
def sync(obj: dict, kind: str):
    """Force-copy every enabled resource from the SSOT into its apps."""
    count = _run(obj, lambda ctx: ctx.engine(kind).sync_all_to_apps())
    console.print(f"[green]Synced[/] {count} projection(s)")


@main.command()
@click.argument("kind", type=click.Choice(KINDS))
@click.pass_obj
def refresh(obj: dict, kind: str):
    """Re-read metadata and hashes from the SSOT after external edits."""
    count = _run(obj, lambda ctx: ctx.engine(kind).refresh_from_ssot())
    console.print(f"[green]Refreshed[/] {count} record(s)")


# ── Drift ────────────────────────────────────────────────────────────


@main.command()
@click.argument("kind", type=click.Choice(KINDS))
@click.pass_obj
def drift(obj: dict, kind: str):
    """Report differences between the SSOT, the database and app copies."""
    events = _run(obj, lambda ctx: ctx.engine(kind).detect_changes())
    if not events:
        console.print("[green]No drift detected.[/]")
        return

    table = Table(title=f"Drift ({len(events)})")
    table.add_column("Id", style="cyan")
    table.add_column("Change")
    table.add_column("App")
    table.add_column("Details", style="dim")
    for e in events:
        table.add_row(e.id, e.change_type.value, e.app.value if e.app else "-", e.details)
    console.print(table)


@main.command()
@click.argument("kind", type=click.Choice(KINDS))
@click.argument("resource_id")
@click.argument("app_name", type=click.Choice(APPS))
@click.argument("resolution", type=click.Choice(["keep-ssot", "keep-app"]))
@click.pass_obj
def resolve(obj: dict, kind: str, resource_id: str, app_name: str, resolution: str):
    """Resolve an app conflict by keeping either the SSOT or the app copy."""
    from cfgsync.models import ConflictResolution

    choice = ConflictResolution(resolution.replace("-", "_"))
    _run(obj, lambda ctx: ctx.engine(kind).resolve_conflict(resource_id, _app(app_name), choice))
    console.print(f"[green]Resolved[/] {resource_id} in {app_name} ({resolution})")


@main.command()
@click.argument("kind", type=click.Choice(KINDS))
@click.option("--import", "import_ids", multiple=True, help="Adopt these ids")
@click.pass_obj
def unmanaged(obj: dict, kind: str, import_ids: tuple[str, ...]):
    """List (or import) resources found in app directories but not managed."""
    if import_ids:
        records = _run(obj, lambda ctx: ctx.engine(kind).import_from_apps(list(import_ids)))
        for r in records:
            apps = ", ".join(a.value for a in r.apps.enabled_apps())
            console.print(f"[green]Imported[/] {r.id} ({apps})")
        return

    items = _run(obj, lambda ctx: ctx.engine(kind).scan_unmanaged())
    if not items:
        console.print("[green]Everything in app directories is managed.[/]")
        return
    table = Table(title=f"Unmanaged {kind}s ({len(items)})")
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Found in")
    for u in items:
        table.add_row(u.id, u.name, ", ".join(a.value for a in u.found_in))
    console.print(table)


# ── Updates ──────────────────────────────────────────────────────────


@main.command(name="check-updates")
@click.argument("kind", type=click.Choice(KINDS))
@click.argument("resource_ids", nargs=-1)
@click.pass_obj
def check_updates(obj: dict, kind: str, resource_ids: tuple[str, ...]):
    """Compare installed resources against their source repositories."""
    console.print(f"\n[bold blue]cfgsync[/] -- Checking {kind}s for updates\n")
    batch = _run(obj, lambda ctx: ctx.engine(kind).check_updates(list(resource_ids) or None))

    table = Table(title="Update check")
    table.add_column("Id", style="cyan")
    table.add_column("Status")
    table.add_column("Latest commit", style="dim")
    for r in batch.results:
        if r.error:
            status = f"[red]error[/] {r.error}"
        elif r.remote_deleted:
            status = "[yellow]removed upstream[/]"
        elif r.has_update:
            status = "[green]update available[/]"
        else:
            status = "up to date"
        commit = f"{r.commit_message or ''} {_fmt_time(r.updated_at)}" if r.has_update else ""
        table.add_row(r.id, status, commit.strip())
    console.print(table)
    console.print(Panel(batch.summary(), title="Summary"))


@main.command()
@click.argument("kind", type=click.Choice(KINDS))
@click.argument("resource_ids", nargs=-1, required=True)
@click.pass_obj
def update(obj: dict, kind: str, resource_ids: tuple[str, ...]):
    """Download the latest version of installed resources."""
    results = _run(obj, lambda ctx: ctx.engine(kind).execute_updates(list(resource_ids)))
    for r in results:
        mark = "[green]v[/]" if r.success else "[red]x[/]"
        console.print(f"  {mark} {r.id}: {r.message}")


# ── Namespaces ───────────────────────────────────────────────────────


@main.group()
def namespace():
    """Manage namespace directories."""


@namespace.command(name="list")
@click.argument("kind", type=click.Choice(KINDS))
@click.pass_obj
def namespace_list(obj: dict, kind: str):
    infos = _run(obj, lambda ctx: ctx.engine(kind).list_namespaces())
    table = Table(title=f"{kind.capitalize()} namespaces")
    table.add_column("Namespace", style="cyan")
    table.add_column("Resources", justify="right")
    for info in infos:
        table.add_row(info.display_name, str(info.count))
    console.print(table)


@namespace.command(name="create")
@click.argument("kind", type=click.Choice(KINDS))
@click.argument("name")
@click.pass_obj
def namespace_create(obj: dict, kind: str, name: str):
    _run(obj, lambda ctx: ctx.engine(kind).create_namespace(name))
    console.print(f"[green]Created[/] namespace {name}")


@namespace.command(name="delete")
@click.argument("kind", type=click.Choice(KINDS))
@click.argument("name")
@click.pass_obj
def namespace_delete(obj: dict, kind: str, name: str):
    _run(obj, lambda ctx: ctx.engine(kind).delete_namespace(name))
    console.print(f"[green]Deleted[/] namespace {name}")


# ── Hooks ────────────────────────────────────────────────────────────


@main.group()
def hook():
    """Hook-only settings: enabled flag and ordering."""


@hook.command(name="enable")
@click.argument("resource_id")
@click.option("--off", "disable", is_flag=True, help="Disable instead")
@click.pass_obj
def hook_enable(obj: dict, resource_id: str, disable: bool):
    _run(obj, lambda ctx: ctx.engine("hook").toggle_enabled(resource_id, not disable))
    console.print(f"{resource_id} {'disabled' if disable else 'enabled'}")


@hook.command(name="priority")
@click.argument("resource_id")
@click.argument("priority", type=int)
@click.pass_obj
def hook_priority(obj: dict, resource_id: str, priority: int):
    _run(obj, lambda ctx: ctx.engine("hook").update_priority(resource_id, priority))
    console.print(f"{resource_id} priority set to {priority}")


@hook.command(name="reorder")
@click.argument("resource_ids", nargs=-1, required=True)
@click.pass_obj
def hook_reorder(obj: dict, resource_ids: tuple[str, ...]):
    records = _run(obj, lambda ctx: ctx.engine("hook").reorder(list(resource_ids)))
    for r in records:
        console.print(f"  {r.priority:>4}  {r.id}")


# ── Repositories ─────────────────────────────────────────────────────


@main.group()
def repo():
    """Manage source repositories."""


@repo.command(name="list")
@click.option("--lang", default="en", help="Description language (en, zh, ja)")
@click.pass_obj
def repo_list(obj: dict, lang: str):
    repos = _run(obj, lambda ctx: ctx.repos.list())
    table = Table(title=f"Source repositories ({len(repos)})")
    table.add_column("Repository", style="cyan")
    table.add_column("Branch")
    table.add_column("Enabled", justify="center")
    table.add_column("Builtin", justify="center")
    table.add_column("Description")
    for r in repos:
        table.add_row(
            r.full_name,
            r.branch,
            "[green]v[/]" if r.enabled else "-",
            "v" if r.builtin else "",
            r.description.get(lang)[:60],
        )
    console.print(table)


@repo.command(name="add")
@click.argument("spec")
@click.option("--description", default="")
@click.pass_obj
def repo_add(obj: dict, spec: str, description: str):
    """Add a repository given as owner/name[@branch]."""
    from cfgsync.registry.repos import parse_repo_spec

    def add(ctx):
        owner, name, branch = parse_repo_spec(spec)
        return ctx.repos.add(owner, name, branch or "main", description)

    added = _run(obj, add)
    console.print(f"[green]Added[/] {added.full_name}@{added.branch}")


@repo.command(name="remove")
@click.argument("spec")
@click.pass_obj
def repo_remove(obj: dict, spec: str):
    from cfgsync.registry.repos import parse_repo_spec

    def remove(ctx):
        owner, name, _ = parse_repo_spec(spec)
        ctx.repos.remove(owner, name)

    _run(obj, remove)
    console.print(f"[green]Removed[/] {spec}")


@repo.command(name="enable")
@click.argument("spec")
@click.option("--off", "disable", is_flag=True, help="Disable instead")
@click.pass_obj
def repo_enable(obj: dict, spec: str, disable: bool):
    from cfgsync.registry.repos import parse_repo_spec

    def toggle_repo(ctx):
        owner, name, _ = parse_repo_spec(spec)
        return ctx.repos.set_enabled(owner, name, not disable)

    r = _run(obj, toggle_repo)
    console.print(f"{r.full_name} {'enabled' if r.enabled else 'disabled'}")


# ── Cache ────────────────────────────────────────────────────────────


@main.group()
def cache():
    """Inspect or clear the discovery cache."""


@cache.command(name="clear")
@click.argument("kind", type=click.Choice(KINDS))
@click.option("--repo", "spec", default=None, help="Only this owner/name")
@click.option("--expired", is_flag=True, help="Only entries older than the TTL")
@click.pass_obj
def cache_clear(obj: dict, kind: str, spec: str | None, expired: bool):
    from cfgsync.registry.repos import parse_repo_spec

    def clear(ctx):
        discovery = ctx.engine(kind).discovery
        if expired:
            return discovery.cleanup_expired_cache()
        if spec:
            owner, name, _ = parse_repo_spec(spec)
            return discovery.clear_cache(ctx.repos.get(owner, name))
        return discovery.clear_cache()

    count = _run(obj, clear)
    console.print(f"[green]Cleared[/] {count} cache entr{'y' if count == 1 else 'ies'}")


@cache.command(name="stats")
@click.argument("kind", type=click.Choice(KINDS))
@click.pass_obj
def cache_stats(obj: dict, kind: str):
    stats = _run(obj, lambda ctx: ctx.engine(kind).discovery.cache_stats())
    console.print(
        f"{stats['entries']} entries; oldest {_fmt_time(stats['oldest'])}, "
        f"newest {_fmt_time(stats['newest'])}"
    )


# ── Token ────────────────────────────────────────────────────────────


@main.group()
def token():
    """Manage the GitHub API token."""


@token.command(name="set")
@click.argument("value")
@click.option("--no-validate", is_flag=True, help="Store without checking it")
@click.pass_obj
def token_set(obj: dict, value: str, no_validate: bool):
    async def store(ctx):
        info = None if no_validate else await ctx.validate_token(value)
        ctx.set_token(value)
        return info

    info = _run(obj, store)
    console.print("[green]Token saved.[/]")
    if info:
        console.print(f"  Quota: {info.remaining}/{info.limit}, resets {_fmt_time(info.reset_at)}")


@token.command(name="show")
@click.pass_obj
def token_show(obj: dict):
    masked = _run(obj, lambda ctx: ctx.masked_token())
    console.print(masked or "[yellow]No token configured.[/]")


@token.command(name="clear")
@click.pass_obj
def token_clear(obj: dict):
    _run(obj, lambda ctx: ctx.set_token(None))
    console.print("Token removed.")


@token.command(name="status")
@click.pass_obj
def token_status(obj: dict):
    """Show the remaining API quota for the configured token."""
    info = _run(obj, lambda ctx: ctx.validate_token())
    auth = "authenticated" if info.authenticated else "anonymous"
    console.print(
        f"{auth}: {info.remaining}/{info.limit} requests left, resets {_fmt_time(info.reset_at)}"
    )


if __name__ == "__main__":
    main()
