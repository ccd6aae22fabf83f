"""CLI argument parsing and main entry point.

``skill-get <command>``: install, search, browse, list, remove, update,
info, login, logout, whoami, publish and config.  Every command resolves
settings once, configures logging and runs its async body with
:func:`asyncio.run`.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Awaitable, Optional, Tuple

from rich.markup import escape
from rich.prompt import Confirm

from skill_get import paths
from skill_get.auth import DeviceAuthFlow
from skill_get.config.loader import (
    clear_credentials,
    default_state_store,
    load_settings,
    set_agent,
    set_api_url,
    set_credentials,
)
from skill_get.config.schema import Settings
from skill_get.constants import APP_NAME, APP_VERSION, LATEST
from skill_get.display import console as ui
from skill_get.display.logging_config import secret_redaction_filter, setup_logging
from skill_get.display.progress import UpdateProgress
from skill_get.errors import (
    AuthError,
    BundleError,
    ConfigurationError,
    RegistryError,
    SkillNotFoundError,
    StateFileError,
)
from skill_get.registry.client import RegistryClient
from skill_get.skills.bundle import collect_publish_metadata, pack_bundle
from skill_get.skills.manager import SkillManager
from skill_get.skills.results import Failure, Outcome
from skill_get.state.manifest import ManifestStore
from skill_get.state.store import StateStore

module_logger = logging.getLogger(__name__)


# ── Shared plumbing ──────────────────────────────────────────────────────


def _bootstrap(args: argparse.Namespace) -> Tuple[StateStore, Settings]:
    """Resolve settings and configure logging for one invocation."""
    state = default_state_store()
    try:
        settings = load_settings(
            state,
            config_path=args.config,
            overrides={"log_level": args.log_level},
        )
    except ConfigurationError as exc:
        ui.error(escape(str(exc)))
        sys.exit(1)

    log_fpath = setup_logging(settings.log_level, settings.log_dir, verbose=args.verbose)
    secret_redaction_filter.register(settings.token)
    module_logger.info(
        "---- %s v%s: %s (agent=%s, log=%s) ----",
        APP_NAME,
        APP_VERSION,
        args.command,
        settings.agent,
        log_fpath,
    )
    return state, settings


def _make_registry(settings: Settings) -> RegistryClient:
    return RegistryClient.from_settings(settings)


def _make_manager(settings: Settings, state: StateStore, registry: RegistryClient) -> SkillManager:
    return SkillManager(settings, registry, ManifestStore(state))


def _run(coro: Awaitable[int]) -> None:
    """Run an async command body and exit with its status."""
    code = asyncio.run(coro)
    if code:
        sys.exit(code)


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2))


def _fail(result: Failure, headline: str) -> int:
    ui.error(f"{headline}: {escape(result.message)}")
    return 1


# ── ``skill-get install`` ────────────────────────────────────────────────


def _split_spec(target: str, version: str) -> Tuple[str, str]:
    """``name@1.2.0`` → ``("name", "1.2.0")``; scoped ``@x`` names are left alone."""
    if "@" in target and not target.startswith("@"):
        name, _, pinned = target.partition("@")
        return name, pinned or LATEST
    return target, version


async def _install(args: argparse.Namespace, state: StateStore, settings: Settings) -> int:
    async with _make_registry(settings) as registry:
        manager = _make_manager(settings, state, registry)

        if args.local or Path(args.target).exists():
            with ui.console.status(f"Installing skill from [cyan]{args.target}[/cyan]..."):
                result = await manager.install_from_local(Path(args.target), name=args.skill_name)
            if isinstance(result, Failure):
                return _fail(result, f"Failed to install from {args.target}")
            ui.success(f"Installed [cyan]{result.name}[/cyan] from local directory")
            ui.info(f"Location: {result.path}")
            return 0

        name, version = _split_spec(args.target, args.version)
        with ui.console.status(f"Installing [cyan]{name}[/cyan]@[dim]{version}[/dim]..."):
            result = await manager.install(name, version, force=args.force)

    if isinstance(result, Failure):
        return _fail(result, f"Failed to install {name}")
    ui.success(f"Installed [cyan]{result.name}[/cyan]@[green]{result.version}[/green]")
    ui.info(f"Location: {result.path}")
    ui.success(f"Ready to use with {paths.agent_display_name(settings.agent)}!")
    return 0


def _cmd_install(args: argparse.Namespace) -> None:
    """Entry-point for ``skill-get install``."""
    state, settings = _bootstrap(args)
    _run(_install(args, state, settings))


# ── ``skill-get search`` / ``browse`` ────────────────────────────────────


async def _search(args: argparse.Namespace, settings: Settings) -> int:
    query = args.query or ""
    async with _make_registry(settings) as registry:
        try:
            with ui.console.status("Searching skills..."):
                page = await registry.search(query, page=args.page, limit=args.limit)
        except RegistryError as exc:
            ui.error(f"Search failed: {escape(exc.message)}")
            return 1

    if args.json:
        _print_json(
            {
                "data": [p.to_dict() for p in page.packages],
                "query": page.query,
                "pagination": asdict(page.pagination),
            }
        )
        return 0

    ui.heading(f'Search results for "{query}"' if query else "Available Skills")
    ui.render_skill_list(page.packages, start=(args.page - 1) * args.limit + 1)
    if page.pagination.has_more:
        ui.console.print(
            f"\n[dim]Showing {len(page.packages)} of {page.pagination.total} results. "
            "Use --page to see more.[/dim]"
        )
    ui.console.print(f"\n[dim]Install with: {APP_NAME} install <name>[/dim]")
    return 0


def _cmd_search(args: argparse.Namespace) -> None:
    """Entry-point for ``skill-get search``."""
    _, settings = _bootstrap(args)
    _run(_search(args, settings))


async def _browse(args: argparse.Namespace, settings: Settings) -> int:
    async with _make_registry(settings) as registry:
        try:
            with ui.console.status("Loading skills..."):
                page = await registry.list_skills(
                    category=args.category, sort=args.sort, limit=args.limit
                )
        except RegistryError as exc:
            ui.error(f"Failed to load skills: {escape(exc.message)}")
            return 1

    packages = [p for p in page.packages if p.featured] if args.featured else page.packages
    ui.heading("Available Skills")
    ui.render_skill_list(packages)
    ui.console.print(f"\n[dim]Install with: {APP_NAME} install <name>[/dim]")
    return 0


def _cmd_browse(args: argparse.Namespace) -> None:
    """Entry-point for ``skill-get browse``."""
    _, settings = _bootstrap(args)
    _run(_browse(args, settings))


# ── ``skill-get list`` ───────────────────────────────────────────────────


def _cmd_list(args: argparse.Namespace) -> None:
    """Entry-point for ``skill-get list``."""
    state, settings = _bootstrap(args)
    records = sorted(ManifestStore(state).list(), key=lambda r: r.name)

    if args.json:
        _print_json([r.to_json_dict() for r in records])
        return

    ui.heading(f"Installed Skills ({paths.agent_display_name(settings.agent)})")
    ui.render_installed(records)
    if records:
        ui.console.print(f"\n[dim]Skills directory: {settings.skills_path}[/dim]")
    else:
        ui.hint(f"{APP_NAME} install <name>", prefix="Install skills with:")


# ── ``skill-get remove`` ─────────────────────────────────────────────────


async def _remove(args: argparse.Namespace, state: StateStore, settings: Settings) -> int:
    async with _make_registry(settings) as registry:
        manager = _make_manager(settings, state, registry)
        record = manager.get(args.name)
        if record is None:
            ui.error(f"Skill '{args.name}' is not installed")
            return 1

        if not args.yes and not Confirm.ask(
            f"Remove [cyan]{args.name}[/cyan]@[dim]{record.version}[/dim]?",
            default=False,
            console=ui.console,
        ):
            ui.warning("Removal cancelled")
            return 0

        result = await manager.remove(args.name)

    if isinstance(result, Failure):
        return _fail(result, f"Failed to remove {args.name}")
    ui.success(f"Removed [cyan]{args.name}[/cyan]")
    return 0


def _cmd_remove(args: argparse.Namespace) -> None:
    """Entry-point for ``skill-get remove``."""
    state, settings = _bootstrap(args)
    _run(_remove(args, state, settings))


# ── ``skill-get update`` ─────────────────────────────────────────────────


async def _update(args: argparse.Namespace, state: StateStore, settings: Settings) -> int:
    async with _make_registry(settings) as registry:
        manager = _make_manager(settings, state, registry)

        if args.check:
            with ui.console.status("Checking for updates..."):
                checks = await manager.check_updates()
            if args.name:
                checks = [c for c in checks if c.name == args.name]
            if not checks:
                ui.warning("No registry skills installed")
                return 0
            available = ui.render_update_checks(checks)
            if available:
                ui.hint(f"{APP_NAME} update", prefix=f"{available} update(s) available. Run:")
            else:
                ui.info("All skills are up to date!")
            return 1 if any(c.error for c in checks) else 0

        if args.name:
            with ui.console.status(f"Checking for updates to [cyan]{args.name}[/cyan]..."):
                result = await manager.update(args.name)
            if isinstance(result, Failure):
                return _fail(result, f"Failed to update {args.name}")
            if result.outcome is Outcome.ALREADY_CURRENT:
                ui.info(
                    f"[cyan]{args.name}[/cyan] is already at the latest version ({result.version})"
                )
            else:
                ui.success(f"Updated [cyan]{args.name}[/cyan] to [green]{result.version}[/green]")
            return 0

        names = [r.name for r in manager.updatable()]
        if not names:
            ui.warning("No skills installed")
            return 0

        progress = UpdateProgress(names)
        progress.start()
        try:
            summary = await manager.update_all(progress.callback())
        finally:
            progress.finalize()

    if summary.updated_count == 0 and summary.failed_count == 0:
        ui.info("All skills are up to date!")
    for failure in summary.failed:
        ui.warning(f"Failed to update {failure.name}: {escape(failure.message)}")
    return 1 if summary.failed_count else 0


def _cmd_update(args: argparse.Namespace) -> None:
    """Entry-point for ``skill-get update``."""
    state, settings = _bootstrap(args)
    _run(_update(args, state, settings))


# ── ``skill-get info`` ───────────────────────────────────────────────────


async def _info(args: argparse.Namespace, state: StateStore, settings: Settings) -> int:
    async with _make_registry(settings) as registry:
        try:
            with ui.console.status(f"Fetching info for [cyan]{args.name}[/cyan]..."):
                pkg = await registry.get_skill(args.name)
                versions = await registry.get_versions(args.name) if args.versions else None
        except SkillNotFoundError:
            ui.error(f"Skill '{args.name}' not found")
            return 1
        except RegistryError as exc:
            ui.error(f"Failed to fetch skill info: {escape(exc.message)}")
            return 1

    if args.json:
        body = pkg.to_dict()
        if versions is not None:
            body["versions"] = [v.to_dict() for v in versions]
        _print_json(body)
        return 0

    ui.render_skill_detail(pkg)
    if versions is not None:
        ui.console.print()
        ui.render_versions(versions)
    installed = ManifestStore(state).get(args.name)
    if installed is not None:
        ui.console.print()
        ui.success(f"Installed: v{installed.version} at {installed.install_path}")
        if pkg.latest_version and installed.version != pkg.latest_version:
            ui.info(f"Update available: {installed.version} → {pkg.latest_version}")
    return 0


def _cmd_info(args: argparse.Namespace) -> None:
    """Entry-point for ``skill-get info``."""
    state, settings = _bootstrap(args)
    _run(_info(args, state, settings))


# ── ``skill-get login`` / ``logout`` / ``whoami`` ───────────────────────


async def _login(state: StateStore, settings: Settings) -> int:
    if settings.is_authenticated:
        ui.info(f"Already logged in as [cyan]{settings.username or '(token)'}[/cyan]")
        if not Confirm.ask(
            "Do you want to log in with a different account?",
            default=False,
            console=ui.console,
        ):
            return 0

    async with _make_registry(settings) as registry:
        flow = DeviceAuthFlow(registry)
        try:
            with ui.console.status("Initiating device authentication..."):
                code = await flow.start()
        except RegistryError as exc:
            ui.error(f"Failed to initiate authentication: {escape(exc.message)}")
            return 1

        ui.console.print("\n[bold]To authenticate, please:[/bold]")
        ui.console.print(
            f"\n1. Open this URL in your browser:\n   [cyan underline]{code.verification_uri}"
            "[/cyan underline]"
        )
        ui.console.print(f"\n2. Enter this code:\n   [bold yellow]{code.user_code}[/bold yellow]")
        if code.verification_uri_complete:
            ui.console.print(f"\n[dim]Or open: {code.verification_uri_complete}[/dim]\n")

        try:
            with ui.console.status("Waiting for authentication..."):
                result = await flow.wait_for_token(code)
        except AuthError as exc:
            ui.error(f"{escape(str(exc))}. Please try again")
            return 1

    secret_redaction_filter.register(result.token)
    try:
        set_credentials(state, result.token, result.user.username)
    except StateFileError as exc:
        ui.error(escape(str(exc)))
        return 1
    ui.success(f"Logged in as [cyan]{result.user.username}[/cyan]")
    ui.success("You can now publish skills to the registry")
    return 0


def _cmd_login(args: argparse.Namespace) -> None:
    """Entry-point for ``skill-get login``."""
    state, settings = _bootstrap(args)
    _run(_login(state, settings))


def _cmd_logout(args: argparse.Namespace) -> None:
    """Entry-point for ``skill-get logout``."""
    state, settings = _bootstrap(args)
    if not settings.is_authenticated:
        ui.warning("Not logged in")
        return
    clear_credentials(state)
    ui.success(f"Logged out from [cyan]{settings.username or 'registry'}[/cyan]")


async def _whoami(settings: Settings) -> int:
    if not settings.is_authenticated:
        ui.info("Not logged in")
        ui.hint(f"{APP_NAME} login", prefix="Log in with:")
        return 0

    if settings.username:
        ui.console.print(f"[cyan]{settings.username}[/cyan]")
        return 0

    # token from the environment, no stored username
    async with _make_registry(settings) as registry:
        try:
            user = await registry.get_user()
        except RegistryError as exc:
            ui.error(f"Could not resolve the current user: {escape(exc.message)}")
            return 1
    ui.console.print(f"[cyan]{user.username}[/cyan]")
    return 0


def _cmd_whoami(args: argparse.Namespace) -> None:
    """Entry-point for ``skill-get whoami``."""
    _, settings = _bootstrap(args)
    _run(_whoami(settings))


# ── ``skill-get publish`` ────────────────────────────────────────────────


async def _publish(args: argparse.Namespace, settings: Settings) -> int:
    bundle_path = Path(args.path).resolve()

    if not args.dry_run and not settings.is_authenticated:
        ui.error("You must be logged in to publish")
        ui.hint(f"{APP_NAME} login")
        return 1

    problems = SkillManager.verify_bundle(bundle_path)
    if problems:
        ui.error("Validation failed")
        for problem in problems:
            ui.error(problem)
        return 1

    try:
        meta = collect_publish_metadata(bundle_path)
    except BundleError as exc:
        ui.error(escape(str(exc)))
        return 1
    ui.success("Validation passed")

    description = meta.description or ""
    if len(description) > 60:
        description = description[:60] + "..."
    ui.console.print()
    ui.render_key_values(
        [
            ("Name", meta.name),
            ("Version", meta.version),
            ("Description", description or None),
            ("Keywords", ", ".join(meta.keywords) or None),
            ("Category", meta.category),
            ("License", meta.license),
        ],
        title="Package details:",
    )

    if args.dry_run:
        ui.info("Dry run - not publishing")
        return 0

    if not args.yes and not Confirm.ask(
        f"Publish [cyan]{meta.name}[/cyan]@[green]{meta.version}[/green]?",
        default=True,
        console=ui.console,
    ):
        ui.warning("Publish cancelled")
        return 0

    async with _make_registry(settings) as registry:
        try:
            with ui.console.status("Publishing..."):
                await registry.publish_skill(meta.to_payload())
                archive = pack_bundle(bundle_path, meta.name)
                await registry.upload_tarball(meta.name, meta.version, archive)
        except (RegistryError, OSError) as exc:
            ui.error(f"Publish failed: {escape(str(getattr(exc, 'message', exc)))}")
            return 1

    ui.success(f"Published [cyan]{meta.name}[/cyan]@[green]{meta.version}[/green]")
    ui.info(f"View at: {ui.skill_url(meta.name)}")
    return 0


def _cmd_publish(args: argparse.Namespace) -> None:
    """Entry-point for ``skill-get publish``."""
    _, settings = _bootstrap(args)
    _run(_publish(args, settings))


# ── ``skill-get config`` ─────────────────────────────────────────────────


def _cmd_config(args: argparse.Namespace) -> None:
    """Entry-point for ``skill-get config``."""
    state, settings = _bootstrap(args)

    if args.list or (not args.agent and not args.api):
        ui.console.print()
        ui.render_key_values(
            [
                ("Agent", paths.agent_display_name(settings.agent)),
                ("Skills Path", settings.skills_path),
                ("API URL", settings.api_url),
                ("Logged in", settings.username or "No"),
                ("State file", settings.state_path),
            ],
            title="Configuration:",
        )
        return

    try:
        if args.agent:
            skills_path = set_agent(state, args.agent)
            ui.success(f"Agent set to [cyan]{paths.agent_display_name(args.agent)}[/cyan]")
            ui.info(f"Skills path: {skills_path}")
        if args.api:
            url = set_api_url(state, args.api)
            ui.success(f"API URL set to [cyan]{url}[/cyan]")
    except (ConfigurationError, StateFileError) as exc:
        ui.error(escape(str(exc)))
        sys.exit(1)


# ── CLI parser construction ──────────────────────────────────────────────


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser with one subcommand per operation."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Package manager for AI agent skills",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        metavar="PATH",
        help="Path to a YAML config file (default: $SKILL_GET_CONFIG or <config dir>/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["debug", "info", "warning", "error", "critical"],
        help="Set file logging level (default: warning)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Also print debug logs to the terminal",
    )

    subparsers = parser.add_subparsers(dest="command")

    # ── install ─────────────────────────────────────────────────
    sp_install = subparsers.add_parser(
        "install",
        help="Install a skill from the registry or a local directory",
    )
    sp_install.add_argument(
        "target", metavar="NAME", help="Skill name, name@version, or local path"
    )
    sp_install.add_argument(
        "-v",
        "--version",
        type=str,
        default=LATEST,
        help="Specific version to install (default: latest)",
    )
    sp_install.add_argument(
        "-f",
        "--force",
        action="store_true",
        default=False,
        help="Reinstall if already installed",
    )
    sp_install.add_argument(
        "-l",
        "--local",
        action="store_true",
        default=False,
        help="Install from a local directory",
    )
    sp_install.add_argument(
        "--name",
        dest="skill_name",
        default=None,
        help="Install name for a local skill (default: derived from SKILL.md)",
    )
    sp_install.set_defaults(func=_cmd_install)

    # ── search ──────────────────────────────────────────────────
    sp_search = subparsers.add_parser("search", help="Search for skills in the registry")
    sp_search.add_argument("query", nargs="?", default=None, help="Search query")
    sp_search.add_argument("-l", "--limit", type=int, default=20, help="Number of results")
    sp_search.add_argument("-p", "--page", type=int, default=1, help="Page number")
    sp_search.add_argument("--json", action="store_true", default=False, help="Output as JSON")
    sp_search.set_defaults(func=_cmd_search)

    # ── browse ──────────────────────────────────────────────────
    sp_browse = subparsers.add_parser("browse", help="Browse all available skills")
    sp_browse.add_argument("-c", "--category", default=None, help="Filter by category")
    sp_browse.add_argument(
        "-s",
        "--sort",
        default=None,
        choices=["downloads", "rating", "newest", "updated"],
        help="Sort order",
    )
    sp_browse.add_argument("-l", "--limit", type=int, default=30, help="Number of results")
    sp_browse.add_argument(
        "--featured", action="store_true", default=False, help="Show only featured skills"
    )
    sp_browse.set_defaults(func=_cmd_browse)

    # ── list ────────────────────────────────────────────────────
    sp_list = subparsers.add_parser("list", aliases=["ls"], help="List installed skills")
    sp_list.add_argument("--json", action="store_true", default=False, help="Output as JSON")
    sp_list.set_defaults(func=_cmd_list)

    # ── remove ──────────────────────────────────────────────────
    sp_remove = subparsers.add_parser(
        "remove", aliases=["uninstall", "rm"], help="Remove an installed skill"
    )
    sp_remove.add_argument("name", help="Skill name to remove")
    sp_remove.add_argument(
        "-y", "--yes", action="store_true", default=False, help="Skip confirmation prompt"
    )
    sp_remove.set_defaults(func=_cmd_remove)

    # ── update ──────────────────────────────────────────────────
    sp_update = subparsers.add_parser(
        "update",
        aliases=["upgrade"],
        help="Update installed skill(s) to the latest version",
    )
    sp_update.add_argument(
        "name", nargs="?", default=None, help="Skill to update (default: all registry skills)"
    )
    sp_update.add_argument(
        "--check",
        action="store_true",
        default=False,
        help="Only check for updates, do not install",
    )
    sp_update.set_defaults(func=_cmd_update)

    # ── info ────────────────────────────────────────────────────
    sp_info = subparsers.add_parser(
        "info", aliases=["show", "view"], help="Show detailed information about a skill"
    )
    sp_info.add_argument("name", help="Skill name")
    sp_info.add_argument("--json", action="store_true", default=False, help="Output as JSON")
    sp_info.add_argument(
        "--versions",
        action="store_true",
        default=False,
        help="Also list every published version",
    )
    sp_info.set_defaults(func=_cmd_info)

    # ── login / logout / whoami ─────────────────────────────────
    subparsers.add_parser("login", help="Log in to the skills registry").set_defaults(
        func=_cmd_login
    )
    subparsers.add_parser("logout", help="Log out from the skills registry").set_defaults(
        func=_cmd_logout
    )
    subparsers.add_parser("whoami", help="Show the logged-in user").set_defaults(
        func=_cmd_whoami
    )

    # ── publish ─────────────────────────────────────────────────
    sp_publish = subparsers.add_parser("publish", help="Publish a skill to the registry")
    sp_publish.add_argument("path", nargs="?", default=".", help="Skill directory (default: .)")
    sp_publish.add_argument(
        "--dry-run", action="store_true", default=False, help="Validate without publishing"
    )
    sp_publish.add_argument(
        "-y", "--yes", action="store_true", default=False, help="Skip confirmation prompt"
    )
    sp_publish.set_defaults(func=_cmd_publish)

    # ── config ──────────────────────────────────────────────────
    sp_config = subparsers.add_parser("config", help="Show or modify configuration")
    sp_config.add_argument(
        "--agent",
        default=None,
        choices=list(paths.KNOWN_AGENTS),
        help="Set the target agent",
    )
    sp_config.add_argument("--api", default=None, metavar="URL", help="Set the registry API URL")
    sp_config.add_argument(
        "--list", action="store_true", default=False, help="List all configuration"
    )
    sp_config.set_defaults(func=_cmd_config)

    return parser


def main(argv: Optional[list] = None) -> None:
    """Program entry point: parse arguments and dispatch to subcommand."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)
    try:
        args.func(args)
    except KeyboardInterrupt:
        ui.warning("Interrupted")
        sys.exit(130)


if __name__ == "__main__":
    main()
