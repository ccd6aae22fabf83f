"""Terminal output helpers built on ``rich``.

Status lines (``success`` / ``error`` / ``warning`` / ``info``), tables
for search results and installed skills, and the package detail view.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from skill_get.constants import APP_NAME, WEB_URL
from skill_get.registry.models import PackageInfo, VersionInfo
from skill_get.skills.results import UpdateCheck
from skill_get.state.models import InstalledSkillRecord

console = Console(highlight=False)
err_console = Console(stderr=True, highlight=False)

_DESC_WIDTH = 80


def format_number(num: int) -> str:
    """Compact counts: ``1234`` → ``1.2K``, ``2500000`` → ``2.5M``."""
    if num >= 1_000_000:
        return f"{num / 1_000_000:.1f}M"
    if num >= 1_000:
        return f"{num / 1_000:.1f}K"
    return str(num)


def _truncate(text: str, width: int = _DESC_WIDTH) -> str:
    return text if len(text) <= width else text[: width - 3] + "..."


# ── Status lines ─────────────────────────────────────────────────────────


def success(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def error(message: str) -> None:
    err_console.print(f"[red]✗[/red] {message}")


def warning(message: str) -> None:
    console.print(f"[yellow]⚠[/yellow] {message}")


def info(message: str) -> None:
    console.print(f"[blue]ℹ[/blue] {message}")


def heading(text: str) -> None:
    console.print()
    console.print(Text(text, style="bold"))
    console.print()


def hint(command: str, prefix: str = "Run:") -> None:
    """Suggest a follow-up command, e.g. ``Run: skill-get login``."""
    console.print(Text.assemble(("ℹ ", "blue"), f"{prefix} ", (command, "green")))


# ── Registry listings ────────────────────────────────────────────────────


def render_skill_list(packages: Sequence[PackageInfo], *, start: int = 1) -> None:
    """Table of search/browse results."""
    if not packages:
        console.print("[yellow]No skills found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Name", style="bold cyan", no_wrap=True)
    table.add_column("Version", style="dim")
    table.add_column("Description")
    table.add_column("Author", style="blue")
    table.add_column("Downloads", justify="right")

    for idx, pkg in enumerate(packages, start=start):
        name = Text(pkg.name, style="bold cyan")
        if pkg.verified:
            name.append(" ✓", style="green")
        if pkg.featured:
            name.append(" ★", style="yellow")
        table.add_row(
            str(idx),
            name,
            pkg.latest_version or "-",
            _truncate(pkg.description or ""),
            pkg.author.username if pkg.author else "",
            format_number(pkg.downloads),
        )
    console.print(table)


def render_skill_detail(pkg: PackageInfo) -> None:
    """Full detail view for ``info``."""
    title = Text(pkg.name, style="bold cyan")
    title.append(f"@{pkg.latest_version or 'unknown'}", style="dim")
    if pkg.verified:
        title.append(" ✓ Verified", style="green")
    if pkg.featured:
        title.append(" ★ Featured", style="yellow")
    console.print(title)
    console.print()

    if pkg.description:
        console.print(pkg.description)
        console.print()

    rows: List[tuple] = []
    if pkg.author:
        tier = f" ({pkg.author.trust_tier})" if pkg.author.trust_tier else ""
        rows.append(("Author", f"[blue]{pkg.author.username}[/blue]{tier}"))
    rows.append(("License", pkg.license or "-"))
    rows.append(("Downloads", format_number(pkg.downloads)))
    if pkg.rating:
        rows.append(("Rating", f"{pkg.rating:.1f} ★ ({pkg.rating_count} ratings)"))
    if pkg.category:
        rows.append(("Category", pkg.category))
    if pkg.repository:
        rows.append(("Repository", f"[underline]{pkg.repository}[/underline]"))
    if pkg.homepage:
        rows.append(("Homepage", f"[underline]{pkg.homepage}[/underline]"))

    details = Table(box=None, show_header=False, pad_edge=False)
    details.add_column(style="bold")
    details.add_column()
    for label, value in rows:
        details.add_row(f"  {label}:", value)
    console.print(Text("Details:", style="bold"))
    console.print(details)

    if pkg.keywords:
        console.print()
        console.print(Text("Keywords:", style="bold"))
        console.print(f"  [dim]{', '.join(pkg.keywords)}[/dim]")

    console.print()
    console.print(Text("Install:", style="bold"))
    console.print(f"  [green]{APP_NAME} install {pkg.name}[/green]")


def render_versions(versions: Sequence[VersionInfo]) -> None:
    """Table of published versions for ``info --versions``."""
    if not versions:
        console.print("[yellow]No published versions.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Version", style="bold cyan", no_wrap=True)
    table.add_column("Published", style="dim")
    table.add_column("Size", justify="right")
    for ver in versions:
        size = "" if ver.size_bytes is None else f"{format_number(ver.size_bytes)}B"
        table.add_row(ver.version, ver.created_at[:10], size)
    console.print(table)


def skill_url(name: str) -> str:
    return f"{WEB_URL}/skills/{name}"


# ── Local state ──────────────────────────────────────────────────────────


def render_installed(records: Sequence[InstalledSkillRecord]) -> None:
    """Table of installed skills for ``list``."""
    if not records:
        console.print("[yellow]No skills installed.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Name", style="bold cyan", no_wrap=True)
    table.add_column("Version")
    table.add_column("Source", style="dim")
    table.add_column("Path", style="dim")
    for rec in records:
        table.add_row(rec.name, rec.version, rec.source.value, rec.install_path)
    console.print(table)


def render_update_checks(checks: Sequence[UpdateCheck]) -> int:
    """Print available updates; returns how many skills can be updated."""
    available = 0
    for check in checks:
        if check.error:
            console.print(f"  [cyan]{check.name}[/cyan]: [red]{escape(check.error)}[/red]")
        elif check.has_update:
            available += 1
            console.print(
                f"  [cyan]{check.name}[/cyan]: {check.installed} → "
                f"[green]{check.latest}[/green]"
            )
        else:
            console.print(f"  [cyan]{check.name}[/cyan]: [dim]{check.installed} (latest)[/dim]")
    return available


def render_key_values(rows: Sequence[tuple], title: Optional[str] = None) -> None:
    """Aligned ``label: value`` block (``config``, ``publish`` preview)."""
    if title:
        console.print(Text(title, style="bold"))
    table = Table(box=None, show_header=False, pad_edge=False)
    table.add_column(style="bold")
    table.add_column()
    for label, value in rows:
        table.add_row(f"  {label}:", "" if value is None else str(value))
    console.print(table)
