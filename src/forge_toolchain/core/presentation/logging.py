from typing import Any, Dict, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

console = Console(stderr=True)


class ToolchainFormatter:
    """Utility for formatting toolchain discovery messages for the console."""

    @staticmethod
    def format_discovered(label: str, path: str) -> str:
        """Format the informational line emitted when a tool is located."""
        return f"{label} path: [cyan]{escape(path)}[/cyan]"

    @staticmethod
    def format_candidate_rejected(candidate: str, reason: Any) -> str:
        return f"[yellow]Warning: Skipping {escape(candidate)}: {escape(str(reason))}[/yellow]"

    @staticmethod
    def format_missing(message: str) -> str:
        return f"[bold red]✖ {escape(message)}[/bold red]"

    @staticmethod
    def format_error(message: str) -> str:
        """Format an error message."""
        return f"[bold red]Error:[/bold red] {escape(message)}"

    @staticmethod
    def bundle_table(title: str, roles: Dict[str, Optional[str]]) -> Table:
        """Render a role -> path mapping, marking absent optional tools."""
        table = Table(title=title)
        table.add_column("Role", style="bold")
        table.add_column("Path")
        for role, path in roles.items():
            if path:
                table.add_row(role, f"[green]{escape(str(path))}[/green]")
            else:
                table.add_row(role, "[dim]not present[/dim]")
        return table
