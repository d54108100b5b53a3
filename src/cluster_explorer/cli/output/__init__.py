"""CLI output utilities.

Usage:
    from cluster_explorer.cli.output import Table

    table = Table(title="Services")
    table.add_column("Name", style="cyan")
    table.add_row("api")
    console.print(table)
"""

from cluster_explorer.cli.output.table import Table

__all__ = ["Table"]
