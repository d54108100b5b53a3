"""Tests for cli/output/table.py."""

from __future__ import annotations

import pytest
from rich import box
from rich.console import Console

from cluster_explorer.cli.output import Table


@pytest.mark.unit
class TestTableDefaults:
    """Tests that Table applies its defaults and delegates to RichTable."""

    def test_constructor_defaults(self) -> None:
        """Compact box, bold header and left-aligned title unless overridden."""
        table = Table(title="Pods")

        assert table.box is box.SIMPLE_HEAD
        assert table.header_style == "bold"
        assert table.title_justify == "left"

    def test_constructor_override(self) -> None:
        table = Table(box=box.ROUNDED, title_justify="center")

        assert table.box is box.ROUNDED
        assert table.title_justify == "center"

    def test_add_column_uses_fold_overflow_by_default(self) -> None:
        """Long names and selectors wrap instead of being cut off."""
        table = Table()
        table.add_column("Name")

        assert table.columns[0].overflow == "fold"

    def test_add_column_respects_explicit_options(self) -> None:
        table = Table()
        table.add_column("IP", overflow="ellipsis", no_wrap=True, style="cyan", min_width=5)
        column = table.columns[0]

        assert column.overflow == "ellipsis"
        assert column.no_wrap is True
        assert column.style == "cyan"
        assert column.min_width == 5

    def test_add_column_passes_extra_kwargs(self) -> None:
        table = Table()
        table.add_column("Cell", ratio=2, vertical="middle")

        assert table.columns[0].ratio == 2
        assert table.columns[0].vertical == "middle"

    def test_long_value_is_folded_not_truncated(self) -> None:
        """A value wider than the column is rendered in full across lines."""
        table = Table(title="Render Test")
        table.add_column("Selector", max_width=10)
        table.add_row("app=web,tier=frontend")

        console = Console(width=40, color_system=None)
        with console.capture() as cap:
            console.print(table)
        output = cap.get()

        assert "Render Test" in output
        assert "…" not in output
        assert "app=web,tier=frontend" in "".join(line.strip() for line in output.splitlines())
