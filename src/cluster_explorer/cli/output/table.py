"""Table output shared by every CLI command.

Wraps Rich's Table so columns fold long values instead of truncating them;
resource names and label selectors are often wider than the terminal.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal

from rich import box
from rich.table import Table as RichTable

if TYPE_CHECKING:
    from rich.console import ConsoleRenderable, RichCast
    from rich.style import Style

OverflowMethod = Literal["fold", "crop", "ellipsis", "ignore"]
JustifyMethod = Literal["default", "left", "center", "right", "full"]


class Table(RichTable):
    """Rich Table with folding columns and a compact box style.

    Usage:
        from cluster_explorer.cli.output import Table

        table = Table(title="Pods")
        table.add_column("Name")
        table.add_column("IP", no_wrap=True)
        table.add_row("web-0", "10.0.0.7")
    """

    def __init__(self, *headers: Any, **kwargs: Any) -> None:
        kwargs.setdefault("box", box.SIMPLE_HEAD)
        kwargs.setdefault("header_style", "bold")
        kwargs.setdefault("title_justify", "left")
        super().__init__(*headers, **kwargs)

    def add_column(
        self,
        header: ConsoleRenderable | RichCast | str = "",
        footer: ConsoleRenderable | RichCast | str = "",
        *,
        style: Style | str | None = None,
        justify: JustifyMethod = "default",
        overflow: OverflowMethod = "fold",
        min_width: int | None = None,
        max_width: int | None = None,
        no_wrap: bool = False,
        **kwargs: Any,
    ) -> None:
        """Add a column with overflow="fold" by default."""
        super().add_column(
            header,
            footer,
            style=style,
            justify=justify,
            overflow=overflow,
            min_width=min_width,
            max_width=max_width,
            no_wrap=no_wrap,
            **kwargs,
        )
