"""Fixtures for CLI tests: a Typer app wired to an in-memory session."""

from __future__ import annotations

import logging
from collections.abc import Callable, Generator
from typing import Any

import pytest
import structlog
import typer

from cluster_explorer.cli.commands.base import CliState
from cluster_explorer.cli.commands.cache import register_cache_commands
from cluster_explorer.cli.commands.graph import register_graph_commands
from cluster_explorer.cli.commands.resources import register_resource_commands
from cluster_explorer.services.explorer import ExplorerSession
from tests.unit.conftest import InMemorySource


@pytest.fixture(autouse=True)
def _quiet_structlog() -> Generator[None]:
    """Keep structlog's default stdout printer out of command output."""
    structlog.configure(
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(logging.ERROR),
    )
    yield
    structlog.reset_defaults()


@pytest.fixture
def explorer_app(
    make_session: Callable[..., ExplorerSession],
) -> Callable[..., tuple[typer.Typer, ExplorerSession]]:
    """Factory for a CLI app whose commands all share one in-memory session."""

    def factory(source: InMemorySource, **defaults: Any) -> tuple[typer.Typer, ExplorerSession]:
        session = make_session(source, **defaults)
        app = typer.Typer()

        @app.callback()
        def main(ctx: typer.Context) -> None:
            ctx.obj = CliState(session=session)

        register_resource_commands(app, lambda state: session)
        register_graph_commands(app, lambda state: session)
        register_cache_commands(app, lambda state: session)
        return app, session

    return factory
