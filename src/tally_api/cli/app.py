"""Typer CLI root application with serve command."""

import typer

from tally_api.core.config import get_settings
from tally_api.core.logging import setup_logging

app = typer.Typer(name="tally-api", help="Election tally, reconciliation and declaration CLI")


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all CLI commands."""
    settings = get_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir)


@app.command()
def serve(
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload for development"),
    host: str = typer.Option("0.0.0.0", "--host", help="Bind host"),  # noqa: S104
    port: int = typer.Option(8000, "--port", help="Bind port"),
) -> None:
    """Start the API server."""
    import uvicorn

    uvicorn.run(
        "tally_api.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


def _register_subcommands() -> None:
    """Register all CLI subcommand groups."""
    from tally_api.cli.db_cmd import db_app
    from tally_api.cli.declaration_cmd import declaration_app
    from tally_api.cli.offline_cmd import offline_app
    from tally_api.cli.tally_cmd import tally_app
    from tally_api.cli.user_cmd import user_app

    app.add_typer(db_app, name="db", help="Database migration commands")
    app.add_typer(user_app, name="user", help="User management commands")
    app.add_typer(tally_app, name="tally", help="Zone tally and winners commands")
    app.add_typer(offline_app, name="offline", help="Offline ballot reconciliation commands")
    app.add_typer(declaration_app, name="declaration", help="Results declaration commands")


_register_subcommands()
