"""Results declaration CLI commands."""

import asyncio

import typer

declaration_app = typer.Typer()


@declaration_app.command("status")
def status() -> None:
    """Show whether results are declared."""
    asyncio.run(_status())


async def _status() -> None:
    from tally_api.core.config import get_settings
    from tally_api.core.database import dispose_engine, init_engine, session_scope
    from tally_api.services.declaration_gate_service import get_status

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        async with session_scope() as session:
            outcome = await get_status(session)
        if outcome.declared:
            typer.echo(f"Results declared at {outcome.declared_at:%Y-%m-%d %H:%M:%S %Z}")
        else:
            typer.echo("Results not declared")
    finally:
        await dispose_engine()


@declaration_app.command("purge")
def purge() -> None:
    """Delete expired one-time codes and stale challenges now."""
    asyncio.run(_purge())


async def _purge() -> None:
    from tally_api.core.config import get_settings
    from tally_api.core.database import dispose_engine, init_engine, session_scope
    from tally_api.services.otp_service import purge_expired

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        async with session_scope() as session:
            codes, challenges = await purge_expired(session)
        typer.echo(f"Purged {codes} code(s) and {challenges} challenge(s)")
    finally:
        await dispose_engine()
