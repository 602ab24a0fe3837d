"""Offline ballot reconciliation CLI commands."""

import asyncio

import typer

from tally_api.lib.tally import ElectionCategory

offline_app = typer.Typer()


@offline_app.command("backlog")
def backlog(
    category: ElectionCategory = typer.Argument(..., help="Election category"),
) -> None:
    """Show merged and pending offline ballot counts."""
    asyncio.run(_backlog(category))


async def _backlog(category: ElectionCategory) -> None:
    from tally_api.core.config import get_settings
    from tally_api.core.database import dispose_engine, init_engine, session_scope
    from tally_api.services.ballot_service import get_merge_backlog

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        async with session_scope() as session:
            summary = await get_merge_backlog(session, category)
        typer.echo(f"Category:          {summary.category}")
        typer.echo(f"Pending ballots:   {summary.unmerged_count} ({summary.unmerged_voters} voters)")
        typer.echo(f"Merged ballots:    {summary.merged_count}")
    finally:
        await dispose_engine()


@offline_app.command("merge")
def merge(
    category: ElectionCategory = typer.Argument(..., help="Election category"),
    as_user: str = typer.Option(..., "--as-user", help="Admin username performing the merge"),
) -> None:
    """Merge pending offline ballots into the tally, exactly once."""
    asyncio.run(_merge(category, as_user))


async def _merge(category: ElectionCategory, username: str) -> None:
    from sqlalchemy import select

    from tally_api.core.config import get_settings
    from tally_api.core.database import dispose_engine, init_engine, session_scope
    from tally_api.core.errors import ServiceError
    from tally_api.models.user import User
    from tally_api.services.reconciliation_service import merge_offline_ballots

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        async with session_scope() as session:
            user = (await session.execute(select(User).where(User.username == username))).scalar_one_or_none()
            if user is None:
                typer.echo(f"Error: user '{username}' not found", err=True)
                raise typer.Exit(code=1)
            result = await merge_offline_ballots(
                session,
                category,
                authorized=user.can_merge_offline_votes,
                actor_id=user.id,
                actor_username=user.username,
            )
        if result.merged_count == 0:
            typer.echo("Nothing to merge")
        else:
            typer.echo(f"Merged {result.merged_count} ballots from {result.voter_count} voters")
    except ServiceError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e
    finally:
        await dispose_engine()
