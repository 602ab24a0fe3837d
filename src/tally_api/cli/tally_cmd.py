"""Zone tally CLI commands."""

import asyncio
import uuid

import typer

from tally_api.lib.tally import ElectionCategory, TallyView

tally_app = typer.Typer()


@tally_app.command("show")
def show(
    category: ElectionCategory = typer.Argument(..., help="Election category"),
    zone_id: str | None = typer.Option(None, "--zone", help="Only this zone (UUID)"),
    view: TallyView = typer.Option(TallyView.MERGED, "--view", help="Ballot sources to count"),
) -> None:
    """Print ranked candidates and turnout per zone."""
    asyncio.run(_show(category, zone_id, view))


async def _show(category: ElectionCategory, zone_id: str | None, view: TallyView) -> None:
    from tally_api.core.config import get_settings
    from tally_api.core.database import dispose_engine, init_engine, session_scope
    from tally_api.core.errors import ServiceError
    from tally_api.services import tally_service

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        async with session_scope() as session:
            if zone_id:
                zones = [await tally_service.compute_zone_tally(session, uuid.UUID(zone_id), category, view)]
            else:
                zones = (await tally_service.compute_category_tally(session, category, view)).zones
        for zone in zones:
            typer.echo(f"\n{zone.zone_name} [{zone.zone_code}] seats={zone.seats} view={zone.view}")
            typer.echo(f"{'#':<4} {'Candidate':<32} {'Online':>8} {'Offline':>8} {'Total':>8}  Winner")
            for entry in zone.ranked:
                name = f"{entry.candidate_name} (NOTA)" if entry.is_none_of_above else entry.candidate_name
                mark = "*" if entry.is_winner else ""
                typer.echo(
                    f"{entry.rank:<4} {name:<32} {entry.online_votes:>8} "
                    f"{entry.offline_votes:>8} {entry.total_votes:>8}  {mark}"
                )
            typer.echo(
                f"Turnout: {zone.voters_participated}/{zone.total_voters} ({zone.turnout_percentage}%)"
                + (f", {zone.overlapping_voters} voter(s) in both sources" if zone.overlapping_voters else "")
            )
    except (ServiceError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e
    finally:
        await dispose_engine()


@tally_app.command("winners")
def winners(
    category: ElectionCategory = typer.Argument(..., help="Election category"),
    view: TallyView = typer.Option(TallyView.MERGED, "--view", help="Ballot sources to count"),
) -> None:
    """Print the winners of every active zone."""
    asyncio.run(_winners(category, view))


async def _winners(category: ElectionCategory, view: TallyView) -> None:
    from tally_api.core.config import get_settings
    from tally_api.core.database import dispose_engine, init_engine, session_scope
    from tally_api.services import tally_service

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        async with session_scope() as session:
            result = await tally_service.list_category_winners(session, category, view)
        typer.echo(f"{'Zone':<24} {'#':<4} {'Candidate':<32} {'Votes':>8}")
        typer.echo("-" * 72)
        for item in result.winners:
            name = f"{item.candidate_name} (NOTA)" if item.is_none_of_above else item.candidate_name
            typer.echo(f"{item.zone_name:<24} {item.rank:<4} {name:<32} {item.total_votes:>8}")
        typer.echo(f"\nTotal winners: {len(result.winners)}")
    finally:
        await dispose_engine()
