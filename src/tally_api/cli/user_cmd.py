"""Admin user management CLI commands."""

import asyncio

import typer

user_app = typer.Typer()


@user_app.command("create")
def create_user(
    username: str = typer.Option(..., prompt=True, help="Username"),
    email: str = typer.Option(..., prompt=True, help="Email address"),
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True, help="Password"),
    role: str = typer.Option("viewer", prompt=True, help="User role (admin/analyst/viewer)"),
    offline_vote_admin: bool = typer.Option(
        False,
        "--offline-vote-admin",
        help="Allow this admin to record paper ballots (and forbid merging them)",
    ),
    if_not_exists: bool = typer.Option(
        False,
        "--if-not-exists",
        help="Exit successfully if user already exists (idempotent mode)",
    ),
) -> None:
    """Create a new user interactively."""
    asyncio.run(
        _create_user(
            username,
            email,
            password,
            role,
            offline_vote_admin=offline_vote_admin,
            if_not_exists=if_not_exists,
        )
    )


async def _create_user(
    username: str,
    email: str,
    password: str,
    role: str,
    *,
    offline_vote_admin: bool = False,
    if_not_exists: bool = False,
) -> None:
    """Async implementation of user creation."""
    from tally_api.core.config import get_settings
    from tally_api.core.database import dispose_engine, init_engine, session_scope
    from tally_api.core.errors import ConflictError
    from tally_api.schemas.auth import UserCreateRequest
    from tally_api.services.auth_service import create_user

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        async with session_scope() as session:
            request = UserCreateRequest(
                username=username,
                email=email,
                password=password,
                role=role,
                is_offline_vote_admin=offline_vote_admin,
            )
            user = await create_user(session, request)
            kind = " (offline-vote admin)" if user.is_offline_vote_admin else ""
            typer.echo(f"User '{user.username}' created with role '{user.role}'{kind}")
    except ConflictError as e:
        if if_not_exists:
            typer.echo(f"User '{username}' already exists, skipping (--if-not-exists)")
            return
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e
    finally:
        await dispose_engine()


@user_app.command("list")
def list_users() -> None:
    """List all users."""
    asyncio.run(_list_users())


async def _list_users() -> None:
    """Async implementation of user listing."""
    from tally_api.core.config import get_settings
    from tally_api.core.database import dispose_engine, init_engine, session_scope
    from tally_api.services.auth_service import list_users

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        async with session_scope() as session:
            users, total = await list_users(session, page_size=100)
            typer.echo(f"{'Username':<20} {'Email':<30} {'Role':<10} {'Active':<8} {'Offline':<8}")
            typer.echo("-" * 78)
            for user in users:
                typer.echo(
                    f"{user.username:<20} {user.email:<30} {user.role:<10} "
                    f"{user.is_active!s:<8} {user.is_offline_vote_admin!s:<8}"
                )
            typer.echo(f"\nTotal: {total}")
    finally:
        await dispose_engine()
