"""
Command-line interface for vector-search.

Operator commands for the database side of asset search: running the
startup sequence, changing the CLIP embedding width, moving embeddings
between vector extensions and inspecting health and lock state.

Usage:
    vector-search init-db                      # Gate, migrate, sync width, indexes
    vector-search change-dimension 768         # Rebuild smart_search for 768 dims
    vector-search swap-extension vectors vector  # pgvecto.rs -> pgvector
    vector-search health                       # Check PostgreSQL and extension
    vector-search lock-status                  # Show advisory lock holders
"""

import asyncio
import sys

import click

from src.config.settings import get_settings
from src.extensions.versions import ExtensionKind
from src.observability.logging import bind_context, get_logger, setup_logging
from src.observability.metrics import get_metrics
from src.storage.locks import DatabaseLock

_EXTENSION_CHOICE = click.Choice([kind.value for kind in ExtensionKind])

_LOCK_STATUS_SQL = """
    SELECT l.objid::int AS lock_id, l.pid, l.granted, a.application_name
    FROM pg_locks l
    LEFT JOIN pg_stat_activity a ON a.pid = l.pid
    WHERE l.locktype = 'advisory'
      AND l.classid = 0
      AND l.objid = ANY($1::oid[])
    ORDER BY l.objid, l.granted DESC
"""


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, debug: bool) -> None:
    """Vector Search - asset and face similarity search on PostgreSQL."""
    setup_logging(level="DEBUG" if debug else None)
    bind_context(command=ctx.invoked_subcommand)


@main.command("init-db")
@click.option("--metrics/--no-metrics", default=False, help="Expose metrics while running")
def init_db(metrics: bool) -> None:
    """Run the full database startup sequence."""
    from src.extensions.errors import DatabaseStartupError
    from src.services.bootstrap import build_services, initialize_database
    from src.storage.database import Database

    async def run():
        if metrics:
            get_metrics().start_server()

        async with Database() as db:
            services = build_services(db)
            applied = await initialize_database(services)

        if applied:
            click.echo(f"Applied migrations: {', '.join(applied)}")
        click.echo("Database initialized successfully")

    try:
        asyncio.run(run())
    except DatabaseStartupError as e:
        click.echo(click.style(f"Startup check failed: {e}", fg="red"), err=True)
        sys.exit(1)


@main.command("change-dimension")
@click.argument("dim_size", type=int)
def change_dimension(dim_size: int) -> None:
    """Rebuild the CLIP embedding table for DIM_SIZE-wide embeddings.

    Existing CLIP embeddings are discarded and must be regenerated.
    """
    from src.services.bootstrap import build_services
    from src.storage.database import Database

    async def run() -> bool:
        async with Database() as db:
            services = build_services(db)
            return await services.lifecycle.change_embedding_dimension(dim_size)

    try:
        changed = asyncio.run(run())
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="DIM_SIZE")

    if changed:
        click.echo(f"CLIP embedding dimension changed to {dim_size}")
    else:
        click.echo(f"CLIP embedding dimension already {dim_size}, nothing to do")


@main.command("swap-extension")
@click.argument("from_kind", type=_EXTENSION_CHOICE)
@click.argument("to_kind", type=_EXTENSION_CHOICE)
def swap_extension(from_kind: str, to_kind: str) -> None:
    """Move embedding columns and indexes from FROM_KIND to TO_KIND.

    Both extensions must be installed. Use 'vector' for pgvector and
    'vectors' for pgvecto.rs.
    """
    from src.services.bootstrap import build_services
    from src.storage.database import Database

    source, target = ExtensionKind(from_kind), ExtensionKind(to_kind)
    if source is target:
        click.echo(f"Embeddings already use {target.value}, nothing to do")
        return

    async def run():
        async with Database() as db:
            services = build_services(db)
            await services.lifecycle.extension_swap(source, target)

    asyncio.run(run())
    click.echo(f"Embeddings moved from {source.value} to {target.value}")


@main.command()
def health() -> None:
    """Check PostgreSQL and the configured vector extension."""
    from src.extensions.config import ExtensionConfig
    from src.extensions.repository import DatabaseRepository
    from src.storage.database import Database

    logger = get_logger(__name__)

    async def check():
        settings = get_settings()
        policy = ExtensionConfig().policy_for(ExtensionKind(settings.vector_extension))
        results: dict[str, bool] = {}
        details: dict[str, str] = {}

        try:
            db = Database()
            await db.connect()
        except Exception as e:
            logger.error("Postgres connection failed", error=str(e))
            results["postgres"] = False
            db = None

        if db is not None:
            try:
                results["postgres"] = await db.health_check()
                repo = DatabaseRepository(db)
                installed = await repo.get_extension_version(policy.kind)
                if installed is None:
                    results["extension"] = False
                    details["extension"] = f"{policy.display_name} not installed"
                else:
                    results["extension"] = policy.is_supported(installed)
                    details["extension"] = f"{policy.display_name} {installed}"
                    clip_dim = await repo.get_clip_dim_size()
                    details["clip_dim_size"] = str(clip_dim)
            except Exception as e:
                results.setdefault("extension", False)
                logger.error("Extension health check failed", error=str(e))
            finally:
                await db.close()

        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        all_healthy = True
        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            suffix = f" ({details[name]})" if name in details else ""
            click.echo(click.style(f"  {icon} {name}: {status}{suffix}", fg=color))
            if not status:
                all_healthy = False
        if "clip_dim_size" in details:
            click.echo(f"  CLIP dimension: {details['clip_dim_size']}")

        click.echo("-" * 40)

        if all_healthy:
            click.echo(click.style("Database ready for search!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Database not ready!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


@main.command("lock-status")
def lock_status() -> None:
    """Show which backends hold or wait for lifecycle advisory locks."""
    from src.storage.database import Database

    async def run():
        async with Database() as db:
            return await db.fetch(_LOCK_STATUS_SQL, [int(lock) for lock in DatabaseLock])

    rows = asyncio.run(run())
    by_lock: dict[int, list[str]] = {}
    for row in rows:
        state = "holding" if row["granted"] else "waiting"
        holder = f"pid {row['pid']}"
        if row["application_name"]:
            holder += f" ({row['application_name']})"
        by_lock.setdefault(row["lock_id"], []).append(f"{holder} {state}")

    click.echo("\nAdvisory Locks:")
    click.echo("-" * 40)
    for lock in DatabaseLock:
        entries = by_lock.get(int(lock))
        status = ", ".join(entries) if entries else "free"
        click.echo(f"  {lock.name} ({int(lock)}): {status}")
    click.echo("-" * 40)


if __name__ == "__main__":
    main()
