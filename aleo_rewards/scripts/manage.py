"""
Command line interface for the rewards indexer.
"""

import asyncio
import sys

import typer
import uvicorn
from rich.console import Console

from aleo_rewards.core.config import load_settings
from aleo_rewards.core.database import Database, DatabaseManager
from aleo_rewards.core.exceptions import AleoRewardsException
from aleo_rewards.core.logging import setup_logging
from aleo_rewards.indexer.height_cursor import HeightCursor

console = Console()
app = typer.Typer(help="Aleo coinbase rewards indexer")
sync_app = typer.Typer(help="Sync blocks")
cursor_app = typer.Typer(help="Check or update the block height file")
api_app = typer.Typer(help="Rewards query API")
db_app = typer.Typer(help="Database management")

app.add_typer(sync_app, name="sync")
app.add_typer(cursor_app, name="cursor")
app.add_typer(api_app, name="api")
app.add_typer(db_app, name="db")


@sync_app.command("start")
def sync_start(config: str = typer.Option("config.yml", "--config", help="YAML config file")):
    """Catch up on historical blocks, then follow the chain tip."""
    from aleo_rewards.indexer.main import main

    try:
        asyncio.run(main(config))
    except AleoRewardsException as e:
        console.print(f"❌ {e.message}")
        sys.exit(1)


@cursor_app.command("check")
def cursor_check(file: str = typer.Option("block_height.sync", "--file", help="Height file")):
    """Print the height stored in the height file."""
    try:
        height = HeightCursor(file).read()
    except AleoRewardsException as e:
        console.print(f"❌ {e.message}")
        sys.exit(1)

    if height is None:
        console.print(f"❌ Height file not found: {file}")
        sys.exit(1)
    console.print(f"get latest_height {height} from file")


@cursor_app.command("update")
def cursor_update(
    height: int = typer.Option(..., "--height", help="New height"),
    file: str = typer.Option("block_height.sync", "--file", help="Height file"),
):
    """Overwrite the height stored in the height file."""
    try:
        HeightCursor(file).write(height)
    except AleoRewardsException as e:
        console.print(f"❌ {e.message}")
        sys.exit(1)
    console.print(f"✅ Height file {file} set to {height}")


@api_app.command("start")
def api_start(config: str = typer.Option("config.yml", "--config", help="YAML config file")):
    """Serve recorded rewards over HTTP."""
    from aleo_rewards.api.main import create_app

    settings = load_settings(config)
    setup_logging(config=settings)
    uvicorn.run(create_app(config=settings), host=settings.api_host, port=settings.api_port)


@db_app.command("init")
def db_init(config: str = typer.Option("config.yml", "--config", help="YAML config file")):
    """Create the reward tables."""
    async def _init():
        settings = load_settings(config)
        setup_logging(config=settings)
        database = Database(config=settings)
        await DatabaseManager.create_tables(database)
        await database.close()
        console.print("✅ Database initialized successfully!")

    asyncio.run(_init())


if __name__ == "__main__":
    app()
