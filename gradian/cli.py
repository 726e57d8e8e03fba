# gradian/cli.py
"""
🖥️ Gradian - Command Line Interface
═══════════════════════════════════════════════════════════════════════════════

Commands:
    runserver   Start the FastAPI server with uvicorn
    init        Create the data collections and seed default schemas
    config      Show the effective configuration and its validation status
    migrate     Apply the Alembic migrations for the database back end
    version     Show version information
"""

import asyncio
import json
import logging
import subprocess
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .application import GradianApplication
from .config import ConfigurationManager, DataSource, setup_logging
from .database import DatabaseError, MigrationManager
from .errors import DomainError
from .seed import load_defaults

logger = logging.getLogger(__name__)

console = Console()
app = typer.Typer(help="🏢 Gradian - schema-driven procurement backend")


def _load_settings(config_file: Optional[str] = None, env_file: Optional[str] = None):
    try:
        settings = ConfigurationManager().load_config(config_file, env_file)
    except ValueError as e:
        console.print(f"❌ [red]Invalid configuration:[/red] {e}")
        raise typer.Exit(1)
    setup_logging(settings.logging)
    return settings


# ═══════════════════════════════════════════════════════════════════════════════
# 🚀 RUNSERVER
# ═══════════════════════════════════════════════════════════════════════════════

@app.command("runserver")
def runserver(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Host address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port number"),
    reload: bool = typer.Option(False, "--reload/--no-reload", help="Auto reload"),
    workers: int = typer.Option(1, "--workers", "-w", help="Worker processes")
):
    """🚀 Start the API server"""
    settings = _load_settings()
    host = host or settings.host
    port = port or settings.port

    console.print(Panel.fit(
        f"🚀 Starting Gradian API Server\n"
        f"📍 Host: [bold green]{host}[/bold green]\n"
        f"🔌 Port: [bold blue]{port}[/bold blue]\n"
        f"🗄️ Data source: [bold cyan]{settings.storage.data_source.value}[/bold cyan]\n"
        f"🔄 Reload: [bold yellow]{reload}[/bold yellow]",
        title="🏢 Gradian API",
        border_style="green"
    ))

    cmd = [
        sys.executable, "-m", "uvicorn",
        "gradian.api:create_default_app", "--factory",
        "--host", host,
        "--port", str(port)
    ]
    if reload:
        cmd.append("--reload")
    else:
        cmd.extend(["--workers", str(workers)])

    try:
        subprocess.run(cmd, check=True)
    except subprocess.CalledProcessError as e:
        console.print(f"❌ [red]Server startup failed:[/red] {e}")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n🛑 [yellow]Server stopped by user[/yellow]")


# ═══════════════════════════════════════════════════════════════════════════════
# 🌱 INIT
# ═══════════════════════════════════════════════════════════════════════════════

async def _initialize(application: GradianApplication):
    await application.startup()
    return await application.seed(load_defaults())


@app.command("init")
def init(
    data_dir: Optional[str] = typer.Option(None, "--data-dir", "-d", help="Directory for JSON collections"),
    config_file: Optional[str] = typer.Option(None, "--config-file", "-c", help="Configuration file")
):
    """🌱 Create collections and seed default schemas, relation types and companies"""
    settings = _load_settings(config_file)
    if data_dir:
        settings.storage.data_dir = data_dir

    target = settings.database.url if settings.storage.data_source == DataSource.DATABASE else settings.storage.data_dir
    console.print(Panel.fit(
        f"🌱 Initializing Gradian data\n"
        f"🗄️ Data source: [bold cyan]{settings.storage.data_source.value}[/bold cyan]\n"
        f"📁 Target: [bold]{target}[/bold]",
        title="🏗️ Initialization",
        border_style="green"
    ))

    application = GradianApplication(settings)
    try:
        with console.status("[bold green]Seeding collections..."):
            seeded = asyncio.run(_initialize(application))
    except (DomainError, DatabaseError) as e:
        console.print(f"❌ [red]Initialization failed:[/red] {e}")
        logger.error(f"Init error: {e}")
        raise typer.Exit(1)
    finally:
        application.shutdown()

    if seeded:
        for collection, count in seeded.items():
            console.print(f"✅ Seeded [bold]{count}[/bold] item(s) into [cyan]{collection}[/cyan]")
    else:
        console.print("ℹ️ [yellow]All collections already contain data; nothing seeded[/yellow]")


# ═══════════════════════════════════════════════════════════════════════════════
# ⚙️ CONFIG
# ═══════════════════════════════════════════════════════════════════════════════

@app.command("config")
def show_config(
    config_file: Optional[str] = typer.Option(None, "--config-file", "-c", help="Configuration file"),
    as_json: bool = typer.Option(False, "--json", help="Print as JSON")
):
    """⚙️ Show the effective configuration"""
    settings = ConfigurationManager().load_config(config_file, validate=False)
    data = settings.to_dict()

    if as_json:
        console.print_json(json.dumps(data, default=str))
    else:
        table = Table(title="Gradian configuration")
        table.add_column("Setting", style="cyan")
        table.add_column("Value")
        for section, values in data.items():
            if isinstance(values, dict):
                for key, value in values.items():
                    table.add_row(f"{section}.{key}", str(value))
            else:
                table.add_row(section, str(values))
        console.print(table)

    style = "green" if settings.is_valid() else "red"
    console.print(Panel.fit(settings.get_validation_summary(), title="Validation", border_style=style))
    if not settings.is_valid():
        raise typer.Exit(1)


# ═══════════════════════════════════════════════════════════════════════════════
# 🗄️ MIGRATE
# ═══════════════════════════════════════════════════════════════════════════════

@app.command("migrate")
def migrate(
    revision: str = typer.Option("head", "--revision", "-r", help="Target revision")
):
    """🔧 Run database migrations"""
    settings = _load_settings()
    console.print(Panel.fit(
        f"🔧 Running database migrations to [bold]{revision}[/bold]",
        title="🗄️ Database Migration",
        border_style="cyan"
    ))

    try:
        with console.status("[bold green]Migrating database..."):
            MigrationManager(settings.database).run_migrations(revision)
    except DatabaseError as e:
        console.print(f"❌ [red]Migration failed:[/red] {e}")
        raise typer.Exit(1)

    console.print("✅ [green]Database migrations completed successfully![/green]")


# ═══════════════════════════════════════════════════════════════════════════════
# 📋 VERSION
# ═══════════════════════════════════════════════════════════════════════════════

@app.command("version")
def version():
    """📋 Show version information"""
    console.print(Panel.fit(
        f"🏢 [bold blue]Gradian[/bold blue] v{__version__}\n"
        f"🐍 Python {sys.version.split()[0]}",
        title="📋 Version Info",
        border_style="blue"
    ))


if __name__ == "__main__":
    app()
