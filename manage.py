import asyncio
import json
from pathlib import Path
import subprocess

from rich import print
from sqlalchemy.exc import SQLAlchemyError
import typer

from expense_tracker.core.config import settings

app = typer.Typer()


async def init_db_task() -> None:
    """
    Create every table that does not exist yet.

    Raises:
        typer.Exit: If the database cannot be reached or the DDL fails.
    """
    from expense_tracker.core.db import dispose_db, init_db

    print("[yellow]Creating database tables[/yellow]")
    try:
        await init_db()
        print("[green]Database tables created[/green]")
    except SQLAlchemyError as e:
        print(f"[red]Error creating database tables:[/red] {str(e)}")
        raise typer.Exit(1)
    finally:
        await dispose_db()


async def purge_expired_task() -> None:
    """Run the expired OTP challenge and refresh token sweeps once."""
    from expense_tracker.core.db import dispose_db
    from expense_tracker.infrastructure.scheduler.jobs import (
        cleanup_expired_refresh_tokens,
        purge_expired_otp_challenges,
    )

    try:
        challenges = await purge_expired_otp_challenges()
        print(f"[green]Deleted {challenges} expired OTP challenge(s)[/green]")
        tokens = await cleanup_expired_refresh_tokens()
        print(f"[green]Deleted {tokens} expired refresh token(s)[/green]")
    except SQLAlchemyError as e:
        print(f"[red]Error purging expired records:[/red] {str(e)}")
        raise typer.Exit(1)
    finally:
        await dispose_db()


@app.command()
def initdb():
    """
    Creates the database tables for all models.

    Usage:
        python manage.py initdb
    """
    asyncio.run(init_db_task())


@app.command()
def purgeexpired():
    """
    Deletes expired OTP challenges and refresh tokens immediately, without
    waiting for the scheduler.

    Usage:
        python manage.py purgeexpired
    """
    asyncio.run(purge_expired_task())


@app.command()
def runserver():
    try:
        server_command = (
            "uvicorn expense_tracker.main:app --host 127.0.0.1 --port 8000 --reload"
            if settings.DEBUG
            else "uvicorn expense_tracker.main:app --host 0.0.0.0 --port 8000"
        )
        print(f"Running FastAPI server: {server_command}")
        subprocess.run(server_command, shell=True, check=True)
    except subprocess.CalledProcessError as e:
        print(f"[red]Error:[/red] {e}")
        raise


@app.command()
def runscheduler():
    """
    Run the cleanup scheduler as a standalone process.
    """
    from expense_tracker.infrastructure.scheduler.main import main

    asyncio.run(main())


@app.command()
def generateopenapi():
    """
    Generates the OpenAPI schema for the FastAPI application and saves it to
    openapi.json.
    """
    from expense_tracker.main import app as fastapi_app

    openapi_path = Path("openapi.json")
    with openapi_path.open("w", encoding="utf-8") as f:
        json.dump(fastapi_app.openapi(), f, ensure_ascii=False, indent=2)
    print(f"[green]OpenAPI schema generated at {openapi_path.name}[/green]")


if __name__ == "__main__":
    app()
