from pathlib import Path
import sys

import typer
from alembic import command
from alembic.config import Config
from sqlalchemy.orm import Session
from mepcalls.core.config import settings
from mepcalls.core.database import SessionLocal
from mepcalls.core.logging import configure_logging
from mepcalls.device.agent import build_runtime
from mepcalls.device.config import device_settings
from mepcalls.device.dispatcher import SyncOutcome
from mepcalls.device.exceptions import CallSyncError
from mepcalls.device.models import SyncState
from mepcalls.models import Role
from mepcalls.services.bootstrap import ensure_user, seed_defaults

app = typer.Typer()
device = typer.Typer(help="Run the call capture and sync pipeline on this machine.")
app.add_typer(device, name="device")


@app.callback()
def main(log_level: str = typer.Option(None, help="Override LOG_LEVEL")):
    configure_logging(log_level)


@app.command()
def create_admin(name: str = "Admin User", phone: str = typer.Option(...), password: str = typer.Option(...)):
    db: Session = SessionLocal()
    try:
        if ensure_user(db, name, phone, password, Role.ADMIN):
            typer.echo("Admin created")
        else:
            typer.echo("Admin already exists")
    finally:
        db.close()


@app.command()
def seed():
    db: Session = SessionLocal()
    try:
        seed_defaults(db)
        typer.echo("Defaults seeded")
    finally:
        db.close()


@app.command()
def migrate(revision: str = "head"):
    alembic_ini = Path(__file__).resolve().parents[1] / "alembic.ini"
    config = Config(str(alembic_ini))
    config.set_main_option("sqlalchemy.url", settings.database_url)
    command.upgrade(config, revision)
    typer.echo(f"Database upgraded to {revision}")


@device.command("login")
def device_login(phone: str = typer.Option(...), password: str = typer.Option(..., prompt=True, hide_input=True)):
    runtime = build_runtime(device_settings)
    try:
        session = runtime.agent.login(phone, password)
    except CallSyncError as exc:
        typer.echo(f"Login failed: {exc}", err=True)
        raise typer.Exit(code=1)
    finally:
        runtime.ticker.cancel()
    typer.echo(f"Signed in as staff {session.staff_id} ({session.staff_name or phone})")


@device.command("logout")
def device_logout():
    runtime = build_runtime(device_settings)
    runtime.agent.logout()
    typer.echo("Signed out")


@device.command("sync")
def device_sync():
    runtime = build_runtime(device_settings)
    try:
        result = runtime.agent.on_foreground()
    finally:
        runtime.ticker.cancel()
    typer.echo(f"{result.outcome.value}: attempted={result.attempted} synced={result.synced}")
    if result.outcome is SyncOutcome.FAILED:
        raise typer.Exit(code=1)


@device.command("pending")
def device_pending():
    runtime = build_runtime(device_settings)
    pending = runtime.queue.count(SyncState.PENDING)
    synced = runtime.queue.count(SyncState.SYNCED)
    typer.echo(f"pending={pending} synced={synced}")


@device.command("recent")
def device_recent(limit: int = 20):
    runtime = build_runtime(device_settings)
    for record in runtime.queue.recent(limit):
        typer.echo(
            f"{record.captured_at.isoformat()}  {record.call_type.value:<8}  {record.phone_number:<16}  "
            f"{record.duration_seconds:>5}s  {record.sync_state.value}"
        )


@device.command("run")
def device_run():
    """Read telephony states (IDLE, RINGING <number>, OFFHOOK) or FOREGROUND from stdin."""
    runtime = build_runtime(device_settings)
    runtime.agent.start()
    runtime.agent.on_foreground()
    try:
        for line in sys.stdin:
            parts = line.split()
            if not parts:
                continue
            if parts[0].upper() == "FOREGROUND":
                runtime.agent.on_foreground()
                continue
            record = runtime.capturer.on_state(parts[0].upper(), parts[1] if len(parts) > 1 else None)
            if record:
                typer.echo(f"queued {record.provider_call_id} {record.call_type.value} {record.duration_seconds}s")
    except KeyboardInterrupt:
        pass
    finally:
        runtime.ticker.cancel()


if __name__ == "__main__":
    app()
