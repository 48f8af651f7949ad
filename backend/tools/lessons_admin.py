"""Operator command line for the lessons backend.

Why:
    Schema setup, sharing a lesson with another account and minting a local
    development token are operator tasks without an HTTP endpoint. The CLI
    reuses the same storage handle, repository and token helpers as the web
    app so behaviour stays identical.
Behaviour:
    - ``migrate`` applies ``backend/scheduling/migrations/*.sql`` in name order
      inside one transaction (the files are idempotent).
    - ``grant`` upserts a read or read-write grant for an existing lesson.
    - ``issue-token`` prints a signed bearer token; refused in prod-like envs.
"""
from __future__ import annotations

from pathlib import Path

import click

from backend.identity_access.tokens import issue_access_token, load_token_config
from backend.scheduling.db import Database
from backend.scheduling.errors import StorageError
from backend.scheduling.permissions import PermissionType
from backend.scheduling.repo_db import DBLessonRepo
from backend.web import config as _cfg

MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "scheduling" / "migrations"


def _open_db(db_dsn: str | None) -> Database:
    try:
        return Database(db_dsn).open(probe=True)
    except (StorageError, RuntimeError) as exc:
        click.echo(f"Database unavailable: {exc}", err=True)
        raise click.Abort() from exc


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
def cli() -> None:
    """Administrative tasks for the lessons backend."""


@cli.command()
@click.option("--db-dsn", required=False, help="Connection string (defaults to LESSONS_DATABASE_URL/DATABASE_URL).")
def migrate(db_dsn: str | None) -> None:
    """Apply the lessons schema migrations."""
    files = sorted(MIGRATIONS_DIR.glob("*.sql"))
    db = _open_db(db_dsn)
    try:
        with db.transaction() as cur:
            for path in files:
                click.echo(f"Applying {path.name}")
                cur.execute(path.read_text(encoding="utf-8"))
    except StorageError as exc:
        click.echo(f"Migration failed and was rolled back ({exc.code})", err=True)
        raise click.Abort() from exc
    finally:
        db.close()
    click.echo(f"Applied {len(files)} migration(s)")


@cli.command()
@click.option("--db-dsn", required=False, help="Connection string (defaults to LESSONS_DATABASE_URL/DATABASE_URL).")
@click.option(
    "--permission",
    type=click.Choice([p.value for p in PermissionType]),
    default=PermissionType.READ.value,
    show_default=True,
    help="Grant kind: r (read) or rw (read-write).",
)
@click.argument("lesson_id")
@click.argument("account_id")
def grant(db_dsn: str | None, permission: str, lesson_id: str, account_id: str) -> None:
    """Grant ACCOUNT_ID access to LESSON_ID (replaces an existing grant)."""
    db = _open_db(db_dsn)
    repo = DBLessonRepo(db)
    try:
        if not repo.lesson_exists(lesson_id):
            click.echo(f"Lesson {lesson_id} not found", err=True)
            raise click.Abort()
        repo.grant_permission(lesson_id, account_id, PermissionType(permission))
    except StorageError as exc:
        click.echo(f"Grant failed ({exc.code})", err=True)
        raise click.Abort() from exc
    finally:
        db.close()
    click.echo(f"Granted {permission} on {lesson_id} to {account_id}")


@cli.command("issue-token")
@click.option("--ttl", type=int, default=3600, show_default=True, help="Lifetime in seconds.")
@click.argument("account_id")
def issue_token(ttl: int, account_id: str) -> None:
    """Print a bearer token for ACCOUNT_ID signed with LESSONS_JWT_SECRET."""
    if _cfg._is_prod_like(_cfg.current_environment()):
        click.echo("Refusing to mint tokens in a production-like environment.", err=True)
        raise click.Abort()
    click.echo(issue_access_token(account_id, load_token_config(), ttl_seconds=ttl))


if __name__ == "__main__":  # pragma: no cover
    cli()
