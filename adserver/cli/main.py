"""
adserver — command-line host for the ad registry.

Drives the registry entry points against an SQLite-backed store so state
survives between invocations. Every command prints JSON on stdout; domain
errors print `{"ok": false, "error": {...}}` and exit with status 1.

Commands:
  adserver init                                 Write a fresh, empty registry
  adserver add ID IMAGE_URL TARGET_URL REWARD   Register an ad
  adserver serve ID                             Count one impression
  adserver delete ID                            Remove an ad
  adserver batch-serve ID [ID...]               Serve several ads (unknown ids skipped)
  adserver get ID                               Show one ad
  adserver list                                 Show all ads in insertion order
  adserver total-views                          Show the cumulative view counter
  adserver execute MSG_JSON                     Run a raw execute message
  adserver query MSG_JSON                       Run a raw query message
  adserver schema [NAME]                        Print JSON Schemas
  adserver version                              Print the package version

Examples:
  adserver --db ./ads.db init
  adserver --db ./ads.db add a1 https://example.com/a1.png https://example.com r1
  adserver --db ./ads.db execute '{"batch_serve_ads": {"ids": ["a1", "a1"]}}'
  adserver --db ./ads.db query '"total_views"'
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional

import typer

from .. import contract
from .. import logging as alog
from ..config import load_config
from ..errors import AdServerError, error_to_result_fields
from ..msg import check_text
from ..schema import all_schemas, get_schema
from ..storage import SQLiteStorage, open_sqlite_storage
from ..version import __version__

app = typer.Typer(
    name="adserver",
    help="Advertisement registry: add, serve, delete and query ads.",
    no_args_is_help=True,
    add_completion=False,
)

log = alog.get_logger("adserver.cli")


class GlobalContext:
    def __init__(self) -> None:
        self.db: Optional[Path] = None


_ctx = GlobalContext()


@app.callback()
def main_callback(
    db: Optional[Path] = typer.Option(
        None,
        "--db",
        help="SQLite file holding the registry (default: ADSERVER_DB or ./adserver.db)",
        envvar="ADSERVER_DB",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Minimum log level (default: ADSERVER_LOG_LEVEL or INFO)",
    ),
    log_format: Optional[str] = typer.Option(
        None,
        "--log-format",
        help="json or text (default: ADSERVER_LOG_FORMAT, else JSON when not a TTY)",
    ),
) -> None:
    """
    Registry host. Logs go to stderr; results go to stdout as JSON.
    """
    cfg = load_config()
    _ctx.db = db or cfg.db_path
    fmt = (log_format or cfg.log_format or "").lower()
    json_flag = {"json": True, "text": False}.get(fmt)
    alog.configure(json=json_flag, level=log_level or cfg.log_level)


# ----------------------------- helpers -----------------------------


def _pretty(obj: Any) -> str:
    return json.dumps(obj, indent=2, ensure_ascii=False)


@contextmanager
def _open_store() -> Iterator[SQLiteStorage]:
    store = open_sqlite_storage(_ctx.db or load_config().db_path)
    try:
        yield store
    finally:
        store.close()


def _run(fn: Callable[[SQLiteStorage], Any], *args: str) -> None:
    """
    Run `fn` against the store; print its result or the error envelope.
    `args` are the raw text arguments, checked before the store is opened.
    """
    with alog.trace_scope():
        try:
            for a in args:
                check_text(a, "argument")
            with _open_store() as store:
                out = fn(store)
        except AdServerError as e:
            log.debug("command failed", extra={"code": e.code})
            typer.echo(_pretty(error_to_result_fields(e)))
            raise typer.Exit(1)
    typer.echo(_pretty(out))


def _command_result(resp: Any) -> dict:
    return {"ok": True, **resp.to_dict()}


def _query_result(raw: bytes) -> Any:
    return json.loads(raw.decode("utf-8"))


# ----------------------------- commands -----------------------------


@app.command()
def init() -> None:
    """Write a fresh, empty registry (wipes existing data)."""
    _run(lambda s: _command_result(contract.instantiate(s)))


@app.command()
def add(
    id: str = typer.Argument(..., help="Unique ad id"),
    image_url: str = typer.Argument(..., help="Image to display"),
    target_url: str = typer.Argument(..., help="Click-through target"),
    reward_address: str = typer.Argument(..., help="Opaque reward address (stored only)"),
) -> None:
    """Register a new ad."""
    _run(
        lambda s: _command_result(contract.add_ad(s, id, image_url, target_url, reward_address)),
        id,
        image_url,
        target_url,
        reward_address,
    )


@app.command()
def serve(id: str = typer.Argument(..., help="Ad id")) -> None:
    """Count one impression of an ad."""
    _run(lambda s: _command_result(contract.serve_ad(s, id)), id)


@app.command()
def delete(id: str = typer.Argument(..., help="Ad id")) -> None:
    """Remove an ad (total views are kept)."""
    _run(lambda s: _command_result(contract.delete_ad(s, id)), id)


@app.command("batch-serve")
def batch_serve(ids: List[str] = typer.Argument(..., help="Ad ids, served in order")) -> None:
    """Serve several ads at once; unknown ids are skipped."""
    _run(lambda s: _command_result(contract.batch_serve_ads(s, ids)), *ids)


@app.command()
def get(id: str = typer.Argument(..., help="Ad id")) -> None:
    """Show one ad."""
    _run(lambda s: contract.query_ad(s, id).to_dict(), id)


@app.command("list")
def list_ads() -> None:
    """Show all ads in insertion order."""
    _run(lambda s: contract.query_all_ads(s).to_dict())


@app.command("total-views")
def total_views() -> None:
    """Show the cumulative view counter."""
    _run(lambda s: contract.query_total_views(s).to_dict())


@app.command()
def execute(msg: str = typer.Argument(..., help='Execute message JSON, e.g. \'{"serve_ad": {"id": "a1"}}\'')) -> None:
    """Run a raw execute message."""
    _run(lambda s: _command_result(contract.execute_json(s, msg)), msg)


@app.command()
def query(msg: str = typer.Argument(..., help='Query message JSON, e.g. \'"ads"\' or \'{"ad": {"id": "a1"}}\'')) -> None:
    """Run a raw query message."""
    _run(lambda s: _query_result(contract.query_json(s, msg)), msg)


@app.command()
def schema(name: Optional[str] = typer.Argument(None, help="Schema name; all when omitted")) -> None:
    """Print the JSON Schemas of the wire messages."""
    if name is None:
        typer.echo(_pretty(all_schemas()))
        return
    try:
        typer.echo(_pretty(get_schema(name)))
    except KeyError as e:
        typer.echo(str(e.args[0]), err=True)
        raise typer.Exit(2)


@app.command()
def version() -> None:
    """Print the package version."""
    typer.echo(__version__)


def main() -> None:
    """Entry point for the adserver CLI."""
    app()


if __name__ == "__main__":
    main()
