# ruff: noqa: I001
"""CLI for the ``statement_categorizer`` package.

This module exposes callable command handlers (``cmd_categorize``,
``cmd_categorize_csv``, ``cmd_list_categories``) returning process exit codes,
and a Typer-based console interface around them. Environment variables
(notably ``OPENAI_API_KEY``) are loaded from a local ``.env`` using
``python-dotenv`` before any command runs. Business logic lives in
``statement_categorizer.engine`` and ``statement_categorizer.batch``.
"""

from __future__ import annotations

import csv
import sys
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .catalog import CategoryCatalog
from .config import load_settings
from .engine import CategorizationEngine
from .errors import ConfigurationError, PersistenceError
from .logging_setup import configure_logging, get_logger
from .models import ClassificationRequest

_logger = get_logger("statement_categorizer.cli")


def _build_engine(config_path: Path | None) -> CategorizationEngine:
    settings = load_settings(config_path)
    return CategorizationEngine.from_settings(settings)


# ---- Command handlers --------------------------------------------------------


def cmd_categorize(
    request: ClassificationRequest,
    *,
    config_path: Path | None = None,
) -> int:
    """Categorize one party, print the category name and save the mappings."""

    try:
        engine = _build_engine(config_path)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    outcome = engine.categorize(request)
    if outcome.error is not None:
        _logger.warning(
            "cli:categorize_degraded party=%s error=%s", request.party_name, outcome.error
        )

    try:
        engine.save_all()
    except PersistenceError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(outcome.category.name)
    return 0


def cmd_categorize_csv(
    csv_path: Path,
    *,
    concurrency: int = 1,
    config_path: Path | None = None,
) -> int:
    """Categorize every CSV row; print ``<party>\\t<category>`` per row in input order."""

    # Deferred imports keep `list-categories` startup minimal
    from .batch import categorize_batch
    from .ingest.csv_rows import load_requests_from_csv

    try:
        requests = load_requests_from_csv(csv_path)
    except FileNotFoundError:
        print(f"Error: File not found: {csv_path}", file=sys.stderr)
        return 1
    except PermissionError:
        print(f"Error: Permission denied: {csv_path}", file=sys.stderr)
        return 1
    except (csv.Error, UnicodeDecodeError) as e:
        print(f"Error: Failed to parse CSV: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: Failed to read '{csv_path}': {e}", file=sys.stderr)
        return 1

    try:
        engine = _build_engine(config_path)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    result = categorize_batch(engine, requests, concurrency=concurrency, source=csv_path.name)

    try:
        engine.save_all()
    except PersistenceError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    for req, outcome in zip(requests, result.outcomes, strict=True):
        print(f"{req.party_name}\t{outcome.category.name}")

    s = result.stats
    print(
        f"Processed {s.total} transactions: successful={s.successful} "
        f"uncategorized={s.uncategorized} failed={s.failed} "
        f"success_rate={s.success_rate:.1f}%",
        file=sys.stderr,
    )
    return 0


def cmd_list_categories(*, config_path: Path | None = None) -> int:
    try:
        settings = load_settings(config_path)
        catalog = CategoryCatalog.load(settings.categories_path())
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    for name in catalog.names():
        print(name)
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Categorize bank and card transactions by counterparty: learned mappings first, "
        "then catalog keywords, then OpenAI. Loads OPENAI_API_KEY from a local .env."
    ),
)


def _exit(code: int) -> None:
    if code != 0:
        raise typer.Exit(code)


# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults). Typer inspects these when used as default values below.
CSV_PATH_OPTION: OptionInfo = typer.Option(
    ...,  # required
    "--csv-path",
    help="Path to a CSV with Party, Amount, Date, Info (and optional Direction) columns",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports missing files itself
)


@app.command("categorize")
def categorize_cmd(
    ctx: typer.Context,
    *,
    party: str = typer.Option(..., "--party", help="Counterparty name to categorize."),
    debtor: bool = typer.Option(
        False, "--debtor", help="Money was paid to the party (uses the debitor mappings)."
    ),
    amount: str = typer.Option("", help="Transaction amount (context for the AI tier)."),
    date: str = typer.Option("", help="Transaction date (context for the AI tier)."),
    info: str = typer.Option("", help="Free-text transaction details."),
) -> None:
    """Categorize a single party and print the category name."""

    request = ClassificationRequest(
        party_name=party, is_debtor=debtor, amount=amount, date=date, info=info
    )
    _exit(cmd_categorize(request, config_path=ctx.obj.get("config_path")))


@app.command("categorize-csv")
def categorize_csv_cmd(
    ctx: typer.Context,
    csv_path: Annotated[Path, CSV_PATH_OPTION],
    *,
    concurrency: int = typer.Option(
        1, min=1, max=32, help="Number of transactions categorized in parallel."
    ),
) -> None:
    """Categorize every row of a CSV file."""

    _exit(
        cmd_categorize_csv(
            csv_path, concurrency=concurrency, config_path=ctx.obj.get("config_path")
        )
    )


@app.command("list-categories")
def list_categories_cmd(ctx: typer.Context) -> None:
    """Print the catalog's category names in order."""

    _exit(cmd_list_categories(config_path=ctx.obj.get("config_path")))


@app.callback()
def _root(
    ctx: typer.Context,
    *,
    config: Path | None = typer.Option(
        None,
        "--config",
        help="YAML config file (defaults to ./config.yaml when present).",
        dir_okay=False,
    ),
    log_level: str | None = typer.Option(
        None, "--log-level", help="Logging level (falls back to STATEMENT_CATEGORIZER_LOG_LEVEL)."
    ),
    log_format: str | None = typer.Option(
        None, "--log-format", help="Log line format: text or json."
    ),
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    # Central logging setup so child loggers inherit configuration
    if log_format is not None and log_format.lower() not in ("text", "json"):
        raise typer.BadParameter("must be text or json", param_hint="--log-format")
    configure_logging(log_level, log_format=log_format.lower() if log_format else None)

    ctx.obj = {"config_path": config}


if __name__ == "__main__":  # pragma: no cover
    # Running as a module: `python -m statement_categorizer.cli`
    app()
