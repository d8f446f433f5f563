"""Pytest configuration for test isolation.

The engine resolves its catalog and mapping files relative to the working
directory (``./``, ``./config``, ``./database``) and ``~/.config``, reads
``OPENAI_API_KEY`` and ``STATEMENT_CATEGORIZER_*`` variables, and the CLI loads
``./.env``. To keep tests hermetic, every test runs in its own temporary
working directory with a temporary home and a scrubbed environment.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

# Make sure the workspace `packages/` dir is on sys.path so `statement_categorizer`
# is importable, and the repo root so `tests.helpers` is.
_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

from statement_categorizer import logging_setup  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run each test in a fresh cwd/home with no credentials or overrides."""

    work = tmp_path / "work"
    home = tmp_path / "home"
    work.mkdir()
    home.mkdir()
    monkeypatch.chdir(work)
    monkeypatch.setenv("HOME", os.fspath(home))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    for name in list(os.environ):
        if name.startswith("STATEMENT_CATEGORIZER_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    """Undo ``configure_logging`` so CLI tests don't leak handlers bound to closed streams."""

    yield
    pkg_logger = logging.getLogger("statement_categorizer")
    for h in list(pkg_logger.handlers):
        pkg_logger.removeHandler(h)
    pkg_logger.propagate = True
    pkg_logger.setLevel(logging.NOTSET)
    logging_setup._CONFIGURED = False
