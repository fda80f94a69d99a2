from __future__ import annotations

import importlib.metadata
import logging
from typing import NoReturn, Optional

import typer

logger = logging.getLogger("monkey_bytes.cli")


def get_version() -> str:
    try:
        return importlib.metadata.version("monkey-bytes")
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def raise_exit(message: str, *, cause: Optional[BaseException] = None) -> NoReturn:
    typer.echo(message, err=True)
    if cause is not None:
        raise typer.Exit(code=1) from cause
    raise typer.Exit(code=1)
