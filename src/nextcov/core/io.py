"""Asynchronous file access.

Reads and writes run on the default executor so a batch can await many of
them while the event loop stays free. File I/O is the only suspension point
in a processing run.
"""

from __future__ import annotations

import asyncio
import json
from functools import partial
from pathlib import Path
from typing import Any

from nextcov.core.errors import CoverageInputError


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def _write_text(path: Path, text: str) -> None:
    path.write_text(text, encoding="utf-8")


async def read_text(path: Path) -> str:
    """Read a UTF-8 file. Raises OSError/UnicodeDecodeError like ``Path.read_text``."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, _read_text, path)


async def read_json(path: Path) -> Any:
    """Read and decode a JSON file.

    Raises:
        CoverageInputError: If the file cannot be read or is not valid JSON.
    """
    try:
        text = await read_text(path)
        return json.loads(text)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CoverageInputError.malformed(str(path), str(e)) from e


async def write_text(path: Path, text: str) -> None:
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, partial(_write_text, path, text))


async def write_json(path: Path, data: Any) -> None:
    await write_text(path, json.dumps(data, indent=2))
