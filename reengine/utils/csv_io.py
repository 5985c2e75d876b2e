"""Delimited table I/O with atomic replace semantics."""
from __future__ import annotations

import asyncio
import csv
import io
import os
import uuid
from pathlib import Path
from typing import Dict, List, Mapping, Sequence, Tuple, Union

from reengine.core.logging import get_structlog_logger

logger = get_structlog_logger(__name__)

PathLike = Union[str, Path]
Row = Dict[str, str]


def parse(text: str, delimiter: str = ",") -> Tuple[List[str], List[Row]]:
    """
    Parse table text into (headers, rows).

    Quoted fields may contain the delimiter, quotes ("") and newlines.
    Blank lines are skipped. Header names are stripped; cell values are kept
    exactly as written.
    """
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter)

    headers: List[str] = []
    rows: List[Row] = []
    for cells in reader:
        if not cells or not any(c.strip() for c in cells):
            continue
        if not headers:
            headers = [h.strip() for h in cells]
            continue
        rows.append({h: (cells[i] if i < len(cells) else "") for i, h in enumerate(headers)})

    return headers, rows


def serialize(headers: Sequence[str], rows: Sequence[Mapping[str, object]], delimiter: str = ",") -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=delimiter, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    writer.writerow(list(headers))
    for row in rows:
        writer.writerow(["" if row.get(h) is None else str(row.get(h)) for h in headers])
    return buf.getvalue()


def atomic_write_text(path: PathLike, content: str) -> None:
    """Write to a temporary sibling then rename over the target."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.parent / f".tmp_{target.name}_{uuid.uuid4().hex}"

    try:
        with open(tmp, "w", encoding="utf-8", newline="") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, target)
    except BaseException:
        if tmp.exists():
            tmp.unlink()
        raise


def read_text(path: PathLike) -> str:
    with open(path, encoding="utf-8", newline="") as f:
        return f.read()


async def _run(func, *args):
    return await asyncio.get_running_loop().run_in_executor(None, func, *args)


async def write(path: PathLike, content: str) -> None:
    await _run(atomic_write_text, path, content)


async def read(path: PathLike) -> str:
    return await _run(read_text, path)


async def file_exists(path: PathLike) -> bool:
    return await _run(os.path.exists, path)


async def ensure_table(path: PathLike, headers: Sequence[str]) -> bool:
    """Create an empty table with its header row if missing. Returns True if created."""
    if await file_exists(path):
        return False
    await write(path, serialize(headers, []))
    logger.info("csv_io.table_created", path=str(path))
    return True
