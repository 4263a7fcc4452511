from __future__ import annotations

import os
import sqlite3
import uuid
from pathlib import Path
from typing import Iterator, List

from .logutil import logger
from .models import LibraryInfo

METADATA_DB = "metadata.db"
MAX_DEPTH = 2


def library_id_for(path: Path | str) -> str:
    """Stable id for a library: the same path always maps to the same id."""
    return str(uuid.uuid5(uuid.NAMESPACE_DNS, str(path)))


def iter_library_dirs(root: Path, max_depth: int = MAX_DEPTH) -> Iterator[Path]:
    root = Path(root)
    if not root.exists():
        return
    base_depth = len(root.parts)
    for dirpath, dirnames, filenames in os.walk(root):
        # skip hidden dirs
        dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
        if len(Path(dirpath).parts) - base_depth >= max_depth:
            dirnames[:] = []
        if METADATA_DB in filenames:
            yield Path(dirpath)


def count_books(metadata_db: Path) -> int:
    try:
        conn = sqlite3.connect(metadata_db.resolve().as_uri() + "?mode=ro", uri=True)
        try:
            return int(conn.execute("SELECT COUNT(*) FROM books").fetchone()[0])
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("Cannot count books in {}: {}", metadata_db, e)
        return 0


def scan_libraries(root: Path | str) -> List[LibraryInfo]:
    libraries = []
    for path in iter_library_dirs(Path(root)):
        db_path = path / METADATA_DB
        libraries.append(
            LibraryInfo(
                id=library_id_for(path),
                name=path.name,
                path=str(path),
                metadata_db=str(db_path),
                record_count=count_books(db_path),
            )
        )
    libraries.sort(key=lambda lib: lib.name)
    logger.info("Found {} libraries under {}", len(libraries), root)
    return libraries
