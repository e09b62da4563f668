"""
Temporary staging files: gzip-compressed newline delimited JSON.
"""

import gzip
import io
import logging
import os
import re
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, Optional

from ..core.exceptions import StagingError
from ..core.models import Entity
from ..wire.namespaces import NamespaceContext
from ..wire.writer import write_staged_lines


logger = logging.getLogger(__name__)

STAGED_SUFFIX = ".ndjson.gz"


def _sanitize_prefix(dataset: str) -> str:
    return re.sub(r"[^A-Za-z0-9_]", "_", dataset)[:64]


@contextmanager
def staging_file(dataset: str, tmp_dir: Optional[Path] = None) -> Iterator[Path]:
    """
    Create a uniquely named temporary file that is removed on exit.

    The name starts with the dataset and a nanosecond timestamp so staged
    files of one dataset sort in flush order.
    """
    prefix = f"{_sanitize_prefix(dataset)}_{time.time_ns():020d}_"
    try:
        fd, name = tempfile.mkstemp(prefix=prefix, suffix=STAGED_SUFFIX, dir=tmp_dir)
        os.close(fd)
    except OSError as e:
        raise StagingError(f"Failed to create staging file for {dataset}: {e}") from e

    path = Path(name)
    try:
        yield path
    finally:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove staging file {path}: {e}")


def write_gzipped_ndjson(path: Path, entities: Iterable[Entity], context: NamespaceContext) -> int:
    """
    Write entities as gzip-compressed NDJSON.

    Returns:
        Number of lines written
    """
    try:
        with gzip.open(path, "wb") as raw:
            with io.TextIOWrapper(raw, encoding="utf-8", newline="\n") as out:
                count = write_staged_lines(out, entities, context)
    except OSError as e:
        raise StagingError(f"Failed to write staging file {path}: {e}") from e
    logger.debug(f"Wrote {count} entities to {path}")
    return count
