"""
Memory headroom check based on cgroup accounting.

Requests are rejected while the container is close to its memory limit,
so a large write does not get the process killed halfway through.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple

from .core.exceptions import MemoryHeadroomError


logger = logging.getLogger(__name__)

MB = 1024 * 1024
DEFAULT_HEADROOM_MB = 500

# (limit file, usage file): cgroup v2 first, then v1
CGROUP_FILES: Sequence[Tuple[str, str]] = (
    ("/sys/fs/cgroup/memory.max", "/sys/fs/cgroup/memory.current"),
    (
        "/sys/fs/cgroup/memory/memory.limit_in_bytes",
        "/sys/fs/cgroup/memory/memory.usage_in_bytes",
    ),
)


@dataclass
class MemoryStats:
    """
    Memory limit and usage in bytes.

    Attributes:
        limit: Memory limit of the cgroup
        current: Current usage
    """
    limit: int
    current: int

    @property
    def headroom(self) -> int:
        return self.limit - self.current


def _read_int(path: Path) -> Optional[int]:
    try:
        text = path.read_text().strip()
    except OSError:
        return None
    if not text or text == "max":
        return None
    try:
        return int(text)
    except ValueError:
        return None


def read_memory_stats(files: Sequence[Tuple[str, str]] = CGROUP_FILES) -> Optional[MemoryStats]:
    """
    Read memory stats from the first readable cgroup file pair.

    Returns None outside a memory-limited cgroup.
    """
    for limit_file, usage_file in files:
        limit = _read_int(Path(limit_file))
        current = _read_int(Path(usage_file))
        if limit is not None and current is not None:
            return MemoryStats(limit=limit, current=current)
    return None


class MemoryGuard:
    """Rejects work when free memory drops below headroom_mb."""

    def __init__(self, headroom_mb: int = DEFAULT_HEADROOM_MB, files: Sequence[Tuple[str, str]] = CGROUP_FILES):
        self.headroom_mb = headroom_mb
        self.files = files

    def check(self) -> Optional[MemoryStats]:
        """
        Raise MemoryHeadroomError if headroom is too low.

        Returns:
            The stats read, or None outside a memory-limited cgroup
        """
        stats = read_memory_stats(self.files)
        if stats is None:
            return None
        if stats.headroom < self.headroom_mb * MB:
            logger.warning(
                f"Memory headroom {stats.headroom // MB}MB below {self.headroom_mb}MB "
                f"(limit {stats.limit // MB}MB, used {stats.current // MB}MB)"
            )
            raise MemoryHeadroomError(
                f"Not enough memory headroom: {stats.headroom // MB}MB free, "
                f"{self.headroom_mb}MB required"
            )
        return stats
