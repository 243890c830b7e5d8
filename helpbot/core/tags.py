"""
Tag Table

Loads the help tag data file into an immutable snapshot and keeps the
current snapshot available to the resolver. The file holds one record per
line, `<tag> <file.txt>`, separated by whitespace. Any further columns are
ignored.
"""

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Tuple, Union

from ..exceptions import TagTableError

logger = logging.getLogger(__name__)

DOC_SUFFIX = ".txt"


@dataclass(frozen=True)
class TagEntry:
    """A single help tag and the manual page (without .txt) that defines it."""

    tag: str
    file: str

    @classmethod
    def from_line(cls, line: str) -> Optional["TagEntry"]:
        """Parse one data line. Returns None when it has fewer than two fields."""
        fields = line.split()
        if len(fields) < 2:
            return None
        tag, file = fields[0], fields[1]
        if file.endswith(DOC_SUFFIX):
            file = file[: -len(DOC_SUFFIX)]
        return cls(tag=tag, file=file)


@dataclass(frozen=True)
class TagTable:
    """Immutable snapshot of the tag data file."""

    entries: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    sorted_tags: Tuple[str, ...] = ()
    source: Optional[Path] = None
    skipped_lines: int = 0

    @classmethod
    def from_entries(
        cls,
        entries: Iterable[TagEntry],
        source: Optional[Path] = None,
        skipped_lines: int = 0,
    ) -> "TagTable":
        mapping = {}
        for entry in entries:
            if entry.tag in mapping:
                logger.debug(f"TagTable: Duplicate tag {entry.tag!r}, keeping the later entry")
            mapping[entry.tag] = entry.file
        return cls(
            entries=MappingProxyType(mapping),
            sorted_tags=tuple(sorted(mapping)),
            source=source,
            skipped_lines=skipped_lines,
        )

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, tag: object) -> bool:
        return tag in self.entries


def parse_tag_lines(lines: Iterable[str], source: Optional[Path] = None) -> TagTable:
    """Build a TagTable from data lines, skipping blank and malformed ones."""
    entries: List[TagEntry] = []
    skipped = 0
    for lineno, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        entry = TagEntry.from_line(line)
        if entry is None:
            skipped += 1
            logger.warning(
                f"TagTable: Skipping malformed line {lineno} in {source or '<input>'}: {line.rstrip()!r}"
            )
            continue
        entries.append(entry)
    return TagTable.from_entries(entries, source=source, skipped_lines=skipped)


def load_tag_table(path: Union[str, Path]) -> TagTable:
    """Read and parse the tag data file. Raises TagTableError if it cannot be read."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise TagTableError(path, e) from e

    table = parse_tag_lines(text.splitlines(), source=path)
    logger.info(
        f"TagTable: Loaded {len(table)} tags from {path}"
        + (f" ({table.skipped_lines} malformed lines skipped)" if table.skipped_lines else "")
    )
    return table


class TagStore:
    """
    Holds the current TagTable snapshot.

    Readers take the snapshot by reference and never see a partially built
    table. `reload()` swaps in a freshly loaded table; when loading fails the
    previous snapshot stays in place.
    """

    def __init__(self, path: Union[str, Path], table: TagTable):
        self.path = Path(path)
        self._table = table
        self._reload_lock = threading.Lock()

    @classmethod
    def load(cls, path: Union[str, Path]) -> "TagStore":
        """Create a store with the table loaded from `path`. Raises TagTableError."""
        return cls(path, load_tag_table(path))

    @property
    def table(self) -> TagTable:
        return self._table

    def reload(self) -> bool:
        """Reload the table from disk. Returns False and keeps the old table on failure."""
        with self._reload_lock:
            try:
                new_table = load_tag_table(self.path)
            except TagTableError as e:
                logger.error(f"TagStore: Reload failed, keeping previous table: {e}")
                return False
            self._table = new_table
        logger.info(f"TagStore: Reloaded {len(new_table)} tags from {self.path}")
        return True
