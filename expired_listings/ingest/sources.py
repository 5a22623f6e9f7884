"""Input file discovery under the export storage prefix."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from expired_listings.common.constants import INPUT_PREFIX


class ListingSource(Protocol):
    def list_files(self) -> list[str]: ...

    def read_text(self, key: str) -> str | None: ...


class DirectoryListingSource:
    """Exports dropped as ``<root>/<prefix>*.csv``; keys keep the prefix (``expired-listings/a.csv``)."""

    def __init__(self, root: Path, prefix: str = INPUT_PREFIX) -> None:
        self.root = Path(root)
        self.prefix = prefix

    def list_files(self) -> list[str]:
        base = self.root / self.prefix
        if not base.exists():
            return []
        keys = [path.relative_to(self.root).as_posix() for path in base.rglob("*.csv") if path.is_file()]
        return sorted(keys)

    def read_text(self, key: str) -> str | None:
        path = self.root / key
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8-sig")
