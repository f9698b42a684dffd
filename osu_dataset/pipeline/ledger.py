"""Persisted list of folders that failed to encode."""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

LEDGER_FILENAME = "failed_folders.txt"


class FailureLedger:
    """Folders that failed, stored as ``folder_id: reason`` lines.

    Entries survive between runs so permanently broken folders are not
    retried; ``clear`` drops them for a forced rebuild.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.entries: dict[str, str] = self._load(self.path)
        self._initial = len(self.entries)

    @staticmethod
    def _load(path: Path) -> dict[str, str]:
        entries: dict[str, str] = {}
        if not path.exists():
            return entries
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line:
                continue
            folder_id, sep, reason = line.partition(": ")
            if not sep:
                folder_id, _, reason = line.partition(":")
            folder_id = folder_id.strip()
            if folder_id:
                entries[folder_id] = reason.strip()
        return entries

    def __contains__(self, folder_id: str) -> bool:
        return folder_id in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def record(self, folder_id: str, reason: str) -> None:
        self.entries[folder_id] = " ".join(str(reason).split())

    def discard(self, folder_id: str) -> None:
        self.entries.pop(folder_id, None)

    def clear(self) -> None:
        self.entries.clear()

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        content = "".join(f"{fid}: {reason}\n" for fid, reason in sorted(self.entries.items()))
        self.path.write_text(content, encoding="utf-8")
        added = len(self.entries) - self._initial
        if added > 0:
            logger.info("Added %d folders to %s", added, self.path.name)
