"""
Checkpoint ledger: the block hashes the wallet has confirmed seeing.
"""

from __future__ import annotations

from collections.abc import Iterator


class EmptyLedger(Exception):
    """latest() was requested before any checkpoint exists."""


class CheckpointLedger:
    """
    Ordered, deduplicated list of block hashes.

    The most recently first-seen hash anchors the next sync request, so a
    hash the node re-confirms keeps its original position.
    """

    def __init__(self, hashes: list[str] | None = None):
        self._hashes: list[str] = []
        self._seen: set[str] = set()
        for block_hash in hashes or []:
            self.append(block_hash)

    def append(self, block_hash: str) -> bool:
        """Add a hash unless already present. Returns True if it was new."""
        if block_hash in self._seen:
            return False
        self._seen.add(block_hash)
        self._hashes.append(block_hash)
        return True

    def latest(self) -> str:
        if not self._hashes:
            raise EmptyLedger("No checkpoints recorded yet")
        return self._hashes[-1]

    def hashes(self) -> list[str]:
        return list(self._hashes)

    def __len__(self) -> int:
        return len(self._hashes)

    def __contains__(self, block_hash: object) -> bool:
        return block_hash in self._seen

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._hashes))
