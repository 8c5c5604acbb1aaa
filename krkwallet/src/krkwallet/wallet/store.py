"""
In-memory sink for discovered outputs.
"""

from __future__ import annotations

import asyncio

from loguru import logger

from krkwallet.wallet.models import OwnedInput


class OwnedInputStore:
    """
    Keeps one OwnedInput per key image.

    Re-scanning a block yields the same key images again, so duplicates are
    dropped here rather than in the scanner.
    """

    def __init__(self) -> None:
        self._inputs: dict[str, OwnedInput] = {}

    def add(self, owned: OwnedInput) -> bool:
        """Returns True if the input was not known yet"""
        if owned.key_image in self._inputs:
            logger.debug(f"Ignoring duplicate key image {owned.key_image}")
            return False
        self._inputs[owned.key_image] = owned
        return True

    def inputs(self) -> list[OwnedInput]:
        return sorted(self._inputs.values(), key=lambda i: (i.block_height, i.output_index))

    def balance(self) -> int:
        return sum(i.amount for i in self._inputs.values())

    def unlocked_balance(self, height: int) -> int:
        return sum(i.amount for i in self._inputs.values() if i.is_unlocked(height))

    def drain(self, queue: asyncio.Queue[OwnedInput]) -> int:
        """Take everything currently waiting on the queue. Returns the number of new inputs."""
        added = 0
        while not queue.empty():
            if self.add(queue.get_nowait()):
                added += 1
            queue.task_done()
        return added

    async def consume(self, queue: asyncio.Queue[OwnedInput]) -> None:
        """Store inputs from the queue as they arrive, until cancelled"""
        while True:
            owned = await queue.get()
            self.add(owned)
            queue.task_done()

    def __len__(self) -> int:
        return len(self._inputs)

    def __contains__(self, key_image: object) -> bool:
        return key_image in self._inputs
