"""
Wallet sync engine.

Tracks the wallet's position against the daemon and queues newly fetched
blocks for the output scanner.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections import deque
from collections.abc import Awaitable, Callable
from enum import Enum

from loguru import logger

from krkcore.constants import (
    BLOCKS_PER_DAEMON_REQUEST,
    DAEMON_UPDATE_INTERVAL,
    SYNC_THREAD_INTERVAL,
)
from krkwallet.backends.base import BackendError, Block, NodeBackend
from krkwallet.wallet.ledger import CheckpointLedger


class SyncError(Exception):
    pass


class AlreadyRunning(SyncError):
    pass


class NotRunning(SyncError):
    pass


class SyncState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class SyncEngine:
    """
    Kryptokrona wallet sync engine.

    Two independent polls run while the engine is running:
    - height poll: refreshes the daemon's chain height
    - block-fetch poll: requests blocks after the latest checkpoint and
      queues them for scanning

    The fetch poll is the only writer of the checkpoint ledger, the fetch
    cursor and queue appends. The scanner is the only writer of the synced
    height and queue removal (via commit_block). The node height is written
    by both polls. Every one of these writes goes through one lock.
    """

    def __init__(
        self,
        backend: NodeBackend,
        start_height: int = 0,
        fetch_interval: float = SYNC_THREAD_INTERVAL,
        height_poll_interval: float = DAEMON_UPDATE_INTERVAL,
        block_count: int = BLOCKS_PER_DAEMON_REQUEST,
        skip_coinbase_transactions: bool = False,
    ):
        if start_height < 0:
            raise ValueError("start_height must be non-negative")

        self.backend = backend
        self.start_height = start_height
        self.fetch_interval = fetch_interval
        self.height_poll_interval = height_poll_interval
        self.block_count = block_count
        self.skip_coinbase_transactions = skip_coinbase_transactions

        self.ledger = CheckpointLedger()
        self._pending: deque[Block] = deque()
        self._node_height: int | None = None
        self._fetched_height = start_height
        self._synced_height = start_height

        self._state = SyncState.IDLE
        self._starting = False
        self._lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def node_height(self) -> int | None:
        return self._node_height

    @property
    def fetched_height(self) -> int:
        return self._fetched_height

    def get_synced_height(self) -> int:
        """Height below which every block has been fully scanned"""
        return self._synced_height

    def get_pending_block_count(self) -> int:
        return len(self._pending)

    def is_synced(self) -> bool:
        if self._node_height is None or self._pending:
            return False
        return self._synced_height >= self._node_height

    async def start(self) -> None:
        """
        Establish the first checkpoint and launch both polls.

        Raises:
            AlreadyRunning: If the engine is already running
            BackendError: If the starting block could not be fetched
        """
        if self._state is SyncState.RUNNING or self._starting:
            raise AlreadyRunning("Sync engine is already running")

        self._starting = True
        try:
            logger.info(f"Starting sync process from height {self.start_height}...")
            if not self.ledger:
                details = await self.backend.get_block_details_by_height(self.start_height)
                self.ledger.append(details.hash)
                logger.debug(f"Initial checkpoint {details.hash} at height {self.start_height}")

            self._stop_event = asyncio.Event()
            self._state = SyncState.RUNNING
            self._tasks = [
                asyncio.create_task(
                    self._poll("height poll", self.height_poll_interval, self.update_node_height)
                ),
                asyncio.create_task(
                    self._poll("block fetch", self.fetch_interval, self.fetch_blocks)
                ),
            ]
        finally:
            self._starting = False

    async def stop(self) -> None:
        """Stop both polls. In-flight requests finish and their results are discarded."""
        if self._state is not SyncState.RUNNING:
            return

        logger.info("Stopping sync process...")
        self._state = SyncState.STOPPED
        self._stop_event.set()

        tasks, self._tasks = self._tasks, []
        await asyncio.gather(*tasks)
        logger.info("Sync process stopped")

    async def wait(self) -> None:
        """Wait until the polls finish (i.e. until stop() is called)"""
        if self._state is not SyncState.RUNNING:
            raise NotRunning("Sync engine is not running")
        await asyncio.gather(*self._tasks)

    async def _poll(
        self, name: str, interval: float, action: Callable[[], Awaitable[object]]
    ) -> None:
        while not self._stop_event.is_set():
            try:
                await action()
            except Exception as e:
                logger.error(f"Error in {name}: {e}")

            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)

        logger.debug(f"{name} stopped")

    async def update_node_height(self) -> int | None:
        """Refresh the daemon height. Keeps the previous value on failure."""
        try:
            info = await self.backend.get_node_info()
        except BackendError as e:
            logger.warning(f"Failed to update node height: {e}")
            return self._node_height

        if self._stop_event.is_set():
            return self._node_height

        async with self._lock:
            # A lagging /info reply must not drop below blocks already fetched
            self._node_height = max(info.height, self._fetched_height)
        logger.info(f"Node height: {self._node_height}")
        return self._node_height

    async def fetch_blocks(self) -> int:
        """
        Run one block-fetch iteration.

        Returns:
            Number of blocks queued. Zero when skipped, caught up, or when
            the daemon answered with nothing usable.

        Raises:
            EmptyLedger: If called before the first checkpoint exists
        """
        if self._node_height is None:
            logger.debug("Node height unknown, skipping block fetch")
            return 0

        if self._fetched_height >= self._node_height:
            return 0

        checkpoint = self.ledger.latest()
        logger.debug(f"Syncing blocks from checkpoint {checkpoint}...")

        try:
            sync_data = await self.backend.get_sync_data(
                [checkpoint],
                block_count=self.block_count,
                skip_coinbase_transactions=self.skip_coinbase_transactions,
            )
        except BackendError as e:
            logger.warning(f"Failed to fetch sync data: {e}")
            return 0

        if self._stop_event.is_set():
            logger.debug("Sync stopped while fetching, discarding response")
            return 0

        if not sync_data.blocks:
            logger.debug("No new blocks returned")
            return 0

        async with self._lock:
            # The daemon may include blocks we already hold, e.g. the anchor itself
            blocks = [b for b in sync_data.blocks if b.height > self._fetched_height]
            if not blocks:
                return 0

            for offset, block in enumerate(blocks, start=1):
                if block.height != self._fetched_height + offset:
                    logger.error(
                        f"Discarding sync data with a gap: expected height "
                        f"{self._fetched_height + offset}, got {block.height}"
                    )
                    return 0

            self.ledger.append(blocks[-1].hash)
            self._pending.extend(blocks)
            self._fetched_height += len(blocks)

            reported = max(sync_data.top_block_height or 0, self._fetched_height)
            if self._node_height is None or reported > self._node_height:
                self._node_height = reported

        logger.info(f"Fetched {len(blocks)} block(s), wallet height {self._fetched_height}")
        return len(blocks)

    def peek_pending(self) -> Block | None:
        """Oldest block waiting to be scanned"""
        return self._pending[0] if self._pending else None

    async def commit_block(self, block: Block) -> None:
        """
        Mark the head block as fully scanned.

        Only the scanner calls this, after every transaction in the block has
        been checked.
        """
        async with self._lock:
            if not self._pending or self._pending[0] is not block:
                raise SyncError(f"Block {block.height} is not at the head of the pending queue")
            self._pending.popleft()
            self._synced_height = block.height
        logger.debug(f"Synced height: {block.height}")

    async def close(self) -> None:
        """Stop syncing and close backend connection"""
        await self.stop()
        await self.backend.close()
