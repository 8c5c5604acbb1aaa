"""
Base node backend interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field

from krkcore.constants import BLOCKS_PER_DAEMON_REQUEST


class BackendError(Exception):
    """Base class for node backend failures."""


class TransportFailure(BackendError):
    """Node unreachable, timed out or answered with an HTTP error."""


class MalformedResponse(BackendError):
    """Node answered with a payload that could not be decoded."""


@dataclass(frozen=True)
class Output:
    key: str
    amount: int
    index: int


@dataclass(frozen=True)
class Transaction:
    hash: str
    public_key: str
    outputs: tuple[Output, ...] = ()
    unlock_time: int = 0
    is_coinbase: bool = False


@dataclass(frozen=True)
class Block:
    height: int
    hash: str
    transactions: tuple[Transaction, ...] = ()
    timestamp: int = 0


@dataclass(frozen=True)
class NodeInfo:
    height: int
    network_height: int = 0
    synced: bool = False


@dataclass(frozen=True)
class BlockDetails:
    hash: str
    height: int


@dataclass(frozen=True)
class SyncData:
    """Next contiguous range of blocks the node believes the wallet has not seen."""

    blocks: tuple[Block, ...] = field(default_factory=tuple)
    synced: bool = False
    top_block_height: int | None = None


class NodeBackend(ABC):
    """
    Abstract node backend interface.

    Implementations raise TransportFailure when the node cannot be reached
    in time and MalformedResponse when its answer cannot be decoded.
    """

    @abstractmethod
    async def get_node_info(self) -> NodeInfo:
        """Get node status, including the current chain height"""

    @abstractmethod
    async def get_block_details_by_height(self, height: int) -> BlockDetails:
        """Get details (hash) of the block at the given height"""

    @abstractmethod
    async def get_sync_data(
        self,
        checkpoints: Sequence[str],
        start_height: int = 0,
        start_timestamp: int = 0,
        block_count: int = BLOCKS_PER_DAEMON_REQUEST,
        skip_coinbase_transactions: bool = False,
    ) -> SyncData:
        """Get the blocks following the newest checkpoint the node recognises"""

    async def close(self) -> None:
        """Close backend connection"""
        pass
