"""
Pytest configuration and fixtures for wallet tests.
"""

from __future__ import annotations

from collections.abc import Callable
from unittest.mock import AsyncMock

import pytest

from krkcore.crypto import derive_public_key, generate_key_derivation, generate_keys
from krkcore.models import WalletKeys
from krkwallet.backends.base import (
    Block,
    BlockDetails,
    NodeBackend,
    NodeInfo,
    Output,
    SyncData,
    Transaction,
)

# Reduced scalar (top byte below 0x10), so it is a valid private spend key
TEST_PRIVATE_SPEND_KEY = "ab" * 31 + "05"


def block_hash(height: int) -> str:
    """Stable fake 64-hex hash for a block height"""
    return f"{height:064x}"


def make_blocks(start: int, end: int) -> tuple[Block, ...]:
    """Empty blocks for heights start..end inclusive"""
    return tuple(Block(height=h, hash=block_hash(h)) for h in range(start, end + 1))


@pytest.fixture
def wallet_keys() -> WalletKeys:
    return WalletKeys.from_private_spend_key(TEST_PRIVATE_SPEND_KEY)


@pytest.fixture
def other_keys() -> WalletKeys:
    return WalletKeys.generate()


@pytest.fixture
def make_transaction() -> Callable[..., Transaction]:
    """
    Build a transaction paying the given keys, the way a sender would:
    pick a random tx key r, publish R = r*G and derive each output key from
    the recipient's public view and spend keys.
    """

    def _make(
        keys: WalletKeys,
        amounts: list[int],
        tx_hash: str | None = None,
        is_coinbase: bool = False,
        unlock_time: int = 0,
    ) -> Transaction:
        tx_public_key, tx_secret_key = generate_keys()
        derivation = generate_key_derivation(bytes.fromhex(keys.public_view_key), tx_secret_key)
        outputs = tuple(
            Output(
                key=derive_public_key(derivation, index, keys.public_spend_key_bytes).hex(),
                amount=amount,
                index=index,
            )
            for index, amount in enumerate(amounts)
        )
        return Transaction(
            hash=tx_hash or tx_public_key.hex(),
            public_key=tx_public_key.hex(),
            outputs=outputs,
            unlock_time=unlock_time,
            is_coinbase=is_coinbase,
        )

    return _make


@pytest.fixture
def mock_backend() -> AsyncMock:
    """Node at height 105 whose block 100 anchors the wallet"""
    backend = AsyncMock(spec=NodeBackend)
    backend.get_node_info.return_value = NodeInfo(height=105, network_height=105, synced=True)
    backend.get_block_details_by_height.return_value = BlockDetails(
        hash=block_hash(100), height=100
    )
    backend.get_sync_data.return_value = SyncData()
    return backend
