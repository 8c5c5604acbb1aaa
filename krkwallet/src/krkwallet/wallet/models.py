"""
Wallet data models.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class OwnedInput:
    """An output proven to belong to the wallet, ready to be spent later"""

    key_image: str
    amount: int
    block_height: int
    unlock_height: int
    transaction_hash: str
    output_index: int
    output_key: str

    def is_unlocked(self, height: int) -> bool:
        return height >= self.unlock_height
