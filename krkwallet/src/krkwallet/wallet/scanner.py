"""
Output scanner: finds the outputs in queued blocks that belong to the wallet.
"""

from __future__ import annotations

import asyncio

from loguru import logger

from krkcore.constants import MAX_BLOCK_NUMBER, MINED_MONEY_UNLOCK_WINDOW, SCAN_THREAD_INTERVAL
from krkcore.crypto import CryptoError, CryptoOps
from krkcore.models import WalletKeys
from krkwallet.backends.base import Block, Output, Transaction
from krkwallet.wallet.models import OwnedInput
from krkwallet.wallet.service import SyncEngine, SyncError


class OutputScanner:
    """
    Consumes the engine's pending queue in height order.

    An output belongs to the wallet when underiving its one-time key with the
    transaction's derivation gives back our public spend key. Every output of
    every transaction is tested, so one transaction can pay us several times.

    A block is committed (synced height advanced, block dequeued) only after
    all of its transactions were scanned; if scanning is interrupted the block
    stays queued and is scanned again from the start.
    """

    def __init__(
        self,
        engine: SyncEngine,
        keys: WalletKeys,
        crypto: CryptoOps | None = None,
        unlock_confirmations: int = MINED_MONEY_UNLOCK_WINDOW,
    ):
        self.engine = engine
        self.keys = keys
        self.crypto = crypto or CryptoOps()
        self.unlock_confirmations = unlock_confirmations

        self._private_view_key = keys.private_view_key_bytes
        self._public_spend_key = keys.public_spend_key_bytes
        self._private_spend_key = keys.private_spend_key_bytes

        self.owned_inputs: asyncio.Queue[OwnedInput] = asyncio.Queue()

    def unlock_height(self, transaction: Transaction, block_height: int) -> int:
        if transaction.is_coinbase:
            unlock = block_height + self.unlock_confirmations
        else:
            unlock = block_height

        # unlock_time below MAX_BLOCK_NUMBER is a height, otherwise a timestamp
        if 0 < transaction.unlock_time < MAX_BLOCK_NUMBER:
            unlock = max(unlock, transaction.unlock_time)
        return unlock

    def check_output(
        self,
        output: Output,
        derivation: bytes,
        transaction: Transaction,
        block_height: int,
    ) -> OwnedInput | None:
        """Ownership test for a single output. Malformed key material skips the output."""
        try:
            candidate = self.crypto.underive_public_key(
                derivation, output.index, bytes.fromhex(output.key)
            )
            if candidate != self._public_spend_key:
                return None

            key_image = self.crypto.generate_key_image(
                derivation, output.index, self._private_spend_key
            )
        except (CryptoError, ValueError) as e:
            logger.warning(f"Skipping output {output.index} of {transaction.hash}: {e}")
            return None

        return OwnedInput(
            key_image=key_image.hex(),
            amount=output.amount,
            block_height=block_height,
            unlock_height=self.unlock_height(transaction, block_height),
            transaction_hash=transaction.hash,
            output_index=output.index,
            output_key=output.key,
        )

    def scan_transaction(self, transaction: Transaction, block_height: int) -> list[OwnedInput]:
        try:
            derivation = self.crypto.derive_key(
                bytes.fromhex(transaction.public_key), self._private_view_key
            )
        except (CryptoError, ValueError) as e:
            # Every output depends on the derivation
            logger.warning(f"Skipping transaction {transaction.hash}: {e}")
            return []

        found: list[OwnedInput] = []
        for output in transaction.outputs:
            owned = self.check_output(output, derivation, transaction, block_height)
            if owned is not None:
                found.append(owned)
        return found

    def scan_block(self, block: Block) -> list[OwnedInput]:
        found: list[OwnedInput] = []
        for transaction in block.transactions:
            found.extend(self.scan_transaction(transaction, block.height))
        return found

    async def process_queue(self) -> list[OwnedInput]:
        """
        Drain the pending queue.

        Returns:
            Every OwnedInput found, in block order. They are also published
            on self.owned_inputs.
        """
        found: list[OwnedInput] = []

        while (block := self.engine.peek_pending()) is not None:
            # Blocks are immutable, so scanning off the event loop is safe
            inputs = await asyncio.to_thread(self.scan_block, block)
            await self.engine.commit_block(block)

            for owned in inputs:
                logger.info(
                    f"Found output {owned.transaction_hash}:{owned.output_index} "
                    f"worth {owned.amount} at height {owned.block_height}"
                )
                self.owned_inputs.put_nowait(owned)
            found.extend(inputs)

        return found

    async def run(self, interval: float = SCAN_THREAD_INTERVAL) -> None:
        """
        Scan queued blocks every interval until cancelled.

        A failed block stays at the head of the queue and is scanned again on
        the next pass.
        """
        logger.info("Starting output scanner...")
        while True:
            try:
                await self.process_queue()
            except SyncError as e:
                logger.error(f"Error processing blocks: {e}")
            except Exception as e:
                logger.error(f"Unexpected error scanning blocks: {e}")
            await asyncio.sleep(interval)
