"""
Kryptokrona daemon (kryptokronad) REST backend.

Uses the same endpoints as the official wallet-backend:
/info, /get_block_details_by_height and /getwalletsyncdata.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

import httpx
from loguru import logger
from pydantic import BaseModel, ValidationError

from krkcore.constants import BLOCKS_PER_DAEMON_REQUEST, DEFAULT_DAEMON_PORT
from krkcore.models import (
    BlockDetailsResponse,
    NodeInfoResponse,
    SyncBlockModel,
    SyncDataResponse,
    TransactionModel,
)
from krkwallet.backends.base import (
    Block,
    BlockDetails,
    MalformedResponse,
    NodeBackend,
    NodeInfo,
    Output,
    SyncData,
    Transaction,
    TransportFailure,
)

# Timeout for regular daemon calls (seconds)
DEFAULT_REQUEST_TIMEOUT = 10.0


def _to_transaction(tx: TransactionModel, is_coinbase: bool = False) -> Transaction:
    return Transaction(
        hash=tx.hash,
        public_key=tx.tx_public_key,
        outputs=tuple(
            Output(key=output.key, amount=output.amount, index=index)
            for index, output in enumerate(tx.outputs)
        ),
        unlock_time=tx.unlock_time,
        is_coinbase=is_coinbase,
    )


def to_block(item: SyncBlockModel) -> Block:
    """Convert a validated sync item into an immutable Block, coinbase first."""
    transactions: list[Transaction] = []
    if item.coinbase_tx is not None:
        transactions.append(_to_transaction(item.coinbase_tx, is_coinbase=True))
    transactions.extend(_to_transaction(tx) for tx in item.transactions)

    return Block(
        height=item.block_height,
        hash=item.block_hash,
        transactions=tuple(transactions),
        timestamp=item.block_timestamp,
    )


class DaemonBackend(NodeBackend):
    """
    Node backend talking to a Kryptokrona daemon over HTTP.

    Every call is bounded by the client timeout; timeouts and connection
    errors surface as TransportFailure, undecodable payloads as
    MalformedResponse.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = DEFAULT_DAEMON_PORT,
        ssl: bool = False,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        scheme = "https" if ssl else "http"
        self.daemon_url = f"{scheme}://{host}:{port}"
        self.timeout = timeout
        self.client = httpx.AsyncClient(timeout=timeout)

    async def _api_call(
        self,
        method: str,
        endpoint: str,
        data: dict[str, Any] | None = None,
    ) -> Any:
        """
        Make an API call to the daemon.

        Raises:
            TransportFailure: On connection/timeout/HTTP status errors
            MalformedResponse: When the body is not JSON
        """
        url = f"{self.daemon_url}/{endpoint}"

        try:
            if method == "GET":
                response = await self.client.get(url)
            elif method == "POST":
                response = await self.client.post(url, json=data)
            else:
                raise ValueError(f"Unsupported HTTP method: {method}")

            response.raise_for_status()
            return response.json()

        except httpx.TimeoutException as e:
            logger.warning(f"Daemon call timed out: {endpoint} - {e}")
            raise TransportFailure(f"{endpoint} timed out") from e
        except httpx.HTTPError as e:
            logger.warning(f"Daemon call failed: {endpoint} - {e}")
            raise TransportFailure(f"{endpoint} failed: {e}") from e
        except json.JSONDecodeError as e:
            logger.error(f"Daemon returned invalid JSON for {endpoint}: {e}")
            raise MalformedResponse(f"{endpoint} returned invalid JSON") from e

    @staticmethod
    def _parse(model: type[BaseModel], payload: Any, endpoint: str) -> Any:
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            logger.error(f"Unexpected {endpoint} response: {e}")
            raise MalformedResponse(f"{endpoint} response did not match schema") from e

    async def get_node_info(self) -> NodeInfo:
        payload = await self._api_call("GET", "info")
        info: NodeInfoResponse = self._parse(NodeInfoResponse, payload, "info")
        logger.debug(f"Daemon height: {info.height} (network: {info.network_height})")
        return NodeInfo(height=info.height, network_height=info.network_height, synced=info.synced)

    async def get_block_details_by_height(self, height: int) -> BlockDetails:
        payload = await self._api_call(
            "POST", "get_block_details_by_height", {"blockHeight": height}
        )
        details: BlockDetailsResponse = self._parse(
            BlockDetailsResponse, payload, "get_block_details_by_height"
        )
        logger.debug(f"Block hash for height {height}: {details.block.hash}")
        return BlockDetails(hash=details.block.hash, height=height)

    async def get_sync_data(
        self,
        checkpoints: Sequence[str],
        start_height: int = 0,
        start_timestamp: int = 0,
        block_count: int = BLOCKS_PER_DAEMON_REQUEST,
        skip_coinbase_transactions: bool = False,
    ) -> SyncData:
        payload = await self._api_call(
            "POST",
            "getwalletsyncdata",
            {
                "blockHashCheckpoints": list(checkpoints),
                "startHeight": start_height,
                "startTimestamp": start_timestamp,
                "blockCount": block_count,
                "skipCoinbaseTransactions": skip_coinbase_transactions,
            },
        )
        response: SyncDataResponse = self._parse(SyncDataResponse, payload, "getwalletsyncdata")
        if response.status != "OK":
            raise MalformedResponse(f"getwalletsyncdata returned status {response.status}")

        blocks = tuple(to_block(item) for item in response.items)
        logger.debug(f"Received {len(blocks)} block(s) of sync data")
        return SyncData(
            blocks=blocks,
            synced=response.synced,
            top_block_height=response.top_block.height if response.top_block else None,
        )

    async def close(self) -> None:
        await self.client.aclose()
