"""
Node backend implementations.

Available backends:
- DaemonBackend: Kryptokrona daemon over its REST interface
"""

from krkwallet.backends.base import (
    BackendError,
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
from krkwallet.backends.daemon import DaemonBackend

__all__ = [
    "BackendError",
    "Block",
    "BlockDetails",
    "DaemonBackend",
    "MalformedResponse",
    "NodeBackend",
    "NodeInfo",
    "Output",
    "SyncData",
    "Transaction",
    "TransportFailure",
]
