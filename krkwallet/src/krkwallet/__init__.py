"""
krkwallet - Kryptokrona wallet sync

Follows the daemon's chain and finds the outputs that belong to a wallet.
"""

__version__ = "0.1.0"
