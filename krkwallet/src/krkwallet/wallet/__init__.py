"""
Wallet sync engine, output scanner and owned-input store.
"""
