"""
Aleo rewards indexer.

Catches up on historical blocks, tails the chain tip, computes the
coinbase reward split for every block and hands the results to a
reward store while advancing a durable height cursor.
"""

__version__ = "0.1.0"
