"""Player action-economy engine for the lab management game.

Ledger, catalog, unlock graph, task scheduler and notification feed, persisted
in Redis and served over FastAPI.
"""

__version__ = "0.1.0"
