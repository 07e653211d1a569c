"""Database package."""

from servicarr.server.db.init import AsyncSessionLocal, engine, get_db, init_db

__all__ = ["engine", "AsyncSessionLocal", "get_db", "init_db"]
