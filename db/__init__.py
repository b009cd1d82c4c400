"""Database package for the client health-score service."""
from db.connection import database_url, dispose_engine, get_db, get_engine

__all__ = ["database_url", "get_engine", "get_db", "dispose_engine"]
