"""
BRy integrations.
"""
from app.bry.client import BryArClient, get_bry_client

__all__ = ["BryArClient", "get_bry_client"]
