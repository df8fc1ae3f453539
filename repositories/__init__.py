"""
Data access for the growth tables. Services receive these repositories from
the service registry and own every commit.
"""

from .base_repository import BaseRepository

__all__ = ['BaseRepository']
