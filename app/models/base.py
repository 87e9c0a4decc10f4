"""Shared metadata for every table."""

from sqlalchemy import MetaData

# Both tables live here so the appointments -> patients foreign key resolves
metadata = MetaData()
