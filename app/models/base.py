"""Shared metadata for all scheduling tables."""

from sqlalchemy import MetaData

# Metadata for all tables
metadata = MetaData()
