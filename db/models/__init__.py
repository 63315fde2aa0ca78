"""
Model package exports.

Import all SQLAlchemy models here so metadata registration works without
extra imports.
"""

from db.models.domain import Domain
from db.models.keyword import Keyword

__all__ = [
    "Domain",
    "Keyword",
]
