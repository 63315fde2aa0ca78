"""
app/repositories package marker.
"""

from app.repositories.keyword_repository import KeywordRepository

__all__ = ["KeywordRepository"]
