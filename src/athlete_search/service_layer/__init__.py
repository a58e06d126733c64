"""Service layer - use-case orchestration over the search core."""

from .search_service import AthleteSearchService


__all__ = ["AthleteSearchService"]
