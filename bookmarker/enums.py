"""Shared enums for the bookmarker service.

This module defines all status and state enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["ChangeEventKind", "EnrichmentStatus", "HealthStatus", "ResolveStatus"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class ChangeEventKind(StrEnum):
    """Kind of row change carried on the change feed."""

    INSERT = "INSERT"
    MODIFY = "MODIFY"
    REMOVE = "REMOVE"


class ResolveStatus(StrEnum):
    """Outcome of resolving a submitted URL to a bookmark id."""

    CREATED = "created"
    EXISTING = "existing"
    INVALID_INPUT = "invalid_input"
    RESOURCE_EXHAUSTED = "resource_exhausted"


class EnrichmentStatus(StrEnum):
    """Outcome of a single enrichment task."""

    ENRICHED = "enriched"
    FAILED = "failed"
