"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries.
"""

from typing import Optional, Any


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ConcurrentUpdateException(RepositoryException):
    """Raised when a compare-and-set write loses against a concurrent writer."""

    def __init__(self, entity_kind: str, entity_id: str, expected_version: int):
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        self.expected_version = expected_version
        super().__init__(
            f"{entity_kind} {entity_id} was modified concurrently",
            {"entity_kind": entity_kind, "entity_id": entity_id,
             "expected_version": expected_version}
        )


# ========== SLA errors ==========

class NoPolicyFoundException(DomainException):
    """No active SLA policy matches the entity kind, priority and category."""

    def __init__(
        self,
        entity_kind: str,
        priority: Optional[str],
        category: Optional[str] = None
    ):
        self.entity_kind = entity_kind
        self.priority = priority
        self.category = category
        message = f"No applicable SLA policy found for {entity_kind} with priority {priority}"
        if category:
            message += f" and category {category}"
        super().__init__(
            message,
            {"entity_kind": entity_kind, "priority": priority, "category": category}
        )


class InvalidStartTimeException(ValidationException):
    """The start instant handed to deadline calculation is not a valid instant."""

    def __init__(self, value: Any):
        self.value = value
        super().__init__(
            f"Invalid SLA start time: {value!r}",
            {"value": repr(value)}
        )


class AlreadyPausedException(DomainException):
    """Pause requested for an entity whose SLA clock is already paused."""

    def __init__(self, entity_id: str, paused_at: Any = None):
        self.entity_id = entity_id
        self.paused_at = paused_at
        super().__init__(
            f"SLA for {entity_id} is already paused",
            {"entity_id": entity_id,
             "paused_at": paused_at.isoformat() if paused_at else None}
        )


class NotPausedException(DomainException):
    """Resume requested for an entity whose SLA clock is running."""

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(
            f"SLA for {entity_id} is not currently paused",
            {"entity_id": entity_id}
        )


class NoDeadlineSetException(DomainException):
    """Status refresh requested before SLA tracking was initialized."""

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(
            f"No SLA deadline set for {entity_id}",
            {"entity_id": entity_id}
        )
