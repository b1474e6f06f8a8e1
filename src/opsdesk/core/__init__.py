"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from opsdesk.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    ResourceNotFoundException,
    ConfigurationException,
    ConcurrentUpdateException,
    NoPolicyFoundException,
    InvalidStartTimeException,
    AlreadyPausedException,
    NotPausedException,
    NoDeadlineSetException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "ConcurrentUpdateException",
    "NoPolicyFoundException",
    "InvalidStartTimeException",
    "AlreadyPausedException",
    "NotPausedException",
    "NoDeadlineSetException",
]
