"""
Shared Kernel Module
====================

Shared infrastructure used across bounded contexts.

Architecture Pattern: Modular Monolith
- Each module (sla) is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add SLA business logic to the shared kernel.
"""

__version__ = "1.0.0"
