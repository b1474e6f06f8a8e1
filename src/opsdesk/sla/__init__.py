"""
SLA Tracking Module
===================

Bounded Context for service-level agreements on requests and tasks.

Responsibilities:
- Resolve the most specific SLA policy for an entity
- Compute absolute deadlines from a start instant
- Classify live SLA status (on time, at risk, overdue, paused)
- Pause and resume the SLA clock, keeping a pause history
- Refresh stored statuses periodically
- Hot-reload SLA configuration via watchdog
"""

__version__ = "1.0.0"
