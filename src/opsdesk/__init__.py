"""
OpsDesk
=======

Ticketing and workflow service for operations teams.

This package hosts the SLA tracking bounded context: policy resolution,
deadline calculation, compliance status and SLA clock pause/resume for
requests and tasks.
"""

__version__ = "1.0.0"
