"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for SLA tracking:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer
- External: Config watcher and scheduler
"""

from opsdesk.sla.infrastructure.models import (
    SlaPolicyModel, RequestModel, TaskModel, SlaPauseLogModel
)
from opsdesk.sla.infrastructure.repositories import (
    SQLAlchemySlaPolicyRepository,
    SQLAlchemyTrackableEntityRepository,
    SQLAlchemyRequestRepository,
    SQLAlchemyTaskRepository,
    SQLAlchemySlaPauseLogRepository,
    build_entity_store_registry,
    seed_policies,
)
from opsdesk.sla.infrastructure.external import SLAConfigManager, SLAScheduler

__all__ = [
    "SlaPolicyModel",
    "RequestModel",
    "TaskModel",
    "SlaPauseLogModel",
    "SQLAlchemySlaPolicyRepository",
    "SQLAlchemyTrackableEntityRepository",
    "SQLAlchemyRequestRepository",
    "SQLAlchemyTaskRepository",
    "SQLAlchemySlaPauseLogRepository",
    "build_entity_store_registry",
    "seed_policies",
    "SLAConfigManager",
    "SLAScheduler",
]
