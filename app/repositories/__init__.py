from app.repositories.jurisdictions import InMemoryJurisdictionsRepository, PostgresJurisdictionsRepository
from app.repositories.packets import InMemoryPacketsRepository, PostgresPacketsRepository
from app.repositories.rule_results import InMemoryRuleResultsRepository, PostgresRuleResultsRepository
from app.repositories.submissions import InMemorySubmissionsRepository, PostgresSubmissionsRepository
from app.repositories.workflow_events import (
    InMemoryWorkflowEventsRepository,
    PostgresWorkflowEventsRepository,
)

__all__ = [
    "InMemoryJurisdictionsRepository",
    "PostgresJurisdictionsRepository",
    "InMemoryPacketsRepository",
    "PostgresPacketsRepository",
    "InMemoryRuleResultsRepository",
    "PostgresRuleResultsRepository",
    "InMemorySubmissionsRepository",
    "PostgresSubmissionsRepository",
    "InMemoryWorkflowEventsRepository",
    "PostgresWorkflowEventsRepository",
]
