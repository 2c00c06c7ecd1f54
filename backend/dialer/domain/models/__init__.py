"""Domain models"""

# Queue models
from .queue_item import (
    QueueState,
    DialMode,
    CallOutcome,
    QueueItem,
    outcome_for_status,
    is_answered_status,
)

# Parallel dispatch models
from .parallel_run import (
    RunStatus,
    ParallelRun,
    ItemError,
    ParallelRunResult,
    resolve_batch_size,
)

from .dispatch import (
    CallCredentials,
    DispatchResult,
)

# Agent presence models
from .agent import (
    AgentStatus,
    AvailabilityResult,
)

# Routing bridge models
from .routing import (
    AssignmentAction,
    AssignmentInstruction,
    RoutingConfig,
    RoutingCorrelation,
)

__all__ = [
    # Queue
    "QueueState",
    "DialMode",
    "CallOutcome",
    "QueueItem",
    "outcome_for_status",
    "is_answered_status",
    # Parallel runs
    "RunStatus",
    "ParallelRun",
    "ItemError",
    "ParallelRunResult",
    "resolve_batch_size",
    # Dispatch
    "CallCredentials",
    "DispatchResult",
    # Agents
    "AgentStatus",
    "AvailabilityResult",
    # Routing
    "AssignmentAction",
    "AssignmentInstruction",
    "RoutingConfig",
    "RoutingCorrelation",
]
