"""TenantLoop error hierarchy.

Every failure the engine raises on purpose derives from TenantLoopError so
callers can separate expected outcomes from programming faults.
"""

from typing import Any, Dict


class TenantLoopError(Exception):
    """Base error for TenantLoop."""

    def to_payload(self) -> Dict[str, Any]:
        """Structured form handed to the generation engine as tool output."""
        return {"type": type(self).__name__, "message": str(self)}


# -- Tenant resolution ------------------------------------------------------


class TenantResolutionError(TenantLoopError):
    """The request does not carry a trustworthy tenant identifier."""


class Unauthenticated(TenantResolutionError):
    """No verified claim and no trusted context value yielded a tenant."""


class MalformedTenant(TenantResolutionError):
    """A tenant value was supplied but is not a valid identifier."""


class TenantExists(TenantLoopError):
    """Bootstrap asked for a tenant id that is already taken."""


# -- Data gateway -----------------------------------------------------------


class CrossTenantViolation(TenantLoopError):
    """An attempted or detected read/write outside the resolved tenant."""


class UnscopableStatement(TenantLoopError):
    """A sandbox statement whose rows cannot be bound to a single tenant."""


class PrivilegedLaneError(TenantLoopError):
    """Privileged lane used from a call site outside the audited set."""


# -- Tools and collaborators ------------------------------------------------


class ToolExecutionError(TenantLoopError):
    """Domain tool failure, reported back to the generation engine as data."""


class CollaboratorUnavailable(TenantLoopError):
    """Generation engine, automation connector or delivery gateway unreachable."""


# -- Scheduler --------------------------------------------------------------


class SchedulerError(TenantLoopError):
    """Base error for recurring trigger management."""


class InvalidSchedule(SchedulerError):
    """Schedule expression or timezone cannot be evaluated."""


class NameCollision(SchedulerError):
    """Derived job name is already owned by a different (tenant, entity) pair."""


ScheduleConflict = NameCollision


class NotFound(SchedulerError):
    """No recurring trigger with that job name is visible to the caller."""
