"""Shared constants for TenantLoop."""

# Tenant seeded by the first migration for single-organisation deployments
DEFAULT_TENANT_ID = "00000000-0000-0000-0000-000000000001"

# Column that binds every tenant-owned row to its tenant
TENANT_COLUMN = "tenant_id"

# Schema holding tenant-created free-form tables
SANDBOX_SCHEMA = "sandbox"

# Role free-form sandbox statements run as; no table rights outside SANDBOX_SCHEMA
SANDBOX_ROLE = "tenantloop_sandbox"

# Context window defaults
DEFAULT_RECENCY_LIMIT = 10
DEFAULT_RELEVANCE_LIMIT = 5
DEFAULT_CANDIDATE_POOL = 200

APOLOGY_REPLY = "Sorry, an internal error occurred."

STEP_LIMIT_REPLY = (
    "I wasn't able to finish that request within the allowed number of steps. "
    "Please try again, perhaps breaking it into smaller parts."
)

RELEVANT_CONTEXT_HEADER = "Here are some relevant previous conversations:\n"
RELEVANT_CONTEXT_FOOTER = "\n---\n"

SCHEDULED_TASK_PREFIX = "[Scheduled task]"
