"""
Central constants for the civic election platform.
"""
from __future__ import annotations

# User roles
ROLE_VOTER = "voter"
ROLE_VOLUNTEER = "volunteer"
ROLE_CAMPAIGN_STAFF = "campaign_staff"
ROLE_ELECTION_OFFICIAL = "election_official"
ROLE_ADMIN = "admin"

ALL_ROLES = frozenset({ROLE_VOTER, ROLE_VOLUNTEER, ROLE_CAMPAIGN_STAFF, ROLE_ELECTION_OFFICIAL, ROLE_ADMIN})
OFFICIAL_ROLES = frozenset({ROLE_ADMIN, ROLE_ELECTION_OFFICIAL})

# Election status
STATUS_DRAFT = "draft"
STATUS_PUBLISHED = "published"
STATUS_ACTIVE = "active"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

VALID_ELECTION_STATUSES = frozenset(
    {STATUS_DRAFT, STATUS_PUBLISHED, STATUS_ACTIVE, STATUS_COMPLETED, STATUS_CANCELLED}
)

# Election types
VALID_ELECTION_TYPES = frozenset({"national", "state", "local", "referendum", "primary"})
DEFAULT_ELECTION_TYPE = "local"

# Candidate party affiliation
VALID_PARTY_AFFILIATIONS = frozenset({"independent", "democratic", "republican", "green", "libertarian", "other"})
DEFAULT_PARTY_AFFILIATION = "independent"
