"""ORM model registry: import all models so Alembic autogenerate discovers them."""

from tally_api.models.audit_log import AuditLog
from tally_api.models.ballot import OfflineBallot, OnlineBallot
from tally_api.models.candidate import Candidate
from tally_api.models.declaration import DeclarationChallenge, DeclarationState, OneTimeCode
from tally_api.models.user import User
from tally_api.models.voter import Voter, VoterZoneAssignment
from tally_api.models.zone import Zone

__all__ = [
    "AuditLog",
    "Candidate",
    "DeclarationChallenge",
    "DeclarationState",
    "OfflineBallot",
    "OneTimeCode",
    "OnlineBallot",
    "User",
    "Voter",
    "VoterZoneAssignment",
    "Zone",
]
