"""
Write Policy Configuration
Reads are governed by team membership alone. Writes are denied unless the
application supplies a write policy; this matrix is the one the HTTP layer
supplies. Keys are table names, then operation, then the grantees:
a team role (resolved through the membership index), ANY_PRINCIPAL, or SELF
(the row belongs to the principal).
"""

from app.modules.invitations.models import INVITATIONS_TABLE
from app.modules.teams.models import TEAMS_TABLE, TEAM_MEMBERS_TABLE
from app.modules.users.models import USERS_TABLE

ANY_PRINCIPAL = "*"
SELF = "self"

TEAM_OWNER = "owner"
TEAM_MEMBER = "member"
TEAM_ROLES = [TEAM_OWNER, TEAM_MEMBER]

WRITE_RULES = {
    TEAMS_TABLE: {
        "create": [ANY_PRINCIPAL],
        "update": [TEAM_OWNER],
        "delete": [TEAM_OWNER],
    },
    TEAM_MEMBERS_TABLE: {
        "create": [TEAM_OWNER],
        "update": [TEAM_OWNER],
        # members may leave a team on their own
        "delete": [TEAM_OWNER, SELF],
    },
    INVITATIONS_TABLE: {
        "create": [TEAM_OWNER],
        "update": [TEAM_OWNER],
        "delete": [TEAM_OWNER],
    },
    USERS_TABLE: {
        "update": [SELF],
        "delete": [SELF],
    },
}
