# Table: invitations
# This file documents the expected database schema
# Actual operations go through the access-controlled repository

"""
Expected table structure:

invitations:
- id: uuid (primary key)
- team_id: uuid (foreign key to teams.id, not null)
- email: text (not null) - invitee address, lower-cased
- role: text (not null) - role granted on acceptance
- invited_by: uuid (foreign key to users.id, not null)
- status: text (not null, default: 'pending') - values: pending, accepted, revoked
- invited_at: timestamp (default: now())
"""

INVITATIONS_TABLE = "invitations"
