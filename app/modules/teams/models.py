# Tables: teams, team_members
# This file documents the expected database schema
# Actual operations go through the access-controlled repository

"""
Expected table structure:

teams:
- id: uuid (primary key)
- name: text (not null)
- stripe_customer_id: text (unique, nullable)
- stripe_subscription_id: text (unique, nullable)
- stripe_product_id: text (nullable)
- plan_name: text (nullable)
- subscription_status: text (nullable)
- created_at: timestamp (default: now())
- updated_at: timestamp (default: now())

Billing columns are written by the billing webhook handler, never by this service.

team_members:
- id: uuid (primary key)
- team_id: uuid (foreign key to teams.id, not null)
- user_id: uuid (foreign key to users.id, not null)
- role: text (not null) - values: owner, member
- joined_at: timestamp (default: now())
- unique constraint on (team_id, user_id)
"""

TEAMS_TABLE = "teams"
TEAM_MEMBERS_TABLE = "team_members"

TEAMS_UNIQUE = [("stripe_customer_id",), ("stripe_subscription_id",)]
TEAM_MEMBERS_UNIQUE = [("team_id", "user_id")]
