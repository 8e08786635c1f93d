# Table: activity_logs
# This file documents the expected database schema
# Rows are appended by the activity recorder only

"""
Expected table structure:

activity_logs:
- id: uuid (primary key)
- team_id: uuid (foreign key to teams.id, not null)
- user_id: uuid (foreign key to users.id, nullable) - null for system actions
- action: text (not null)
- ip_address: text (nullable)
- timestamp: timestamp (default: now())
"""

ACTIVITY_LOGS_TABLE = "activity_logs"
