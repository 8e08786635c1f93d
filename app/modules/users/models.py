# Table: users
# This file documents the expected database schema
# Actual operations go through the access-controlled repository

"""
Expected table structure:

users:
- id: uuid (primary key)
- email: text (unique, not null) - stored lower-cased
- password_hash: text (not null) - opaque credential reference, never returned
- name: text (nullable)
- role: text (not null, default: 'member') - global role tag
- created_at: timestamp (default: now())
- updated_at: timestamp (default: now())
- deleted_at: timestamp (nullable) - soft delete marker
"""

USERS_TABLE = "users"
USERS_UNIQUE = [("email",)]
