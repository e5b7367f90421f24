# Supabase Auth plus tables: profiles, email_confirmations
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py / confirmation.py

"""
Supabase Auth provides:
- auth.sign_up() - Register new users
- auth.sign_in_with_password() - Authenticate users
- auth.get_user() - Get current user from JWT token
- auth.sign_out() - Logout users
- auth.on_auth_state_change() - Session transitions (used by SessionContext)

profiles:
- id: uuid (primary key, references auth.users.id)
- updated_at: timestamp (nullable) - touched on every login

email_confirmations:
- id: uuid (primary key)
- user_id: uuid (references auth.users.id, not null)
- email: text (not null)
- token: text (unique, not null)
- expires_at: timestamp (not null) - created_at + 24h
- confirmed_at: timestamp (nullable)
- attempts: integer (default: 0)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
"""
