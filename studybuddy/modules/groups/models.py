# Supabase tables: groups, group_members
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

groups:
- id: uuid (primary key)
- name: text (not null)
- code: text (unique, not null) - 6 chars [A-Z0-9], entered by users to join
- created_by: uuid (foreign key to auth.users.id, not null)
- created_at: timestamp (default: now())

group_members:
- group_id: uuid (foreign key to groups.id, not null)
- user_id: uuid (foreign key to auth.users.id, not null)
- created_at: timestamp (default: now())
- unique constraint on (group_id, user_id)

RLS on group_messages should only allow select/insert for rows whose
group_id has a group_members row for auth.uid().
"""
