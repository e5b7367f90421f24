# Supabase table: group_messages
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py / store.py

"""
Expected Supabase table structure:

group_messages:
- id: uuid (primary key)
- group_id: uuid (foreign key to groups.id, not null)
- sender_id: uuid (foreign key to auth.users.id, not null)
- content: text (not null)
- created_at: timestamp (default: now())

Rows are immutable: no update or delete policy.
Realtime must be enabled for the table (publication supabase_realtime)
so INSERT events can be filtered by group_id=eq.<id>.
"""
