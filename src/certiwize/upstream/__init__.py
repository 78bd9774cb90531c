"""Outbound clients: workflow webhooks, GoCardless, Supabase."""
