"""Accounts, session/activity logs and project autosave."""
