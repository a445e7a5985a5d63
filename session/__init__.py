"""
Session Authority for the Bookworm backend.

Per-user rotating secrets sign short-lived access tokens and long-lived
refresh tokens; rotating a user's secrets revokes all of their sessions.
"""
