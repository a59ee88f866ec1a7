"""Authentication and session tokens.

Learn: Users log in with username/password and receive two JWTs:
1. Access token (1 hour) → sent on every API call, never stored server-side
2. Refresh token (7 or 30 days) → stored as a bcrypt hash, exchanged for
   new access tokens

Sign-up is guarded by an in-process registration lock (auth/locks.py).
"""
