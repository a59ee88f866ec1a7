"""Qureka — study-content backend.

Session and account layer for the Qureka study app: registration,
login with paired access/refresh tokens, token refresh, and logout.
"""

__version__ = "0.1.0"
