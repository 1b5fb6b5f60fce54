"""Authentication and authorization.

Learn: Users log in with username/password and get a pair of JWTs:
1. Access token → sent as `Authorization: Bearer` on every call (24h)
2. Refresh token → exchanged at /auth/refresh for a new pair (7 days)

The authentication middleware turns a valid access token into a
SecurityContext (subject + roles) that route dependencies read.
"""
