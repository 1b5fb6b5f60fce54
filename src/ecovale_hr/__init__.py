"""Ecovale HR Gateway.

Authentication, rate limiting and request tracing for the Ecovale HR
backend: JWT issue/verify, per-IP token buckets on the auth endpoints,
correlation IDs on every request, and the login/registration API.
"""

__version__ = "1.0.0"
