"""HTTP middleware: correlation IDs, request logging, rate limiting, authentication."""
