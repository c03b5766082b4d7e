"""
Backend package for the baby registry site.

This package provides a FastAPI application recording gender-prediction
votes and guestbook messages per pseudonymous browser identity, with
interchangeable storage backends (Postgres, flat JSON files, in-memory).
"""
