"""
Backend package for the consultation API.

This package provides a FastAPI application over the same service modules
the Cloud Functions use, plus the settings, dependency wiring and document
store abstractions shared by both entry points.
"""
