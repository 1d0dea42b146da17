"""FastAPI application module for InvRec.

This module contains the FastAPI application, route handlers, and API
endpoints for the recommendation service. It provides RESTful interfaces
for querying recommendations, running generation and editing the scoring
configuration.
"""
