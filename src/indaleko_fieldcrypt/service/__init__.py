"""
FieldCrypt Service API.

This module provides the REST API for the FieldCrypt service, allowing
clients to run query trees through the encryption pipeline over HTTP.
"""

from .api import app, get_service, run_query, start_api

__all__ = ["app", "get_service", "run_query", "start_api"]
