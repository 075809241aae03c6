"""Core business logic: scoring, clients, errors and data models.

This module is framework-agnostic. It has no dependency on MCP, Starlette,
or the database layer. The server, the HTTP routes and the background
pipeline all import from here.
"""
