"""Pydantic request/response schemas for the Hydrotrack API."""
