"""
Schemas package for wire and read models.

This module makes the schemas directory a Python package, grouping the
Pydantic snapshots, records and payloads exchanged with the API.
"""
