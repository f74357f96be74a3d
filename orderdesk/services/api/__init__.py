"""
API client package initialization.

This module makes the API client directory a Python package.
"""
