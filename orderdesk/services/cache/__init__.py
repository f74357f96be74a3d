"""
Cache service package initialization.

This module makes the cache service directory a Python package.
"""
