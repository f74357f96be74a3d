"""
Entity resolver package initialization.

This module makes the resolver directory a Python package.
"""
