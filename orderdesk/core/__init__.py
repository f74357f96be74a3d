"""
Core package for shared utilities.

This module makes the core directory a Python package, enabling proper
import resolution for settings, logging and the shared error taxonomy.
"""
