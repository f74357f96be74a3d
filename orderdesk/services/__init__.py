"""
Services package initialization.

This module makes the services directory a Python package, allowing service
modules to be imported and organized in a modular structure.
"""
