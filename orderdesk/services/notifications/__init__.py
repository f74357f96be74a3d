"""
Notification service package initialization.

This module makes the notification directory a Python package.
"""
