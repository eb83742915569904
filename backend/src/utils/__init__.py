"""
Utility modules for the scheduling core.

This package contains shared helpers used across the application, mainly
timezone-aware date and time handling.
"""
