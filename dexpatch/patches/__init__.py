"""
Patches for specific applications, grouped by application.
"""

__all__ = ()
