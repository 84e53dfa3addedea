"""
Utility functions.

This module provides utilities for:
- Rendering :py:mod:`rich` tables and trees to strings
"""

__all__ = ()
