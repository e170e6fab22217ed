"""
pm exceptions.

Shared by the pm.cli entry point and the command modules.
"""


class PMError(Exception):
    """Base exception for pm errors."""

    pass
