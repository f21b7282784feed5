"""
Core utility helpers.

This package contains reusable utilities such as pagination.
"""

from .pagination import PaginationHelper, PaginatedData

__all__ = ["PaginationHelper", "PaginatedData"]
