"""
Spatial Operations Module

This module provides the uniform cell index used for neighbor and
intersection queries during road generation.
"""

from .cell_index import CellIndex

__all__ = [
    'CellIndex',
]
