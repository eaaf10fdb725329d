"""
Core Module

Configuration and data contracts for the road generator.
"""

from .config import GeneratorConfig, get_default_config
from .contracts import Node, Edge, IdAllocator, GenerationResult

__all__ = [
    'GeneratorConfig',
    'get_default_config',
    'Node',
    'Edge',
    'IdAllocator',
    'GenerationResult',
]
