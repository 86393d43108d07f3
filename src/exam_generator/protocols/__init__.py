"""
Declarative exam protocols and their registry.
"""

from exam_generator.protocols.registry import ProtocolRegistry, get_registry

__all__ = [
    "ProtocolRegistry",
    "get_registry",
]
