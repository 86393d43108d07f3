"""
Local adapters for reference materials and unit persistence.
"""

from exam_generator.storage.local import DirectoryMaterialSource, JsonUnitStore

__all__ = [
    "DirectoryMaterialSource",
    "JsonUnitStore",
]
