"""
rowimport/mappers package marker.
"""

from rowimport.mappers.field_matcher import match, normalize_header
from rowimport.mappers.header_mapping import HeaderMapping, MappedColumn

__all__ = [
    "HeaderMapping",
    "MappedColumn",
    "match",
    "normalize_header",
]
