"""
rowimport/readers package marker.
"""

from rowimport.readers.csv_reader import CSVReader, detect_separator

__all__ = [
    "CSVReader",
    "detect_separator",
]
