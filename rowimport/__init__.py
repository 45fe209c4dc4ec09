"""
rowimport package marker.
"""
