"""
rowimport_db package marker.
"""
