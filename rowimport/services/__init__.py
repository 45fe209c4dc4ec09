"""
rowimport/services package marker.
"""

from rowimport.services.import_service import CSVImporter, resolve_adapter
from rowimport.services.persistence_orchestrator import PersistenceOrchestrator
from rowimport.services.row_resolver import RowResolver

__all__ = [
    "CSVImporter",
    "PersistenceOrchestrator",
    "RowResolver",
    "resolve_adapter",
]
