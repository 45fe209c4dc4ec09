"""
rowimport/domain package marker.
"""

from rowimport.domain.field_rule import FieldKey, FieldRule
from rowimport.domain.hooks import Hook, HookKind
from rowimport.domain.import_row import CustomError, ImportRow
from rowimport.domain.object_adapter import ObjectRecordAdapter
from rowimport.domain.record_adapter import RecordAdapter
from rowimport.domain.report import ImportStatus, OutcomeReport, ReportBucket
from rowimport.domain.run_config import DEFAULT_ENTITY, FailurePolicy, RunConfig

__all__ = [
    "CustomError",
    "DEFAULT_ENTITY",
    "FailurePolicy",
    "FieldKey",
    "FieldRule",
    "Hook",
    "HookKind",
    "ImportRow",
    "ImportStatus",
    "ObjectRecordAdapter",
    "OutcomeReport",
    "RecordAdapter",
    "ReportBucket",
    "RunConfig",
]
