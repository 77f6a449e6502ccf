"""
Class-table inheritance for active records.

Exports:
  - CtiActiveRecord: child record layered on a parent record
  - CtiActiveQuery: child query joined with the parent table
  - CtiSearchModelInterface, CtiSearchModelMixin: child search models
"""

from cti_record.cti.active_query import CtiActiveQuery
from cti_record.cti.active_record import CtiActiveRecord
from cti_record.cti.search import CtiSearchModelInterface, CtiSearchModelMixin

__all__ = [
    "CtiActiveRecord",
    "CtiActiveQuery",
    "CtiSearchModelInterface",
    "CtiSearchModelMixin",
]
