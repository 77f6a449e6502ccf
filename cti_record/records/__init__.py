"""
Active-record layer on top of SQLAlchemy Core.

Exports:
  - Model: attributes, scenarios, validation and errors
  - ActiveRecord, relation: table-backed records and relation declarations
  - ActiveQuery: query builder returning records
  - ActiveDataProvider, Pagination, Sort: paginated listings
  - Validator: base class for custom validators
"""

from cti_record.records.active_query import ActiveQuery
from cti_record.records.active_record import ActiveRecord, relation
from cti_record.records.data_provider import ActiveDataProvider, Pagination, Sort
from cti_record.records.exceptions import (
    InvalidArgumentError,
    InvalidCallError,
    InvalidConfigError,
    RecordError,
    StaleObjectError,
    UnknownMethodError,
    UnknownPropertyError,
)
from cti_record.records.model import Model
from cti_record.records.validators import Validator

__all__ = [
    # Models
    "Model",
    "ActiveRecord",
    "relation",
    "ActiveQuery",
    "Validator",
    # Listings
    "ActiveDataProvider",
    "Pagination",
    "Sort",
    # Errors
    "RecordError",
    "UnknownPropertyError",
    "UnknownMethodError",
    "InvalidArgumentError",
    "InvalidConfigError",
    "InvalidCallError",
    "StaleObjectError",
]
