"""
Query class for class-table-inheritance children.

Every query for a child record inner-joins the parent table through
`parent_relation`, so conditions and ordering can use parent columns and the
parent record is populated from the same row.

Dependencies: cti_record.records
System role: Child queries joined with their parent table
"""

from collections.abc import Mapping
from typing import Any

from cti_record.records.active_query import ActiveQuery


class CtiActiveQuery(ActiveQuery):
    """ActiveQuery always inner-joined with the parent relation."""

    def init(self) -> None:
        super().init()
        self.inner_join_with("parent_relation")

    def populate(self, rows: list[Mapping[str, Any]]) -> list[Any] | dict[Any, Any]:
        models = super().populate(rows)
        if not self.is_as_array:
            return models

        prototype = self.model_class.instance()
        inherited = set(prototype.parent_attributes_inherited()) - set(prototype.get_own_attributes())
        for model in models.values() if isinstance(models, dict) else models:
            # A row can lack the parent when the query skipped eager loading
            parent = model.get("parent_relation")
            if not parent:
                continue
            for name, value in parent.items():
                if name in inherited:
                    model[name] = value
        return models
