"""
Search models for class-table-inheritance children.

A child search model reuses the search model of its parent: the parent's
search rules and filtering are applied first, then the child adjusts them.

    class ArticleSearch(CtiSearchModelMixin, Article, CtiSearchModelInterface):
        def get_parent_search_model_class(self):
            return ContentSearch

        def rule_adjustments(self):
            return {"status_in": None}

        def search_adjustments(self, params, data_provider):
            data_provider.query.and_where({"status": "published"})
            return data_provider

Dependencies: cti_record.records
System role: Search rules and data providers shared between parent and child
"""

from abc import ABC, abstractmethod
from typing import Any

from cti_record.records.data_provider import ActiveDataProvider
from cti_record.records.helpers import merge_rules
from cti_record.records.model import Model
from cti_record.records.validators import Validator


class CtiSearchModelInterface(ABC):
    """Search model that builds on the search model of its parent record."""

    @abstractmethod
    def get_parent_search_model_class(self) -> type:
        """Search model class holding the parent's rules and search logic."""


class CtiSearchModelMixin:
    """
    Search behavior delegating to the parent search model.

    Optional hooks on the host class:
        rule_adjustments(): rules merged over the parent search rules
        search_adjustments(params, data_provider): returns the data provider
            after adjusting the parent's search
    """

    def rules(self) -> list:
        rules = self.get_parent_search_model_class().instance().rules()
        if self.has_method("rule_adjustments"):
            rules = merge_rules(rules, self.rule_adjustments())
        return rules

    def scenarios(self) -> dict[str, list[str]]:
        # Search models validate and mass-assign in every scenario
        return Model.scenarios(self)

    def create_validators(self) -> list[Validator]:
        return Model.create_validators(self)

    def search(self, params: dict[str, Any]) -> ActiveDataProvider:
        """
        Build the data provider for `params`.

        The parent search model runs first; `search_adjustments()`, when
        defined, receives its data provider and returns the one to use.
        """
        data_provider = self.get_parent_search_model_class()().search(params)
        if self.has_method("search_adjustments"):
            data_provider = self.search_adjustments(params, data_provider)
        return data_provider
