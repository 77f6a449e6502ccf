"""
Integration tests for data providers and search models.

Seeds one article, one video and two plain contents.
"""

import pytest

from cti_record.cti import CtiSearchModelInterface, CtiSearchModelMixin
from cti_record.records import ActiveDataProvider, Pagination, Sort
from cti_record.records.validators import SafeValidator
from tests.domain import Article, ArticleSearch, Author, Content, ContentSearch, Video


@pytest.fixture
def seeded(db, author: Author) -> None:
    assert Article(title="Hello", slug="hello", author_id=author.id, body="Text").save()
    assert Video(title="Clip", url="https://example.com/clip").save()
    assert Content(title="Help", slug="help", author_id=author.id).save()
    assert Content(title="Page", slug="page").save()


class TestPagination:
    """Tests for Pagination parameter handling."""

    def test_params_are_one_based(self) -> None:
        pagination = Pagination(page_size=10)

        pagination.apply_params({"page": "3", "per-page": "5"})

        assert pagination.page == 2
        assert pagination.offset == 10
        assert pagination.limit == 5

    def test_page_size_is_limited(self) -> None:
        pagination = Pagination()

        pagination.apply_params({"per-page": "500"})

        assert pagination.page_size == 50

    def test_invalid_values_fall_back(self) -> None:
        pagination = Pagination(page_size=10)

        pagination.apply_params({"page": "abc", "per-page": "x"})

        assert pagination.page == 0
        assert pagination.page_size == 10

    def test_clamp(self) -> None:
        pagination = Pagination(page=9, page_size=2)
        pagination.total_count = 3

        pagination.clamp()

        assert pagination.page_count == 2
        assert pagination.page == 1


class TestSort:
    """Tests for Sort parameter parsing."""

    def test_parses_directions(self) -> None:
        sort = Sort(attributes=["id", "title"])

        sort.apply_params({"sort": "-title,id"})

        assert sort.orders == {"title": True, "id": False}

    def test_unknown_attributes_are_ignored(self) -> None:
        sort = Sort(attributes=["title"], default_order={"title": False})

        sort.apply_params({"sort": "-password"})

        assert sort.orders == {}

    def test_default_order(self) -> None:
        sort = Sort(attributes=["title"], default_order={"title": True})

        sort.apply_params({})

        assert sort.orders == {"title": True}


class TestActiveDataProvider:
    """Tests for ActiveDataProvider over a query."""

    def test_page_and_sort(self, seeded) -> None:
        # Arrange
        provider = ActiveDataProvider(
            Content.find(),
            pagination=Pagination(page_size=2),
            sort=Sort(attributes=["title"]),
            params={"page": "2", "sort": "-title"},
        )

        # Act
        titles = [record.title for record in provider.models]

        # Assert
        assert titles == ["Hello", "Clip"]
        assert provider.total_count == 4
        assert provider.count == 2
        assert provider.pagination.page_count == 2

    def test_page_out_of_range_shows_last_page(self, seeded) -> None:
        provider = ActiveDataProvider(
            Content.find().order_by("id"),
            pagination=Pagination(page_size=3),
            params={"page": "10"},
        )

        assert [record.title for record in provider.models] == ["Page"]

    def test_without_pagination(self, seeded) -> None:
        provider = ActiveDataProvider(Content.find())

        assert provider.count == 4

    def test_keys(self, seeded) -> None:
        provider = ActiveDataProvider(Content.find().order_by("id"))
        array_provider = ActiveDataProvider(Content.find().order_by("id").as_array())

        assert provider.keys == [1, 2, 3, 4]
        assert array_provider.keys == [1, 2, 3, 4]

    def test_child_query(self, seeded) -> None:
        provider = ActiveDataProvider(Article.find(), sort=Sort(attributes=["title"]), params={"sort": "title"})

        assert [record.title for record in provider.models] == ["Hello"]


class TestContentSearch:
    """Tests for the parent search model."""

    def test_without_filters(self, seeded) -> None:
        provider = ContentSearch().search({})

        assert provider.total_count == 4

    def test_filters(self, seeded) -> None:
        provider = ContentSearch().search({"ContentSearch": {"title": "He"}, "sort": "title"})

        assert [record.title for record in provider.models] == ["Hello", "Help"]

    def test_status_filter(self, seeded) -> None:
        provider = ContentSearch().search({"ContentSearch": {"status": "published"}})

        assert [record.title for record in provider.models] == ["Clip"]

    def test_invalid_filter_skips_filtering(self, seeded) -> None:
        search = ContentSearch()

        provider = search.search({"ContentSearch": {"author_id": "abc", "status": "published"}})

        assert search.has_errors("author_id") is True
        assert provider.total_count == 4


class TestArticleSearch:
    """Tests for a child search model built on the parent search model."""

    def test_rules_adjust_parent_rules(self) -> None:
        rules = ArticleSearch().rules()

        assert rules == [(["title", "status"], "safe"), ("body", "safe")]

    def test_all_rule_attributes_are_safe(self) -> None:
        search = ArticleSearch()

        assert search.scenarios() == {"default": ["title", "status", "body"]}
        assert all(isinstance(validator, SafeValidator) for validator in search.get_validators())

    def test_search_limits_parent_results_to_children(self, seeded) -> None:
        provider = ArticleSearch().search({"ContentSearch": {"title": "He"}})

        assert [record.title for record in provider.models] == ["Hello"]
        assert provider.total_count == 1

    def test_missing_parent_search_model_class(self) -> None:
        class IncompleteSearch(CtiSearchModelMixin, Article, CtiSearchModelInterface):
            pass

        with pytest.raises(TypeError):
            IncompleteSearch()
