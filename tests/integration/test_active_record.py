"""
Integration tests for ActiveRecord and ActiveQuery.

Covers the record lifecycle, finders, relations and eager loading against
in-memory SQLite.
"""

import logging

import pytest

from cti_record.records import InvalidCallError
from tests.domain import Author, Comment, Content


@pytest.fixture
def contents(db, author: Author) -> list[Content]:
    """Three persisted contents, two of them by `author`."""
    records = [
        Content(title="Alpha", slug="alpha", author_id=author.id),
        Content(title="Beta", slug="beta", author_id=author.id, status="published"),
        Content(title="Gamma", slug="gamma"),
    ]
    for record in records:
        assert record.save()
    return records


class TestInsert:
    """Tests for inserting new records."""

    def test_insert_writes_row_and_defaults(self, db, author: Author) -> None:
        # Arrange
        content = Content(title="Hello", slug="hello", author_id=author.id)

        # Act
        saved = content.save()

        # Assert
        assert saved is True
        assert content.is_new_record is False
        assert content.id == 1
        assert content.status == "draft"
        assert content.created_at is not None
        assert content.get_dirty_attributes() == {}

    def test_validation_failure_skips_insert(self, db, caplog: pytest.LogCaptureFixture) -> None:
        content = Content(slug="Not A Slug")

        with caplog.at_level(logging.INFO, logger="cti_record.records.active_record"):
            saved = content.save()

        assert saved is False
        assert content.is_new_record is True
        assert content.get_errors() == {
            "title": ["Title cannot be blank."],
            "slug": ["Slug may only contain lowercase letters, digits and dashes."],
        }
        assert "Model not inserted due to validation error." in caplog.text
        assert Content.find().count() == 0

    def test_unique_title(self, db, contents: list[Content]) -> None:
        duplicate = Content(title="Alpha")

        assert duplicate.save() is False
        assert duplicate.get_first_error("title") == 'Title "Alpha" has already been taken.'

    def test_save_without_validation(self, db) -> None:
        """Skipping validation still respects database constraints."""
        content = Content(title="Raw", status="archived")

        assert content.save(run_validation=False) is True
        assert Content.find_one(content.id).status == "archived"

    def test_load_default_values(self) -> None:
        content = Content().load_default_values()

        assert content.status == "draft"


class TestUpdate:
    """Tests for updating persisted records."""

    def test_only_dirty_attributes_are_written(self, db, contents: list[Content]) -> None:
        # Arrange
        content = Content.find_one(contents[0].id)
        content.title = "Alpha 2"

        # Act
        assert content.get_dirty_attributes() == {"title": "Alpha 2"}
        rows = content.update()

        # Assert
        assert rows == 1
        assert content.get_old_attribute("title") == "Alpha 2"
        assert Content.find_one(content.id).title == "Alpha 2"

    def test_unique_check_excludes_own_row(self, db, contents: list[Content]) -> None:
        content = contents[0]
        content.slug = "alpha-1"

        assert content.save() is True

    def test_update_without_changes(self, db, contents: list[Content]) -> None:
        assert contents[0].update() == 0

    def test_dirty_tracking(self, db, contents: list[Content]) -> None:
        content = contents[0]

        assert content.is_attribute_changed("title") is False
        content.title = "Other"
        assert content.is_attribute_changed("title") is True

        content.mark_attribute_dirty("slug")
        assert content.get_dirty_attributes() == {"title": "Other", "slug": "alpha"}

    def test_after_save_receives_old_values(self, db, contents: list[Content]) -> None:
        """after_save gets the previous value of every written attribute."""
        calls = []

        class TrackedContent(Content):
            def after_save(self, insert, changed_attributes):
                calls.append((insert, changed_attributes))

        content = TrackedContent.find_one(contents[0].id)
        content.title = "Tracked"
        content.save()

        assert calls == [(False, {"title": "Alpha"})]

    def test_refresh(self, db, contents: list[Content]) -> None:
        content = contents[0]
        Content.update_all({"status": "published"}, {"id": content.id})

        assert content.refresh() is True
        assert content.status == "published"
        assert content.get_dirty_attributes() == {}

    def test_refresh_deleted_row(self, db, contents: list[Content]) -> None:
        content = contents[0]
        Content.delete_all({"id": content.id})

        assert content.refresh() is False


class TestDelete:
    """Tests for deleting records."""

    def test_delete_cascades_through_foreign_keys(self, db, contents: list[Content]) -> None:
        # Arrange
        content = contents[0]
        Comment(content_id=content.id, text="Nice").save()

        # Act
        rows = content.delete()

        # Assert
        assert rows == 1
        assert content.is_new_record is True
        assert Content.find_one(content.id) is None
        assert Comment.find().count() == 0

    def test_before_delete_can_cancel(self, db, contents: list[Content]) -> None:
        class KeptContent(Content):
            def before_delete(self):
                return False

        content = KeptContent.find_one(contents[0].id)

        assert content.delete() is False
        assert Content.find().count() == 3


class TestHooks:
    """Tests for cancelling writes from lifecycle hooks."""

    def test_cancelled_insert_rolls_back_nested_writes(self, db) -> None:
        """Rows written by a hook before it cancels are rolled back."""

        class GuardedContent(Content):
            def before_save(self, insert):
                Author(name="Ghost").save()
                return False

        content = GuardedContent(title="Hello")

        assert content.save() is False
        assert content.is_new_record is True
        assert Author.find().count() == 0
        assert Content.find().count() == 0


class TestFinders:
    """Tests for find(), find_one() and find_all()."""

    def test_find_one_by_key_and_condition(self, db, contents: list[Content]) -> None:
        assert Content.find_one(contents[1].id).title == "Beta"
        assert Content.find_one({"slug": "gamma"}).title == "Gamma"
        assert Content.find_one(999) is None

    def test_find_all_with_list_values(self, db, contents: list[Content]) -> None:
        found = Content.find_all({"slug": ["alpha", "gamma"]})

        assert sorted(record.title for record in found) == ["Alpha", "Gamma"]

    def test_loaded_records_are_clean(self, db, contents: list[Content]) -> None:
        content = Content.find_one(contents[0].id)

        assert content.is_new_record is False
        assert content.get_dirty_attributes() == {}
        assert content.equals(contents[0]) is True

    def test_order_limit_offset(self, db, contents: list[Content]) -> None:
        query = Content.find().order_by("-title").limit(2).offset(1)

        assert [record.title for record in query.all()] == ["Beta", "Alpha"]

    def test_count_ignores_limit(self, db, contents: list[Content]) -> None:
        query = Content.find().where({"status": "draft"}).limit(1)

        assert query.count() == 2
        assert query.exists() is True
        assert Content.find().where({"status": "archived"}).exists() is False

    def test_filter_where_skips_empty_values(self, db, contents: list[Content]) -> None:
        query = Content.find().filter_where({"status": "", "author_id": None, "slug": "beta"})

        assert [record.title for record in query.all()] == ["Beta"]

    def test_null_condition(self, db, contents: list[Content]) -> None:
        assert [record.title for record in Content.find_all({"author_id": None})] == ["Gamma"]

    def test_index_by(self, db, contents: list[Content]) -> None:
        indexed = Content.find().index_by("slug").all()

        assert sorted(indexed) == ["alpha", "beta", "gamma"]
        assert indexed["beta"].title == "Beta"

    def test_as_array(self, db, contents: list[Content]) -> None:
        rows = Content.find().where({"slug": "alpha"}).as_array().all()

        assert isinstance(rows[0], dict)
        assert rows[0]["title"] == "Alpha"

    def test_update_all_and_delete_all(self, db, contents: list[Content]) -> None:
        assert Content.update_all({"status": "published"}, {"status": "draft"}) == 2
        assert Content.delete_all({"status": "published"}) == 3
        assert Content.find().count() == 0


class TestRelations:
    """Tests for lazy, eager and joined relations."""

    def test_lazy_has_one(self, db, contents: list[Content]) -> None:
        content = Content.find_one(contents[0].id)

        assert content.is_relation_populated("author") is False
        assert content.author.name == "Ada"
        assert content.is_relation_populated("author") is True

    def test_missing_has_one_is_none(self, db, contents: list[Content]) -> None:
        assert Content.find_one(contents[2].id).author is None

    def test_lazy_has_many(self, db, author: Author, contents: list[Content]) -> None:
        titles = sorted(record.title for record in author.contents)

        assert titles == ["Alpha", "Beta"]

    def test_relation_query_can_be_refined(self, db, author: Author, contents: list[Content]) -> None:
        query = author.get_relation("contents").where({"status": "published"})

        assert [record.title for record in query.all()] == ["Beta"]

    def test_relations_are_read_only(self, db, contents: list[Content]) -> None:
        with pytest.raises(InvalidCallError):
            contents[0].author = Author(name="Other")

    def test_with_loads_relation_for_all_records(self, db, contents: list[Content]) -> None:
        records = Content.find().with_("author").order_by("id").all()

        assert all(record.is_relation_populated("author") for record in records)
        assert [record.related_records["author"] is not None for record in records] == [True, True, False]

    def test_with_has_many(self, db, author: Author, contents: list[Content]) -> None:
        Comment(content_id=contents[0].id, text="First").save()
        Comment(content_id=contents[0].id, text="Second").save()

        records = Content.find().with_("comments").order_by("id").all()

        assert [len(record.comments) for record in records] == [2, 0, 0]

    def test_join_with_filters_on_related_columns(self, db, contents: list[Content]) -> None:
        query = Content.find().inner_join_with("author").where({"authors.name": "Ada"}).order_by("title")

        records = query.all()

        assert [record.title for record in records] == ["Alpha", "Beta"]
        assert records[0].is_relation_populated("author") is True
        assert records[0].author.name == "Ada"

    def test_left_join_keeps_rows_without_relation(self, db, contents: list[Content]) -> None:
        records = Content.find().join_with("author").order_by("id").all()

        assert len(records) == 3
        assert records[2].author is None

    def test_join_has_many_returns_distinct_rows(self, db, author: Author, contents: list[Content]) -> None:
        Comment(content_id=contents[0].id, text="First").save()
        Comment(content_id=contents[0].id, text="Second").save()

        records = Content.find().inner_join_with("comments").all()

        assert [record.title for record in records] == ["Alpha"]
        assert len(records[0].comments) == 2

    def test_with_in_array_mode(self, db, contents: list[Content]) -> None:
        rows = Content.find().with_("author").as_array().order_by("id").all()

        assert rows[0]["author"]["name"] == "Ada"
        assert rows[2]["author"] is None
