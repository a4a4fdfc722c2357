"""
Integration tests for reconciliation and list membership against SQLite.
"""

import pytest
from sqlalchemy.exc import OperationalError

from bookdrop.exceptions import (
    AuthenticationRequired,
    NotFoundError,
    Unauthorized,
    UniquenessConflict,
    ValidationError,
)
from bookdrop.identification.book import Book
from bookdrop.identification.change_detector import BookChange, ChangeAction
from bookdrop.lists.location import LocationRecord
from bookdrop.lists.purposes import ListPurpose
from bookdrop.storage.models import ListBookModel

pytestmark = pytest.mark.integration


def positions(list_repository, list_id):
    with list_repository.get_session() as session:
        rows = session.query(ListBookModel).filter(
            ListBookModel.list_id == list_id,
        ).order_by(ListBookModel.position).all()
        return [(row.position, row.book_id) for row in rows]


@pytest.fixture
def location():
    return LocationRecord.build(37.8716, -122.2727, location_name="Oak St")


class TestBookRepository:
    """Identity and insert-or-get."""

    def test_insert_or_get_is_idempotent(self, book_repository):
        first = book_repository.insert_or_get(Book(title="Dune", author="Frank Herbert"))
        second = book_repository.insert_or_get(Book(title="Dune", author="Frank Herbert", publisher="Ace"))

        assert first.id == second.id
        assert book_repository.count() == 1

    def test_same_title_different_author_is_a_new_book(self, book_repository):
        book_repository.insert_or_get(Book(title="Dune", author="Frank Herbert"))
        book_repository.insert_or_get(Book(title="Dune", author="Brian Herbert"))

        assert book_repository.count() == 2

    def test_insert_conflict_raises(self, book_repository):
        book_repository.insert(Book(title="Dune", author="Frank Herbert"))

        with pytest.raises(UniquenessConflict):
            book_repository.insert(Book(title="Dune", author="Frank Herbert"))

    def test_conflict_is_recovered_with_one_refetch(self, book_repository, monkeypatch):
        stored = book_repository.insert(Book(title="Dune", author="Frank Herbert"))

        real_lookup = book_repository.get_by_title_author
        calls = []

        def lookup(title, author):
            calls.append(title)
            # Miss on the first lookup, as if another request inserted meanwhile.
            return None if len(calls) == 1 else real_lookup(title, author)

        monkeypatch.setattr(book_repository, "get_by_title_author", lookup)

        resolved = book_repository.insert_or_get(Book(title="Dune", author="Frank Herbert"))

        assert resolved.id == stored.id
        assert len(calls) == 2

    def test_unresolvable_conflict_returns_none(self, book_repository, monkeypatch):
        book_repository.insert(Book(title="Dune", author="Frank Herbert"))
        monkeypatch.setattr(book_repository, "get_by_title_author", lambda title, author: None)

        assert book_repository.insert_or_get(Book(title="Dune", author="Frank Herbert")) is None


class TestListLifecycle:
    """Creation, ordering and cleanup."""

    def test_create_list_positions_books_in_order(self, list_service, list_repository, sample_books):
        report = list_service.create_list("owner", sample_books, name="Shelf")

        stored = report.book_list
        assert stored.name == "Shelf"
        assert [b.title for b in stored.books] == [b.title for b in sample_books]
        assert [p for p, _ in positions(list_repository, stored.id)] == [0, 1, 2]

    def test_blank_author_becomes_unknown(self, list_service):
        report = list_service.create_list("owner", [Book(title="Untitled Zine", author="  ")])

        assert report.books[0].author == "Unknown"

    def test_default_name(self, list_service, sample_books):
        report = list_service.create_list("owner", sample_books, name="   ")

        assert report.book_list.name == "My Book List"

    def test_create_requires_books(self, list_service):
        with pytest.raises(ValidationError):
            list_service.create_list("owner", [])

    def test_location_bound_purpose_requires_location(self, list_service, sample_books, location):
        with pytest.raises(ValidationError):
            list_service.create_list("owner", sample_books, purpose=ListPurpose.PICKUP)

        report = list_service.create_list(
            "owner", sample_books, purpose=ListPurpose.PICKUP, location=location
        )
        assert report.book_list.exact_latitude == 37.8716
        assert report.book_list.has_location

    def test_books_are_shared_between_lists(self, list_service, book_repository, sample_books):
        first = list_service.create_list("owner", sample_books)
        second = list_service.create_list("other", [Book(title="Dune", author="Frank Herbert")])

        assert second.books[0].id == first.books[0].id
        assert book_repository.count() == 3

    def test_remove_book_resequences_and_cleans_up(
        self, list_service, list_repository, book_repository, sample_books
    ):
        report = list_service.create_list("owner", sample_books)
        stored = report.book_list
        middle = stored.books[1].id

        result = list_service.remove_book(stored.share_url, middle, "owner")

        assert result.removed_book_ids == [middle]
        assert book_repository.get(middle) is None
        assert [p for p, _ in positions(list_repository, stored.id)] == [0, 1]

    def test_removed_book_still_on_another_list_survives(self, list_service, book_repository, sample_books):
        first = list_service.create_list("owner", sample_books)
        list_service.create_list("other", [Book(title="Dune", author="Frank Herbert")])
        dune_id = first.book_list.books[0].id

        result = list_service.remove_book(first.book_list.share_url, dune_id, "owner")

        assert result.removed_book_ids == []
        assert book_repository.get(dune_id) is not None

    def test_remove_missing_book(self, list_service, sample_books):
        share_url = list_service.create_list("owner", sample_books).book_list.share_url

        with pytest.raises(NotFoundError):
            list_service.remove_book(share_url, "not-on-list", "owner")

    def test_replace_books(self, list_service, list_repository, book_repository, sample_books):
        stored = list_service.create_list("owner", sample_books).book_list
        dropped = stored.books[2].id

        report = list_service.replace_books(
            stored.share_url,
            [
                Book(title="Kindred", author="Octavia E. Butler"),
                Book(title="Dune", author="Frank Herbert"),
                Book(title="Dune", author="Frank Herbert"),
            ],
            "owner",
        )

        assert [b.title for b in report.book_list.books] == ["Kindred", "Dune"]
        assert [p for p, _ in positions(list_repository, stored.id)] == [0, 1]
        assert dropped in report.removed_book_ids
        assert book_repository.get(dropped) is None

    def test_database_error_skips_only_that_book(self, list_service, book_repository, monkeypatch):
        real_insert = book_repository.insert

        def insert(book):
            if book.title == "Bad":
                raise OperationalError("INSERT INTO books", {}, Exception("disk I/O error"))
            return real_insert(book)

        monkeypatch.setattr(book_repository, "insert", insert)

        report = list_service.create_list(
            "owner",
            [Book(title="Dune", author="Frank Herbert"), Book(title="Bad", author="Nobody")],
        )

        assert report.skipped == ["Bad"]
        assert [b.title for b in report.book_list.books] == ["Dune"]
        assert book_repository.count() == 1

    def test_replace_with_nothing_empties_the_list(
        self, list_service, list_repository, book_repository, sample_books
    ):
        stored = list_service.create_list("owner", sample_books).book_list

        report = list_service.replace_books(stored.share_url, [], "owner")

        assert report.book_list.books == []
        assert positions(list_repository, stored.id) == []
        assert sorted(report.removed_book_ids) == sorted(stored.book_ids)
        assert book_repository.count() == 0

    def test_add_books_appends_and_skips_existing(self, list_service, list_repository, sample_books):
        stored = list_service.create_list("owner", sample_books[:2]).book_list

        report = list_service.add_books(
            stored.share_url,
            [Book(title="Dune", author="Frank Herbert"), Book(title="Kindred", author="Octavia E. Butler")],
            "owner",
        )

        assert [b.title for b in report.books] == ["Kindred"]
        assert [b.title for b in report.book_list.books] == ["Dune", "Neuromancer", "Kindred"]
        assert [p for p, _ in positions(list_repository, stored.id)] == [0, 1, 2]

    def test_delete_list_removes_orphans(self, list_service, book_repository, sample_books):
        share_url = list_service.create_list("owner", sample_books).book_list.share_url

        report = list_service.delete_list(share_url, "owner")

        assert len(report.removed_book_ids) == 3
        assert book_repository.count() == 0
        with pytest.raises(NotFoundError):
            list_service.get_list(share_url)


class TestAuthorization:
    """Owner-only and community-editable rules."""

    def test_non_owner_cannot_edit_sharing_list(self, list_service, sample_books):
        stored = list_service.create_list("owner", sample_books).book_list

        with pytest.raises(Unauthorized):
            list_service.add_books(stored.share_url, [Book(title="Kindred", author="Octavia E. Butler")], "stranger")

        # Nothing changed
        assert len(list_service.get_list(stored.share_url).books) == 3

    def test_anonymous_actor(self, list_service, sample_books):
        stored = list_service.create_list("owner", sample_books).book_list

        with pytest.raises(AuthenticationRequired):
            list_service.remove_book(stored.share_url, stored.books[0].id, None)

    def test_anyone_signed_in_can_edit_minilibrary(self, list_service, sample_books, location):
        stored = list_service.create_list(
            "owner", sample_books, purpose=ListPurpose.MINILIBRARY, location=location
        ).book_list

        report = list_service.add_books(
            stored.share_url, [Book(title="Kindred", author="Octavia E. Butler")], "neighbour"
        )

        assert len(report.book_list.books) == 4

    def test_minilibrary_delete_and_rename_stay_owner_only(self, list_service, sample_books, location):
        stored = list_service.create_list(
            "owner", sample_books, purpose=ListPurpose.MINILIBRARY, location=location
        ).book_list

        with pytest.raises(Unauthorized):
            list_service.delete_list(stored.share_url, "neighbour")
        with pytest.raises(Unauthorized):
            list_service.update_details(stored.share_url, "neighbour", name="Mine now")

        updated = list_service.update_details(stored.share_url, "neighbour", description="Fresh batch")
        assert updated.description == "Fresh batch"

    def test_purpose_change_needs_location(self, list_service, sample_books):
        stored = list_service.create_list("owner", sample_books).book_list

        with pytest.raises(ValidationError):
            list_service.update_details(stored.share_url, "owner", purpose=ListPurpose.BUYING)

        updated = list_service.update_details(stored.share_url, "owner", purpose=ListPurpose.SEARCHING)
        assert updated.purpose == "searching"


class TestLocationUpdates:

    @pytest.mark.asyncio
    async def test_set_and_remove_location(self, list_service, sample_books):
        stored = list_service.create_list("owner", sample_books).book_list

        updated = await list_service.update_location(stored.share_url, "owner", 37.87, -122.27, "Porch")
        assert updated.has_location
        assert updated.location_name == "Porch"

        cleared = await list_service.update_location(stored.share_url, "owner", remove=True)
        assert not cleared.has_location
        assert cleared.exact_latitude is None

    @pytest.mark.asyncio
    async def test_cannot_remove_required_location(self, list_service, sample_books, location):
        stored = list_service.create_list(
            "owner", sample_books, purpose=ListPurpose.PICKUP, location=location
        ).book_list

        with pytest.raises(ValidationError):
            await list_service.update_location(stored.share_url, "owner", remove=True)


class TestApplyChanges:
    """Confirmed mini-library deltas."""

    @pytest.fixture
    def minilibrary(self, list_service, sample_books, location):
        return list_service.create_list(
            "owner", sample_books, purpose=ListPurpose.MINILIBRARY, location=location
        ).book_list

    def test_apply_additions_and_removals(self, list_service, list_repository, book_repository, minilibrary):
        gone = minilibrary.books[0]
        changes = [
            BookChange(Book(title="Kindred", author="Octavia E. Butler"), ChangeAction.ADD, 0.8),
            BookChange(gone, ChangeAction.REMOVE, 0.6),
        ]

        report = list_service.apply_changes(minilibrary.share_url, changes, "neighbour")

        titles = [b.title for b in report.book_list.books]
        assert titles == ["Neuromancer", "The Left Hand of Darkness", "Kindred"]
        assert report.removed_book_ids == [gone.id]
        assert book_repository.get(gone.id) is None
        assert [p for p, _ in positions(list_repository, minilibrary.id)] == [0, 1, 2]

    def test_removal_matches_by_title_and_author(self, list_service, minilibrary):
        # Detected copy carries a fresh id, not the stored one
        changes = [BookChange(Book(title="Neuromancer", author="William Gibson"), ChangeAction.REMOVE, 0.6)]

        report = list_service.apply_changes(minilibrary.share_url, changes, "neighbour")

        assert "Neuromancer" not in [b.title for b in report.book_list.books]

    def test_only_for_minilibraries(self, list_service, sample_books):
        stored = list_service.create_list("owner", sample_books).book_list

        with pytest.raises(ValidationError):
            list_service.apply_changes(
                stored.share_url,
                [BookChange(Book(title="Kindred", author="Octavia E. Butler"), ChangeAction.ADD, 0.8)],
                "owner",
            )


class TestFavorites:
    """Bookmarking other people's lists."""

    @pytest.fixture
    def shared(self, list_service, sample_books):
        return list_service.create_list("owner", sample_books, name="Porch").book_list

    def test_favorite_and_list(self, list_service, shared):
        entry = list_service.add_favorite(shared.share_url, "reader")

        assert entry.book_list.id == shared.id
        assert entry.favorited_at is not None

        favorites = list_service.favorites("reader")
        assert [f.book_list.name for f in favorites] == ["Porch"]
        assert len(favorites[0].book_list.books) == 3
        assert list_service.favorites("someone-else") == []

    def test_cannot_favorite_own_list(self, list_service, shared):
        with pytest.raises(ValidationError):
            list_service.add_favorite(shared.share_url, "owner")

    def test_repeat_favorite_conflicts(self, list_service, shared):
        list_service.add_favorite(shared.share_url, "reader")

        with pytest.raises(UniquenessConflict):
            list_service.add_favorite(shared.share_url, "reader")

    def test_unknown_list(self, list_service):
        with pytest.raises(NotFoundError):
            list_service.add_favorite("no-such-list", "reader")

    def test_anonymous_actor(self, list_service, shared):
        with pytest.raises(AuthenticationRequired):
            list_service.add_favorite(shared.share_url, None)
        with pytest.raises(AuthenticationRequired):
            list_service.favorites(None)

    def test_remove_favorite(self, list_service, shared):
        list_service.add_favorite(shared.share_url, "reader")

        assert list_service.remove_favorite(shared.share_url, "reader") is True
        assert list_service.remove_favorite(shared.share_url, "reader") is False
        assert list_service.favorites("reader") == []

    def test_deleting_the_list_drops_its_favorites(self, list_service, shared):
        list_service.add_favorite(shared.share_url, "reader")

        list_service.delete_list(shared.share_url, "owner")

        assert list_service.favorites("reader") == []
