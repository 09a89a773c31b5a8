"""Tests for candidate generation, collaborative filtering and exclusions."""
from libris.models import BookStatus, TransactionStatus
from libris.services.candidates import find_collaborative_book_ids, generate_candidates
from libris.services.interaction_store import ExclusionSets, StoreReader
from libris.services.user_profile import UserProfile


def test_collaborative_filtering_finds_co_borrowed_books(session_factory, make_user, make_book, make_transaction):
    """Books borrowed by two or more neighbors (>= 2 shared books) qualify."""
    b1, b2, b3 = make_book("B1"), make_book("B2"), make_book("B3")
    x, y, z = make_book("X"), make_book("Y"), make_book("Z")

    target = make_user("target@test.com")
    for book in (b1, b2, b3):
        make_transaction(target, book, TransactionStatus.RETURNED)

    n1 = make_user("n1@test.com")
    for book in (b1, b2, x):
        make_transaction(n1, book, TransactionStatus.RETURNED)
    n2 = make_user("n2@test.com")
    for book in (b1, b3, x, y):
        make_transaction(n2, book, TransactionStatus.BORROWED)
    # Shares only one book: not a neighbor, so Y stays at a single borrower
    n3 = make_user("n3@test.com")
    for book in (b2, y):
        make_transaction(n3, book, TransactionStatus.RETURNED)
    n4 = make_user("n4@test.com")
    for book in (b1, b2, z):
        make_transaction(n4, book, TransactionStatus.RETURNED)

    with StoreReader(session_factory) as reader:
        assert find_collaborative_book_ids(reader, target.id) == [x.id]


def test_collaborative_filtering_ignores_pending_loans(session_factory, make_user, make_book, make_transaction):
    b1, b2, x = make_book("B1"), make_book("B2"), make_book("X")
    target = make_user("target@test.com")
    make_transaction(target, b1, TransactionStatus.RETURNED)
    make_transaction(target, b2, TransactionStatus.RETURNED)
    for email in ("n1@test.com", "n2@test.com"):
        neighbor = make_user(email)
        make_transaction(neighbor, b1, TransactionStatus.RETURNED)
        make_transaction(neighbor, b2, TransactionStatus.RETURNED)
        make_transaction(neighbor, x, TransactionStatus.PENDING_APPROVAL)

    with StoreReader(session_factory) as reader:
        assert find_collaborative_book_ids(reader, target.id) == []


def test_collaborative_filtering_without_history(session_factory, make_user):
    user = make_user()
    with StoreReader(session_factory) as reader:
        assert find_collaborative_book_ids(reader, user.id) == []


def test_no_signal_means_no_candidates(session_factory, make_user, make_book):
    make_book("Anything", categories=["Art"])
    user = make_user()
    with StoreReader(session_factory) as reader:
        assert generate_candidates(reader, UserProfile(), user.id, ExclusionSets()) == []


def test_collaborative_books_become_candidates(session_factory, make_user, make_book, make_transaction):
    b1, b2, x = make_book("B1"), make_book("B2"), make_book("X", categories=["Cooking"])
    target = make_user("target@test.com")
    make_transaction(target, b1, TransactionStatus.RETURNED)
    make_transaction(target, b2, TransactionStatus.RETURNED)
    for email in ("n1@test.com", "n2@test.com"):
        neighbor = make_user(email)
        for book in (b1, b2, x):
            make_transaction(neighbor, book, TransactionStatus.RETURNED)

    with StoreReader(session_factory) as reader:
        candidates = generate_candidates(reader, UserProfile(), target.id, ExclusionSets())
    assert [book.title for book in candidates] == ["X"]
    assert candidates[0].categories == ("Cooking",)


def test_candidates_match_any_strategy_and_respect_availability(session_factory, make_user, make_book):
    make_book("Category hit", categories=["History"])
    make_book("Tag hit", tags=["war"])
    make_book("Author hit", author="Mary Beard")
    make_book("Publisher hit", publisher="Penguin")
    make_book("Format hit", format="audiobook")
    make_book("Year hit", year=1985)
    make_book("Borrowed", categories=["History"], status=BookStatus.BORROWED)
    make_book("No match", categories=["Cooking"], year=2020)
    user = make_user()

    profile = UserProfile(
        top_categories=["History"],
        top_tags=["war"],
        top_authors=["Mary Beard"],
        top_publishers=["Penguin"],
        top_formats=["audiobook"],
        avg_preferred_year=1990,
        total_interactions=3,
    )
    with StoreReader(session_factory) as reader:
        titles = {book.title for book in generate_candidates(reader, profile, user.id, ExclusionSets())}

    assert titles == {"Category hit", "Tag hit", "Author hit", "Publisher hit", "Format hit", "Year hit"}


def test_candidate_limit_prefers_popular_books(session_factory, make_user, make_book):
    for i in range(5):
        make_book(f"History {i}", categories=["History"], popularity_score=float(i * 10))
    user = make_user()
    profile = UserProfile(top_categories=["History"], total_interactions=1)

    with StoreReader(session_factory) as reader:
        candidates = generate_candidates(reader, profile, user.id, ExclusionSets(), limit=3)
    assert [book.title for book in candidates] == ["History 4", "History 3", "History 2"]


def test_exclusions_by_isbn_title_and_id(session_factory, make_user, make_book):
    by_isbn = make_book("Owned by ISBN", isbn="111", categories=["History"])
    make_book("Owned by title", isbn="222", categories=["History"])
    by_id = make_book("Excluded by id", categories=["History"])
    make_book("No ISBN", categories=["History"])
    make_book("Kept", isbn="333", categories=["History"])
    user = make_user()

    exclusions = ExclusionSets(isbns={by_isbn.isbn}, titles={"Owned by title"}, book_ids={by_id.id})
    profile = UserProfile(top_categories=["History"], total_interactions=1)
    with StoreReader(session_factory) as reader:
        titles = {book.title for book in generate_candidates(reader, profile, user.id, exclusions)}

    assert titles == {"No ISBN", "Kept"}


def test_load_exclusions_collects_library_and_active_loans(
    session_factory, make_user, make_book, make_transaction, add_to_library
):
    user = make_user()
    pending = make_book("Pending")
    borrowed = make_book("Borrowed")
    returning = make_book("Returning")
    returned = make_book("Returned")
    rejected = make_book("Rejected")
    make_transaction(user, pending, TransactionStatus.PENDING_APPROVAL)
    make_transaction(user, borrowed, TransactionStatus.BORROWED)
    make_transaction(user, returning, TransactionStatus.RETURN_REQUESTED)
    make_transaction(user, returned, TransactionStatus.RETURNED)
    make_transaction(user, rejected, TransactionStatus.REJECTED)
    add_to_library(user, title="Home copy", isbn="978-1")
    add_to_library(user, title="Untitled ISBN-less")

    with StoreReader(session_factory) as reader:
        exclusions = reader.load_exclusions(user.id)

    assert exclusions.book_ids == {pending.id, borrowed.id, returning.id}
    assert exclusions.isbns == {"978-1"}
    assert exclusions.titles == {"Home copy", "Untitled ISBN-less"}
