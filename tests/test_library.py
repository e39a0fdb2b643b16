import pytest
from datetime import date

from library import (
    Library,
    NotFoundError,
    ConflictError,
    UnavailableError,
    AlreadyReturnedError,
    next_id,
)
from models import CopyStatus
from validators import NumberValidator

TODAY = date(2024, 1, 1)


def assert_copy_invariant(lib):
    """Every borrowed copy has exactly one active loan and vice versa."""
    for book in lib.list_books():
        for copy in book.copies:
            active = [
                l for l in lib.list_loans()
                if l.is_active and l.names_copy(book.book_id, copy.index)
            ]
            if copy.status is CopyStatus.BORROWED:
                assert len(active) == 1
            else:
                assert active == []


def test_next_id():
    assert next_id([]) == 1
    assert next_id([2, 5]) == 6


def test_next_id_follows_current_max(lib):
    lib.add_student("A")
    lib.add_student("B")
    third = lib.add_student("C")
    assert third.student_id == 3
    lib.delete_student_by_id(3)
    assert lib.add_student("D").student_id == 3  # max scan, the top id comes back
    lib.delete_student_by_id(1)
    assert lib.add_student("E").student_id == 4


def test_add_book_creates_numbered_copies(lib):
    book = lib.add_book("Dune", "123", 2)
    assert book.book_id == 1
    assert [c.index for c in book.copies] == [1, 2]
    assert all(c.status is CopyStatus.ON_SHELF for c in book.copies)


def test_add_book_zero_copies(lib):
    book = lib.add_book("Empty", "000", 0)
    assert book.copies == []


def test_add_book_rejects_negative_count_and_blank_name(lib):
    with pytest.raises(ValueError):
        lib.add_book("Dune", "123", -1)
    with pytest.raises(ValueError):
        lib.add_book("   ", "123", 1)
    assert lib.list_books() == []


def test_add_book_clips_long_fields(lib):
    book = lib.add_book("x" * 150, "9" * 30, 1)
    assert len(book.name) == 99
    assert len(book.isbn) == 19


def test_find_book_lookups(lib):
    lib.add_book("Dune", "123", 1)
    lib.add_book("Emma", "456", 1)
    assert lib.find_book_by_id(2).name == "Emma"
    assert lib.find_book_by_name("Dune").isbn == "123"
    assert lib.find_book_by_isbn("456").name == "Emma"
    assert lib.find_book_by_name("dune") is None  # case-sensitive
    assert lib.find_book_by_name("Dun") is None  # exact match only
    assert lib.find_book_by_id(99) is None


def test_update_book_blank_keeps_value(lib):
    lib.add_book("Old Title", "111", 1)
    book = lib.update_book(1, name="New Title", isbn="")
    assert book.name == "New Title"
    assert book.isbn == "111"
    book = lib.update_book(1, isbn="222")
    assert book.name == "New Title"
    assert book.isbn == "222"


def test_update_book_not_found(lib):
    with pytest.raises(NotFoundError):
        lib.update_book(42, name="x")


def test_set_copy_status_errors(lib):
    lib.add_book("Dune", "123", 1)
    with pytest.raises(NotFoundError, match="Book"):
        lib.set_copy_status(9, 1, CopyStatus.BORROWED)
    with pytest.raises(NotFoundError, match="Copy"):
        lib.set_copy_status(1, 5, CopyStatus.BORROWED)
    lib.set_copy_status(1, 1, CopyStatus.BORROWED)
    # Unconditional overwrite
    lib.set_copy_status(1, 1, CopyStatus.BORROWED)
    assert lib.find_book_by_id(1).copies[0].status is CopyStatus.BORROWED


def test_list_copies(lib):
    lib.add_book("Dune", "123", 2)
    lib.add_book("Emma", "456", 1)
    assert [b.name for b in lib.list_copies()] == ["Dune", "Emma"]
    assert [b.book_id for b in lib.list_copies("Emma")] == [2]
    with pytest.raises(NotFoundError, match="Book 'Nope' not found."):
        lib.list_copies("Nope")


def test_delete_book_blocked_while_borrowed(lib):
    lib.add_book("Dune", "123", 2)
    lib.add_loan(1, 1, 2, today=TODAY)
    with pytest.raises(ConflictError):
        lib.delete_book(1)
    book = lib.find_book_by_id(1)
    assert book is not None
    assert book.copies[1].status is CopyStatus.BORROWED
    assert len(lib.list_loans()) == 1


def test_delete_book_without_loans(lib):
    lib.add_book("Dune", "123", 2)
    lib.delete_book(1)
    assert lib.find_book_by_id(1) is None
    with pytest.raises(NotFoundError):
        lib.delete_book(1)


def test_delete_book_keeps_links(lib):
    # Known gap: book deletion does not purge the link table
    lib.add_book("Dune", "123", 1)
    lib.add_author("Frank Herbert")
    lib.add_link(1, 1)
    lib.delete_book(1)
    assert [(l.book_id, l.author_id) for l in lib.list_links()] == [(1, 1)]
    assert lib.remove_links_for_book(1) == 1
    assert lib.list_links() == []


def test_author_crud(lib):
    author = lib.add_author("Frank Herbert")
    assert author.author_id == 1
    lib.update_author(1, name="")
    assert lib.find_author_by_id(1).name == "Frank Herbert"
    lib.update_author(1, name="F. Herbert")
    assert lib.find_author_by_name("F. Herbert") is author
    assert lib.find_author_by_name("Frank Herbert") is None


def test_delete_author_cascades_links(lib):
    lib.add_book("Dune", "123", 1)
    lib.add_book("Emma", "456", 1)
    lib.add_author("Herbert")
    lib.add_author("Austen")
    lib.add_link(1, 1)
    lib.add_link(2, 2)
    lib.add_link(2, 1)
    lib.delete_author(1)
    assert lib.find_author_by_id(1) is None
    assert [(l.book_id, l.author_id) for l in lib.list_links()] == [(2, 2)]


def test_delete_author_not_found_leaves_links(lib):
    lib.add_link(1, 1)
    with pytest.raises(NotFoundError):
        lib.delete_author(1)
    assert len(lib.list_links()) == 1


def test_duplicate_link_is_conflict(lib):
    lib.add_link(1, 2)
    with pytest.raises(ConflictError):
        lib.add_link(1, 2)
    assert len(lib.list_links()) == 1
    lib.add_link(2, 1)
    assert [(l.book_id, l.author_id) for l in lib.list_links()] == [(1, 2), (2, 1)]


def test_add_student_starts_without_penalty(lib):
    student = lib.add_student("Ali")
    assert student.penalty_days == 0
    assert lib.students_with_penalty() == []


def test_update_student_blank_keeps_value(lib):
    lib.add_student("Ali")
    assert lib.update_student(1, name="").name == "Ali"
    assert lib.update_student(1, name="   ").name == "Ali"
    assert lib.update_student(1).name == "Ali"
    assert lib.update_student(1, name="  Veli ").name == "Veli"
    with pytest.raises(NotFoundError):
        lib.update_student(2, name="x")


def test_students_with_penalty_only_from_seeded_data(lib):
    # Nothing in the library raises penalty_days; only seeded values show up
    lib.add_student("Ali")
    seeded = lib.add_student("Veli")
    seeded.penalty_days = 3
    assert lib.students_with_penalty() == [seeded]


def test_delete_student_blocked_by_active_loan(lib):
    lib.add_book("Dune", "123", 1)
    lib.add_student("Ali")
    lib.add_loan(1, 1, 1, today=TODAY)
    with pytest.raises(ConflictError):
        lib.delete_student_by_id(1)
    with pytest.raises(ConflictError):
        lib.delete_student_by_name("Ali")
    assert lib.find_student_by_id(1) is not None


def test_delete_student_after_return(lib):
    lib.add_book("Dune", "123", 1)
    lib.add_student("Ali")
    lib.add_student("Veli")
    lib.add_loan(1, 1, 1, today=TODAY)
    lib.return_loan(1)
    lib.delete_student_by_name("Ali")
    assert lib.find_student_by_name("Ali") is None
    lib.delete_student_by_id(2)
    assert lib.list_students() == []


def test_delete_student_not_found(lib):
    with pytest.raises(NotFoundError):
        lib.delete_student_by_id(7)
    with pytest.raises(NotFoundError):
        lib.delete_student_by_name("Nobody")


def test_student_info_lists_active_loans(lib):
    lib.add_book("Dune", "123", 2)
    lib.add_student("Ali")
    lib.add_loan(1, 1, 1, today=TODAY)
    second = lib.add_loan(1, 1, 2, today=TODAY)
    lib.return_loan(1)
    student, loans = lib.student_info(1)
    assert student.name == "Ali"
    assert loans == [second]
    with pytest.raises(NotFoundError):
        lib.student_info(99)


def test_loan_dates_and_copy_status(lib):
    lib.add_book("Dune", "123", 1)
    loan = lib.add_loan(1, 1, 1, today=date(2023, 12, 25))
    assert loan.loan_id == 1
    assert loan.loan_date == "25.12.2023"
    assert loan.due_date == "08.01.2024"
    assert loan.returned is False
    assert lib.find_book_by_id(1).copies[0].status is CopyStatus.BORROWED
    assert lib.is_copy_returned(1, 1) is False


def test_loan_preconditions(lib):
    lib.add_book("Dune", "123", 1)
    with pytest.raises(NotFoundError):
        lib.add_loan(1, 2, 1, today=TODAY)
    with pytest.raises(NotFoundError):
        lib.add_loan(1, 1, 2, today=TODAY)
    lib.add_loan(1, 1, 1, today=TODAY)
    with pytest.raises(UnavailableError):
        lib.add_loan(2, 1, 1, today=TODAY)
    assert len(lib.list_loans()) == 1
    assert_copy_invariant(lib)


def test_loan_to_unknown_student_is_accepted(lib):
    # Known gap: the student id is not checked
    lib.add_book("Dune", "123", 1)
    loan = lib.add_loan(404, 1, 1, today=TODAY)
    assert loan.student_id == 404
    assert lib.find_student_by_id(404) is None


def test_return_twice_reports_already_returned(lib):
    lib.add_book("Dune", "123", 1)
    lib.add_loan(1, 1, 1, today=TODAY)
    lib.return_loan(1)
    with pytest.raises(AlreadyReturnedError):
        lib.return_loan(1)
    loan = lib.find_loan_by_id(1)
    assert loan.returned is True
    assert lib.find_book_by_id(1).copies[0].status is CopyStatus.ON_SHELF
    with pytest.raises(NotFoundError):
        lib.return_loan(2)


def test_overdue_loans(lib):
    lib.add_book("Dune", "123", 3)
    lib.add_loan(1, 1, 1, today=date(2024, 1, 1))   # due 15.01.2024
    lib.add_loan(1, 1, 2, today=date(2024, 1, 10))  # due 24.01.2024
    lib.add_loan(1, 1, 3, today=date(2024, 1, 1))
    lib.return_loan(3)
    assert lib.overdue_loans(today=date(2024, 1, 15)) == []
    overdue = lib.overdue_loans(today=date(2024, 1, 16))
    assert [l.loan_id for l in overdue] == [1]
    assert [l.loan_id for l in lib.overdue_loans(today=date(2024, 2, 1))] == [1, 2]


def test_loan_duration_and_active_count(lib):
    lib.add_book("Dune", "123", 2)
    lib.add_loan(5, 1, 1, today=date(2024, 1, 1))
    lib.add_loan(5, 1, 2, today=date(2024, 1, 1))
    assert lib.loan_duration(1, today=date(2024, 1, 15)) == 14
    assert lib.loan_duration(99, today=date(2024, 1, 15)) == -1
    assert lib.active_loan_count(5) == 2
    lib.return_loan(2)
    assert lib.active_loan_count(5) == 1
    assert lib.active_loan_count(6) == 0


def test_end_to_end_dune(lib):
    book = lib.add_book("Dune", "123", 2)
    assert [c.status for c in book.copies] == [CopyStatus.ON_SHELF, CopyStatus.ON_SHELF]
    student = lib.add_student("S1")

    loan = lib.add_loan(student.student_id, book.book_id, 1, today=TODAY)
    assert book.copies[0].status is CopyStatus.BORROWED
    assert loan.due_date == "15.01.2024"
    assert_copy_invariant(lib)

    with pytest.raises(UnavailableError):
        lib.add_loan(student.student_id, book.book_id, 1, today=TODAY)

    lib.return_loan(loan.loan_id)
    assert book.copies[0].status is CopyStatus.ON_SHELF
    assert loan.returned is True
    assert_copy_invariant(lib)

    lib.delete_book(book.book_id)
    assert lib.list_books() == []


def test_persistence_round_trip(lib, tmp_path):
    lib.add_book("Dune", "123", 2)
    lib.add_author("Herbert")
    lib.add_link(1, 1)
    lib.add_student("Ali")
    lib.add_loan(1, 1, 1, today=TODAY)
    lib.save()

    lib2 = Library(data_dir=str(tmp_path))
    assert lib2.find_book_by_isbn("123").copy_count == 2
    assert lib2.find_author_by_id(1).name == "Herbert"
    assert len(lib2.list_links()) == 1
    assert lib2.find_student_by_name("Ali").penalty_days == 0
    loan = lib2.find_loan_by_id(1)
    assert loan.loan_date == "01.01.2024"
    assert loan.returned is False


def test_reload_resets_copy_status(lib, tmp_path):
    # Known gap: copy statuses are not persisted, the active loan survives alone
    lib.add_book("Dune", "123", 1)
    lib.add_loan(1, 1, 1, today=TODAY)
    lib.save()

    lib2 = Library(data_dir=str(tmp_path))
    assert lib2.find_book_by_id(1).copies[0].status is CopyStatus.ON_SHELF
    assert lib2.is_copy_returned(1, 1) is False
    lib2.delete_book(1)  # no longer guarded
    assert lib2.find_book_by_id(1) is None
    # Returning the orphaned loan still closes it
    lib2.return_loan(1)
    assert lib2.find_loan_by_id(1).returned is True


def test_close_saves_and_is_idempotent(lib, tmp_path):
    lib.add_student("Ali")
    lib.close()
    assert lib.closed
    assert lib.list_students() == []
    lib.close()
    assert Library(data_dir=str(tmp_path)).find_student_by_id(1).name == "Ali"


def test_statistics(lib):
    lib.add_book("Dune", "123", 2)
    lib.add_book("Emma", "456", 1)
    lib.add_student("Ali")
    lib.add_loan(1, 1, 1, today=date(2024, 1, 1))
    stats = lib.statistics(today=date(2024, 3, 1))
    assert stats["total_books"] == 2
    assert stats["total_copies"] == 3
    assert stats["borrowed_copies"] == 1
    assert stats["students"] == 1
    assert stats["active_loans"] == 1
    assert stats["overdue_loans"] == 1


def test_parse_int_rejects_non_ascii_digits():
    assert NumberValidator.parse_int(" 12 ") == 12
    assert NumberValidator.parse_int("-3") == -3
    assert NumberValidator.parse_int("²") is None
    assert NumberValidator.parse_int("abc") is None
    assert NumberValidator.parse_int(None) is None
