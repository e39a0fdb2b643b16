import logging
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

import database
import dates
from config import settings
from models import Author, Book, BookAuthorLink, CopyStatus, Loan, Student
from validators import TextValidator

logger = logging.getLogger(__name__)


class LibraryError(Exception):
    """Base class for refused library operations."""


class NotFoundError(LibraryError, LookupError):
    def __init__(self, kind: str, key: Any) -> None:
        self.kind = kind
        self.key = key
        if isinstance(key, int):
            message = f"{kind} with ID {key} not found."
        else:
            message = f"{kind} '{key}' not found."
        super().__init__(message)


class ConflictError(LibraryError, ValueError):
    pass


class UnavailableError(LibraryError):
    pass


class AlreadyReturnedError(LibraryError):
    pass


def next_id(ids: Sequence[int]) -> int:
    """One past the largest id currently in use; 1 for an empty store."""
    return max(ids, default=0) + 1


class Library:
    """One working session over the five record stores.

    Stores are read wholesale when the session opens and written wholesale by
    save()/close(). Mutations validate everything before touching state, so a
    raised LibraryError always leaves the stores unchanged.
    """

    def __init__(
        self,
        data_dir: Optional[str] = None,
        delimiter: Optional[str] = None,
        loan_days: Optional[int] = None,
    ) -> None:
        self.data_dir = database.resolve_data_dir(data_dir)
        self.delimiter = delimiter or settings.delimiter
        self.loan_days = settings.loan_days if loan_days is None else int(loan_days)
        self.paths = database.store_paths(self.data_dir)

        self.books: List[Book] = []
        self.authors: List[Author] = []
        self.links: List[BookAuthorLink] = []
        self.students: List[Student] = []
        self.loans: List[Loan] = []
        self._closed = False

        self.load()

    # ------------------------- Persistence ------------------------- #
    def load(self) -> None:
        """(Re)load every store from disk. Copy statuses always come back on the shelf."""
        self.books = database.load_books(self.paths["books"], self.delimiter)
        self.authors = database.load_authors(self.paths["authors"], self.delimiter)
        self.students = database.load_students(self.paths["students"], self.delimiter)
        self.loans = database.load_loans(self.paths["loans"], self.delimiter)
        self.links = database.load_links(self.paths["links"], self.delimiter)

    def save_books(self) -> None:
        database.save_books(self.paths["books"], self.books, self.delimiter)

    def save_authors(self) -> None:
        database.save_authors(self.paths["authors"], self.authors, self.delimiter)

    def save_links(self) -> None:
        database.save_links(self.paths["links"], self.links, self.delimiter)

    def save_students(self) -> None:
        database.save_students(self.paths["students"], self.students, self.delimiter)

    def save_loans(self) -> None:
        database.save_loans(self.paths["loans"], self.loans, self.delimiter)

    def save(self) -> None:
        self.save_books()
        self.save_authors()
        self.save_students()
        self.save_loans()
        self.save_links()

    def close(self) -> None:
        """Save everything and drop the in-memory stores. Safe to call twice."""
        if self._closed:
            return
        self.save()
        self.books = []
        self.authors = []
        self.links = []
        self.students = []
        self.loans = []
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------- Books ------------------------- #
    def add_book(self, name: str, isbn: str, copy_count: int) -> Book:
        name = self._clip_name(name)
        if not name:
            raise ValueError("Book name cannot be empty.")
        if copy_count < 0:
            raise ValueError("Number of copies cannot be negative.")
        book = Book.with_copies(
            next_id([b.book_id for b in self.books]),
            name,
            self._clip_isbn(isbn),
            copy_count,
        )
        self.books.append(book)
        logger.info("Added book %d with %d copies", book.book_id, copy_count)
        return book

    def delete_book(self, book_id: int) -> Book:
        """Remove a book and its copies. Book-author links are left in place."""
        book = self.find_book_by_id(book_id)
        if book is None:
            raise NotFoundError("Book", book_id)
        if book.borrowed_copies():
            logger.info("Refused to delete book %d: copies on loan", book_id)
            raise ConflictError("Cannot delete book. Some copies are currently borrowed.")
        self.books = [b for b in self.books if b is not book]
        return book

    def update_book(self, book_id: int, *, name: Optional[str] = None, isbn: Optional[str] = None) -> Book:
        """Blank or missing fields keep their current value."""
        book = self.find_book_by_id(book_id)
        if book is None:
            raise NotFoundError("Book", book_id)
        book.name = self._clip_name(name) if TextValidator.is_present(name) else book.name
        book.isbn = self._clip_isbn(isbn) if TextValidator.is_present(isbn) else book.isbn
        return book

    def list_books(self) -> List[Book]:
        return list(self.books)

    def find_book_by_id(self, book_id: int) -> Optional[Book]:
        for book in self.books:
            if book.book_id == book_id:
                return book
        return None

    def find_book_by_name(self, name: str) -> Optional[Book]:
        for book in self.books:
            if book.name == name:
                return book
        return None

    def find_book_by_isbn(self, isbn: str) -> Optional[Book]:
        for book in self.books:
            if book.isbn == isbn:
                return book
        return None

    def list_copies(self, book_name: Optional[str] = None) -> List[Book]:
        """Books whose copies should be listed: all of them, or the one with this exact name."""
        if book_name is None:
            return self.list_books()
        book = self.find_book_by_name(book_name)
        if book is None:
            raise NotFoundError("Book", book_name)
        return [book]

    def set_copy_status(self, book_id: int, copy_index: int, status: CopyStatus) -> None:
        """Overwrite a copy's status. The caller is responsible for the previous state."""
        book = self.find_book_by_id(book_id)
        if book is None:
            raise NotFoundError("Book", book_id)
        copy = book.find_copy(copy_index)
        if copy is None:
            raise NotFoundError("Copy", copy_index)
        copy.status = status

    # ------------------------- Authors ------------------------- #
    def add_author(self, name: str) -> Author:
        name = self._clip_name(name)
        if not name:
            raise ValueError("Author name cannot be empty.")
        author = Author(next_id([a.author_id for a in self.authors]), name)
        self.authors.append(author)
        return author

    def delete_author(self, author_id: int) -> Author:
        author = self.find_author_by_id(author_id)
        if author is None:
            raise NotFoundError("Author", author_id)
        self.authors = [a for a in self.authors if a is not author]
        removed = self.remove_links_for_author(author_id)
        logger.info("Deleted author %d and %d book-author links", author_id, removed)
        return author

    def update_author(self, author_id: int, *, name: Optional[str] = None) -> Author:
        author = self.find_author_by_id(author_id)
        if author is None:
            raise NotFoundError("Author", author_id)
        author.name = self._clip_name(name) if TextValidator.is_present(name) else author.name
        return author

    def list_authors(self) -> List[Author]:
        return list(self.authors)

    def find_author_by_id(self, author_id: int) -> Optional[Author]:
        for author in self.authors:
            if author.author_id == author_id:
                return author
        return None

    def find_author_by_name(self, name: str) -> Optional[Author]:
        for author in self.authors:
            if author.name == name:
                return author
        return None

    # ------------------------- Book-author links ------------------------- #
    def add_link(self, book_id: int, author_id: int) -> BookAuthorLink:
        for link in self.links:
            if link.matches(book_id, author_id):
                raise ConflictError("This book-author link already exists.")
        link = BookAuthorLink(book_id, author_id)
        self.links.append(link)
        return link

    def remove_links_for_author(self, author_id: int) -> int:
        before = len(self.links)
        self.links = [l for l in self.links if l.author_id != author_id]
        return before - len(self.links)

    def remove_links_for_book(self, book_id: int) -> int:
        # Not called by delete_book
        before = len(self.links)
        self.links = [l for l in self.links if l.book_id != book_id]
        return before - len(self.links)

    def list_links(self) -> List[BookAuthorLink]:
        return list(self.links)

    # ------------------------- Students ------------------------- #
    def add_student(self, name: str) -> Student:
        name = self._clip_name(name)
        if not name:
            raise ValueError("Student name cannot be empty.")
        student = Student(next_id([s.student_id for s in self.students]), name, penalty_days=0)
        self.students.append(student)
        return student

    def delete_student_by_id(self, student_id: int) -> Student:
        # Active loans are checked before the student is looked up
        if self.active_loan_count(student_id) > 0:
            raise ConflictError("Cannot delete student with active book loans.")
        student = self.find_student_by_id(student_id)
        if student is None:
            raise NotFoundError("Student", student_id)
        self.students = [s for s in self.students if s is not student]
        return student

    def delete_student_by_name(self, name: str) -> Student:
        student = self.find_student_by_name(name)
        if student is None:
            raise NotFoundError("Student", name)
        if self.active_loan_count(student.student_id) > 0:
            raise ConflictError("Cannot delete student with active book loans.")
        self.students = [s for s in self.students if s is not student]
        return student

    def update_student(self, student_id: int, *, name: Optional[str] = None) -> Student:
        student = self.find_student_by_id(student_id)
        if student is None:
            raise NotFoundError("Student", student_id)
        student.name = self._clip_name(name) if TextValidator.is_present(name) else student.name
        return student

    def list_students(self) -> List[Student]:
        return list(self.students)

    def find_student_by_id(self, student_id: int) -> Optional[Student]:
        for student in self.students:
            if student.student_id == student_id:
                return student
        return None

    def find_student_by_name(self, name: str) -> Optional[Student]:
        for student in self.students:
            if student.name == name:
                return student
        return None

    def students_with_penalty(self) -> List[Student]:
        return [s for s in self.students if s.penalty_days > 0]

    def student_info(self, student_id: int) -> Tuple[Student, List[Loan]]:
        student = self.find_student_by_id(student_id)
        if student is None:
            raise NotFoundError("Student", student_id)
        return student, self.active_loans_for_student(student_id)

    # ------------------------- Loans ------------------------- #
    def add_loan(self, student_id: int, book_id: int, copy_index: int, today: Optional[date] = None) -> Loan:
        """Lend one copy for loan_days days. The student id is not checked."""
        book = self.find_book_by_id(book_id)
        if book is None:
            raise NotFoundError("Book", book_id)
        copy = book.find_copy(copy_index)
        if copy is None:
            raise NotFoundError("Copy", copy_index)
        if copy.status is not CopyStatus.ON_SHELF:
            raise UnavailableError("Book copy not available for loan.")

        day = dates.today(today)
        loan = Loan(
            loan_id=next_id([l.loan_id for l in self.loans]),
            book_id=book_id,
            copy_index=copy_index,
            student_id=student_id,
            loan_date=dates.format_date(day),
            due_date=dates.add_days(day, self.loan_days),
        )
        self.loans.append(loan)
        self.set_copy_status(book_id, copy_index, CopyStatus.BORROWED)
        logger.info("Loan %d: book %d copy %d to student %d", loan.loan_id, book_id, copy_index, student_id)
        return loan

    def return_loan(self, loan_id: int) -> Loan:
        loan = self.find_loan_by_id(loan_id)
        if loan is None:
            raise NotFoundError("Loan", loan_id)
        if loan.returned:
            raise AlreadyReturnedError(f"Book for Loan ID {loan_id} has already been returned.")
        loan.returned = True
        try:
            self.set_copy_status(loan.book_id, loan.copy_index, CopyStatus.ON_SHELF)
        except NotFoundError as exc:
            # The book may have been deleted after a reload reset its copies
            logger.warning("Loan %d returned but its copy is gone: %s", loan_id, exc)
        return loan

    def list_loans(self) -> List[Loan]:
        return list(self.loans)

    def find_loan_by_id(self, loan_id: int) -> Optional[Loan]:
        for loan in self.loans:
            if loan.loan_id == loan_id:
                return loan
        return None

    def overdue_loans(self, today: Optional[date] = None) -> List[Loan]:
        """Active loans whose due date is strictly before today."""
        day = dates.today(today)
        overdue: List[Loan] = []
        for loan in self.loans:
            if not loan.is_active:
                continue
            try:
                late = dates.days_between(loan.due_date, day)
            except ValueError:
                logger.warning("Loan %d has an unreadable due date %r", loan.loan_id, loan.due_date)
                continue
            if late > 0:
                overdue.append(loan)
        return overdue

    def loan_duration(self, loan_id: int, today: Optional[date] = None) -> int:
        """Days since the loan started, or -1 when the loan is unknown or its date unreadable."""
        loan = self.find_loan_by_id(loan_id)
        if loan is None:
            return -1
        try:
            return dates.days_between(loan.loan_date, dates.today(today))
        except ValueError:
            return -1

    def active_loan_count(self, student_id: int) -> int:
        return sum(1 for l in self.loans if l.student_id == student_id and l.is_active)

    def active_loans_for_student(self, student_id: int) -> List[Loan]:
        return [l for l in self.loans if l.student_id == student_id and l.is_active]

    def is_copy_returned(self, book_id: int, copy_index: int) -> bool:
        return not any(l.names_copy(book_id, copy_index) and l.is_active for l in self.loans)

    # ------------------------- Reports ------------------------- #
    def statistics(self, today: Optional[date] = None) -> Dict[str, int]:
        return {
            "total_books": len(self.books),
            "total_copies": sum(b.copy_count for b in self.books),
            "borrowed_copies": sum(len(b.borrowed_copies()) for b in self.books),
            "authors": len(self.authors),
            "students": len(self.students),
            "active_loans": sum(1 for l in self.loans if l.is_active),
            "overdue_loans": len(self.overdue_loans(today)),
        }

    # ------------------------- Utilities ------------------------- #
    @staticmethod
    def _clip_name(raw: Optional[str]) -> str:
        if raw is None:
            return ""
        return raw.strip()[: settings.max_name_len - 1]

    @staticmethod
    def _clip_isbn(raw: Optional[str]) -> str:
        if raw is None:
            return ""
        return raw.strip()[: settings.max_isbn_len - 1]
