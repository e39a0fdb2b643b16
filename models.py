from __future__ import annotations

from enum import Enum
from typing import List, Optional


class CopyStatus(Enum):
    """Shelf state of a physical copy. The values are the codes shown in listings."""

    ON_SHELF = 0
    BORROWED = 1

    @property
    def label(self) -> str:
        return "On Shelf" if self is CopyStatus.ON_SHELF else "Borrowed"


class Copy:
    """One physical exemplar of a book, identified by its index inside the book."""

    def __init__(self, index: int, status: CopyStatus = CopyStatus.ON_SHELF) -> None:
        self.index = index
        self.status = status

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"Copy(index={self.index}, status={self.status.name})"

    def to_dict(self) -> dict:
        return {"index": self.index, "status": self.status.value}


class Book:
    """A catalog title together with the copies it owns."""

    def __init__(self, book_id: int, name: str, isbn: str, copies: Optional[List[Copy]] = None) -> None:
        self.book_id = book_id
        self.name = name
        self.isbn = isbn
        self.copies: List[Copy] = copies or []

    @classmethod
    def with_copies(cls, book_id: int, name: str, isbn: str, copy_count: int) -> "Book":
        """Create a book whose copies are numbered 1..copy_count, all on the shelf."""
        copies = [Copy(index) for index in range(1, max(copy_count, 0) + 1)]
        return cls(book_id, name, isbn, copies)

    @property
    def copy_count(self) -> int:
        return len(self.copies)

    def find_copy(self, index: int) -> Optional[Copy]:
        for copy in self.copies:
            if copy.index == index:
                return copy
        return None

    def borrowed_copies(self) -> List[Copy]:
        return [c for c in self.copies if c.status is CopyStatus.BORROWED]

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.name} (ID: {self.book_id}, ISBN: {self.isbn})"

    def to_dict(self) -> dict:
        return {
            "book_id": self.book_id,
            "name": self.name,
            "isbn": self.isbn,
            "copy_count": self.copy_count,
            "copies": [c.to_dict() for c in self.copies],
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        # Persisted books only carry a count; statuses always start on the shelf
        return Book.with_copies(
            int(data["book_id"]),
            data["name"],
            data["isbn"],
            int(data.get("copy_count", 0)),
        )


class Author:
    def __init__(self, author_id: int, name: str) -> None:
        self.author_id = author_id
        self.name = name

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.name} (ID: {self.author_id})"

    def to_dict(self) -> dict:
        return {"author_id": self.author_id, "name": self.name}

    @staticmethod
    def from_dict(data: dict) -> "Author":
        return Author(int(data["author_id"]), data["name"])


class BookAuthorLink:
    """Association row between a book and an author."""

    def __init__(self, book_id: int, author_id: int) -> None:
        self.book_id = book_id
        self.author_id = author_id

    def matches(self, book_id: int, author_id: int) -> bool:
        return self.book_id == book_id and self.author_id == author_id

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BookAuthorLink):
            return NotImplemented
        return self.matches(other.book_id, other.author_id)

    def __hash__(self) -> int:
        return hash((self.book_id, self.author_id))

    def __repr__(self) -> str:  # pragma: no cover
        return f"BookAuthorLink(book_id={self.book_id}, author_id={self.author_id})"

    def to_dict(self) -> dict:
        return {"book_id": self.book_id, "author_id": self.author_id}

    @staticmethod
    def from_dict(data: dict) -> "BookAuthorLink":
        return BookAuthorLink(int(data["book_id"]), int(data["author_id"]))


class Student:
    def __init__(self, student_id: int, name: str, penalty_days: int = 0) -> None:
        self.student_id = student_id
        self.name = name
        # Persisted and displayed, but nothing in the library updates it
        self.penalty_days = penalty_days

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.name} (ID: {self.student_id})"

    def to_dict(self) -> dict:
        return {"student_id": self.student_id, "name": self.name, "penalty_days": self.penalty_days}

    @staticmethod
    def from_dict(data: dict) -> "Student":
        return Student(int(data["student_id"]), data["name"], int(data.get("penalty_days", 0)))


class Loan:
    """A copy lent to a student. Dates are kept in their DD.MM.YYYY text form."""

    def __init__(
        self,
        loan_id: int,
        book_id: int,
        copy_index: int,
        student_id: int,
        loan_date: str,
        due_date: str,
        returned: bool = False,
    ) -> None:
        self.loan_id = loan_id
        self.book_id = book_id
        self.copy_index = copy_index
        self.student_id = student_id
        self.loan_date = loan_date
        self.due_date = due_date
        self.returned = returned

    @property
    def is_active(self) -> bool:
        return not self.returned

    def names_copy(self, book_id: int, copy_index: int) -> bool:
        return self.book_id == book_id and self.copy_index == copy_index

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"Loan(loan_id={self.loan_id}, book_id={self.book_id}, copy_index={self.copy_index}, "
            f"student_id={self.student_id}, returned={self.returned})"
        )

    def to_dict(self) -> dict:
        return {
            "loan_id": self.loan_id,
            "book_id": self.book_id,
            "copy_index": self.copy_index,
            "student_id": self.student_id,
            "loan_date": self.loan_date,
            "due_date": self.due_date,
            "returned": self.returned,
        }

    @staticmethod
    def from_dict(data: dict) -> "Loan":
        returned = data.get("returned", False)
        if isinstance(returned, str):
            returned = returned.strip() == "1"
        return Loan(
            loan_id=int(data["loan_id"]),
            book_id=int(data["book_id"]),
            copy_index=int(data["copy_index"]),
            student_id=int(data["student_id"]),
            loan_date=data["loan_date"],
            due_date=data["due_date"],
            returned=bool(returned),
        )
