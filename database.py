import logging
import os
from typing import Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from config import settings
from models import Author, Book, BookAuthorLink, Loan, Student

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Header rows, one per record file
BOOKS_HEADER = ("bookId", "bookName", "ISBN", "exampleCount")
AUTHORS_HEADER = ("authorId", "authorName")
LINKS_HEADER = ("bookId", "authorId")
STUDENTS_HEADER = ("studentId", "studentName", "penaltyDays")
LOANS_HEADER = ("loanId", "bookId", "copyIndex", "studentId", "loanDate", "dueDate", "returned")


def resolve_data_dir(data_dir: Optional[str] = None) -> str:
    """Directory holding the record files.

    Priority:
    1) explicit argument
    2) LIBRARY_DATA_DIR (via settings)
    """
    path = data_dir or settings.data_dir or "."
    os.makedirs(path, exist_ok=True)
    return path


def file_path(data_dir: str, file_name: str) -> str:
    return os.path.join(data_dir, file_name)


# ------------------------- Low-level rows ------------------------- #
def read_rows(path: str, width: int, delimiter: str = ",") -> List[List[str]]:
    """Read data rows of a record file, skipping the header.

    A missing file is an empty store. Rows with the wrong number of fields are
    skipped and logged; fields are never unquoted or unescaped.
    """
    if not os.path.exists(path):
        logger.info("Record file not found: %s (starting empty)", path)
        return []

    rows: List[List[str]] = []
    with open(path, "r", encoding="utf-8") as f:
        lines = f.read().splitlines()
    for line_no, line in enumerate(lines[1:], start=2):
        if not line.strip():
            continue
        fields = line.split(delimiter)
        if len(fields) != width:
            logger.warning("%s:%d: expected %d fields, got %d; row skipped", path, line_no, width, len(fields))
            continue
        rows.append(fields)
    return rows


def write_rows(path: str, header: Sequence[str], rows: Iterable[Sequence[object]], delimiter: str = ",") -> int:
    """Rewrite a record file wholesale. Returns the number of data rows written."""
    count = 0
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(delimiter.join(header) + "\n")
        for row in rows:
            fields = [str(value) for value in row]
            for value in fields:
                if delimiter in value:
                    logger.warning("Field %r in %s contains the delimiter %r and will not reload cleanly", value, path, delimiter)
            f.write(delimiter.join(fields) + "\n")
            count += 1
    return count


def _parse_rows(path: str, rows: List[List[str]], build: Callable[[List[str]], T]) -> List[T]:
    records: List[T] = []
    for fields in rows:
        try:
            records.append(build(fields))
        except ValueError as exc:
            logger.warning("%s: unparseable row %r skipped (%s)", path, fields, exc)
    return records


# ------------------------- Books ------------------------- #
def load_books(path: str, delimiter: str = ",") -> List[Book]:
    rows = read_rows(path, len(BOOKS_HEADER), delimiter)
    books = _parse_rows(
        path,
        rows,
        lambda f: Book.from_dict({"book_id": f[0], "name": f[1], "isbn": f[2], "copy_count": f[3]}),
    )
    logger.info("Loaded %d books", len(books))
    return books


def save_books(path: str, books: List[Book], delimiter: str = ",") -> None:
    # Copy statuses are not part of the file; only the count is kept
    count = write_rows(path, BOOKS_HEADER, ((b.book_id, b.name, b.isbn, b.copy_count) for b in books), delimiter)
    logger.info("Saved %d books to %s", count, path)


# ------------------------- Authors ------------------------- #
def load_authors(path: str, delimiter: str = ",") -> List[Author]:
    rows = read_rows(path, len(AUTHORS_HEADER), delimiter)
    authors = _parse_rows(path, rows, lambda f: Author.from_dict({"author_id": f[0], "name": f[1]}))
    logger.info("Loaded %d authors", len(authors))
    return authors


def save_authors(path: str, authors: List[Author], delimiter: str = ",") -> None:
    count = write_rows(path, AUTHORS_HEADER, ((a.author_id, a.name) for a in authors), delimiter)
    logger.info("Saved %d authors to %s", count, path)


# ------------------------- Book-author links ------------------------- #
def load_links(path: str, delimiter: str = ",") -> List[BookAuthorLink]:
    rows = read_rows(path, len(LINKS_HEADER), delimiter)
    links = _parse_rows(path, rows, lambda f: BookAuthorLink.from_dict({"book_id": f[0], "author_id": f[1]}))
    logger.info("Loaded %d book-author links", len(links))
    return links


def save_links(path: str, links: List[BookAuthorLink], delimiter: str = ",") -> None:
    count = write_rows(path, LINKS_HEADER, ((l.book_id, l.author_id) for l in links), delimiter)
    logger.info("Saved %d book-author links to %s", count, path)


# ------------------------- Students ------------------------- #
def load_students(path: str, delimiter: str = ",") -> List[Student]:
    rows = read_rows(path, len(STUDENTS_HEADER), delimiter)
    students = _parse_rows(
        path,
        rows,
        lambda f: Student.from_dict({"student_id": f[0], "name": f[1], "penalty_days": f[2]}),
    )
    logger.info("Loaded %d students", len(students))
    return students


def save_students(path: str, students: List[Student], delimiter: str = ",") -> None:
    count = write_rows(
        path, STUDENTS_HEADER, ((s.student_id, s.name, s.penalty_days) for s in students), delimiter
    )
    logger.info("Saved %d students to %s", count, path)


# ------------------------- Loans ------------------------- #
def _loan_from_fields(fields: List[str]) -> Loan:
    return Loan.from_dict({
        "loan_id": fields[0],
        "book_id": fields[1],
        "copy_index": fields[2],
        "student_id": fields[3],
        "loan_date": fields[4],
        "due_date": fields[5],
        "returned": fields[6],
    })


def load_loans(path: str, delimiter: str = ",") -> List[Loan]:
    rows = read_rows(path, len(LOANS_HEADER), delimiter)
    loans = _parse_rows(path, rows, _loan_from_fields)
    logger.info("Loaded %d loans", len(loans))
    return loans


def save_loans(path: str, loans: List[Loan], delimiter: str = ",") -> None:
    rows = (
        (l.loan_id, l.book_id, l.copy_index, l.student_id, l.loan_date, l.due_date, 1 if l.returned else 0)
        for l in loans
    )
    count = write_rows(path, LOANS_HEADER, rows, delimiter)
    logger.info("Saved %d loans to %s", count, path)


# ------------------------- All stores ------------------------- #
def store_paths(data_dir: str) -> Dict[str, str]:
    return {
        "books": file_path(data_dir, settings.books_file),
        "authors": file_path(data_dir, settings.authors_file),
        "links": file_path(data_dir, settings.links_file),
        "students": file_path(data_dir, settings.students_file),
        "loans": file_path(data_dir, settings.loans_file),
    }
