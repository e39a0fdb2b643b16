import os
import json
from typing import Any, Dict, List, Sequence, Tuple
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.markup import escape

from config import settings
from models import Author, Book, BookAuthorLink, Loan, Student

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()

Column = Tuple[str, str]  # (header, json key)


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode
    # anything else keeps the current mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, settings.output_mode or "plain").lower()


def print_records(title: str, columns: Sequence[Column], rows: List[Dict[str, Any]], empty_message: str) -> None:
    """Print rows in the current output mode.
    - plain: a header line then one 'a | b | c' line per row, or the empty message
    - json: JSON array of objects keyed by the column keys
    - rich: Rich table
    """
    mode = get_output_mode()

    if mode == "json":
        payload = [{key: row.get(key) for _, key in columns} for row in rows]
        print(json.dumps(payload, ensure_ascii=False))
        return

    if not rows:
        print(empty_message)
        return

    if mode == "rich":
        table = Table(title=title, show_lines=False, header_style="bold cyan")
        for header, _ in columns:
            table.add_column(header)
        for row in rows:
            table.add_row(*[escape(str(row.get(key, ""))) for _, key in columns])
        _console.print(table)
    else:
        print(f"--- {title} ---")
        print(" | ".join(header for header, _ in columns))
        for row in rows:
            print(" | ".join(str(row.get(key, "")) for _, key in columns))


def print_books(books: List[Book]) -> None:
    rows = [b.to_dict() for b in books]
    print_records(
        "Books",
        [("ID", "book_id"), ("Book Name", "name"), ("ISBN", "isbn"), ("Copies", "copy_count")],
        rows,
        "No books in the library.",
    )


def print_copies(books: List[Book]) -> None:
    """Copies of each book; status shown as 0 (shelf) / 1 (borrowed)."""
    rows = [
        {"book_id": b.book_id, "name": b.name, "copy_index": c.index, "status": c.status.value, "label": c.status.label}
        for b in books
        for c in b.copies
    ]
    print_records(
        "Book Copies",
        [("Book ID", "book_id"), ("Book Name", "name"), ("Copy", "copy_index"), ("Status", "status"), ("State", "label")],
        rows,
        "No copies to show.",
    )


def print_authors(authors: List[Author]) -> None:
    print_records(
        "Authors",
        [("ID", "author_id"), ("Author Name", "name")],
        [a.to_dict() for a in authors],
        "No authors in the system.",
    )


def print_students(students: List[Student], title: str = "Students", empty_message: str = "No students in the system.") -> None:
    print_records(
        title,
        [("ID", "student_id"), ("Student Name", "name"), ("Penalty Days", "penalty_days")],
        [s.to_dict() for s in students],
        empty_message,
    )


def print_loans(loans: List[Loan], title: str = "Book Loans", empty_message: str = "No book loans recorded.") -> None:
    rows = []
    for l in loans:
        row = l.to_dict()
        row["returned"] = 1 if l.returned else 0
        rows.append(row)
    print_records(
        title,
        [
            ("ID", "loan_id"),
            ("Book ID", "book_id"),
            ("Copy", "copy_index"),
            ("Student ID", "student_id"),
            ("Loan Date", "loan_date"),
            ("Due Date", "due_date"),
            ("Returned", "returned"),
        ],
        rows,
        empty_message,
    )


def print_links(links: List[BookAuthorLink]) -> None:
    print_records(
        "Book-Author Links",
        [("Book ID", "book_id"), ("Author ID", "author_id")],
        [l.to_dict() for l in links],
        "No book-author links recorded.",
    )


def print_student_info(student: Student, loans: List[Loan]) -> None:
    mode = get_output_mode()
    if mode == "json":
        payload = student.to_dict()
        payload["active_loans"] = [l.to_dict() for l in loans]
        print(json.dumps(payload, ensure_ascii=False))
        return
    if mode == "rich":
        _console.print(Panel.fit(
            f"[bold]ID:[/] {student.student_id}\n"
            f"[bold]Name:[/] {escape(student.name)}\n"
            f"[bold]Penalty Days:[/] {student.penalty_days}",
            title="Student Information",
            border_style="blue",
        ))
    else:
        print("--- Student Information ---")
        print(f"ID: {student.student_id}")
        print(f"Name: {student.name}")
        print(f"Penalty Days: {student.penalty_days}")
    print_loans(loans, title="Active Loans", empty_message="No active loans for this student.")


def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print statistics in the current output mode."""
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    labels = [
        ("Total Books", "total_books"),
        ("Total Copies", "total_copies"),
        ("Borrowed Copies", "borrowed_copies"),
        ("Authors", "authors"),
        ("Students", "students"),
        ("Active Loans", "active_loans"),
        ("Overdue Loans", "overdue_loans"),
    ]

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{label}:[/] {stats.get(key, 0)}" for label, key in labels)
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        for label, key in labels:
            print(f"{label}: {stats.get(key, 0)}")
