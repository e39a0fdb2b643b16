import logging
from typing import Callable, Dict, List, Optional, Tuple

from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.markup import escape
from rich import box

import typer

from config import settings
from library import Library, LibraryError, NotFoundError
from validators import NumberValidator, TextValidator
from ui_helpers import (
    set_output_mode,
    print_books,
    print_copies,
    print_authors,
    print_students,
    print_loans,
    print_links,
    print_student_info,
    print_stats_result,
)

APP_NAME = settings.app_name

console = Console(highlight=False)
logger = logging.getLogger(__name__)

MenuItems = List[Tuple[str, str]]


class LibraryManager:
    """Holds the one Library session of this process."""

    _instance: Optional[Library] = None

    @classmethod
    def get_instance(cls, data_dir: Optional[str] = None) -> Library:
        if cls._instance is None or cls._instance.closed:
            cls._instance = Library(data_dir=data_dir)
        return cls._instance

    @classmethod
    def set_instance(cls, lib: Optional[Library]) -> None:
        cls._instance = lib

    @classmethod
    def reset(cls) -> None:
        cls._instance = None


# ------------------------- Input helpers ------------------------- #
def ask_text(prompt: str) -> str:
    """Read a full line. Raises EOFError when input runs out."""
    return console.input(prompt).strip()


def ask_int(prompt: str) -> Optional[int]:
    return NumberValidator.parse_int(console.input(prompt))


def ask_id(prompt: str) -> Optional[int]:
    value = ask_int(prompt)
    if value is None:
        console.print("[yellow]Please enter a whole number.[/]")
    return value


def ask_record_text(prompt: str, lib: Library) -> str:
    value = ask_text(prompt)
    if TextValidator.contains_delimiter(value, lib.delimiter):
        console.print(f"[yellow]Warning: '{escape(lib.delimiter)}' is the file delimiter; this value will not reload cleanly.[/]")
    return value


def report(exc: Exception) -> None:
    console.print(f"[bold red]{escape(str(exc))}[/]")


def render_menu(title: str, items: MenuItems) -> None:
    table = Table.grid(padding=(0, 2))
    table.add_column(justify="right", style="bold cyan", width=4)
    table.add_column(justify="left", style="white")
    for key, label in items:
        table.add_row(key, label)
    console.print(Panel(table, title=title, border_style="cyan", box=box.HEAVY, padding=(0, 1)))


# ------------------------- Book actions ------------------------- #
def add_book(lib: Library) -> None:
    name = ask_record_text("Enter Book Name: ", lib)
    isbn = ask_record_text("Enter ISBN: ", lib)
    count = ask_id("Enter Number of Copies: ")
    if count is None:
        return
    try:
        book = lib.add_book(name, isbn, count)
    except ValueError as e:
        report(e)
        return
    console.print(f"[green]Book added successfully with ID {book.book_id}.[/]")


def delete_book(lib: Library) -> None:
    book_id = ask_id("Enter Book ID to delete: ")
    if book_id is None:
        return
    try:
        lib.delete_book(book_id)
    except LibraryError as e:
        report(e)
        return
    console.print(f"[green]Book with ID {book_id} deleted successfully.[/]")


def update_book(lib: Library) -> None:
    book_id = ask_id("Enter Book ID to update: ")
    if book_id is None:
        return
    book = lib.find_book_by_id(book_id)
    if book is None:
        report(NotFoundError("Book", book_id))
        return
    name = ask_record_text(f"Enter new Book Name (leave blank to keep current '{escape(book.name)}'): ", lib)
    isbn = ask_record_text(f"Enter new ISBN (leave blank to keep current '{escape(book.isbn)}'): ", lib)
    lib.update_book(book_id, name=name, isbn=isbn)
    console.print(f"[green]Book with ID {book_id} updated successfully.[/]")


def copies_by_book_name(lib: Library) -> None:
    name = ask_text("Enter Book Name to show copies: ")
    try:
        books = lib.list_copies(name)
    except NotFoundError as e:
        report(e)
        return
    print_copies(books)


def find_book_by_name(lib: Library) -> None:
    name = ask_text("Enter Book Name to find: ")
    book = lib.find_book_by_name(name)
    if book is None:
        report(NotFoundError("Book", name))
        return
    console.print(f"Book Found: ID {book.book_id}, Name: {escape(book.name)}, ISBN: {escape(book.isbn)}")


def find_book_by_isbn(lib: Library) -> None:
    isbn = ask_text("Enter ISBN to find: ")
    book = lib.find_book_by_isbn(isbn)
    if book is None:
        console.print(f"[bold red]Book with ISBN '{escape(isbn)}' not found.[/]")
        return
    console.print(f"Book Found: ID {book.book_id}, Name: {escape(book.name)}, ISBN: {escape(book.isbn)}")


# ------------------------- Author actions ------------------------- #
def add_author(lib: Library) -> None:
    name = ask_record_text("Enter Author Name: ", lib)
    try:
        author = lib.add_author(name)
    except ValueError as e:
        report(e)
        return
    console.print(f"[green]Author added successfully with ID {author.author_id}.[/]")


def delete_author(lib: Library) -> None:
    author_id = ask_id("Enter Author ID to delete: ")
    if author_id is None:
        return
    try:
        lib.delete_author(author_id)
    except LibraryError as e:
        report(e)
        return
    console.print(f"[green]Author with ID {author_id} deleted successfully.[/]")


def update_author(lib: Library) -> None:
    author_id = ask_id("Enter Author ID to update: ")
    if author_id is None:
        return
    author = lib.find_author_by_id(author_id)
    if author is None:
        report(NotFoundError("Author", author_id))
        return
    name = ask_record_text(f"Enter new Author Name (leave blank to keep current '{escape(author.name)}'): ", lib)
    lib.update_author(author_id, name=name)
    console.print(f"[green]Author with ID {author_id} updated successfully.[/]")


def find_author_by_name(lib: Library) -> None:
    name = ask_text("Enter Author Name to find: ")
    author = lib.find_author_by_name(name)
    if author is None:
        report(NotFoundError("Author", name))
        return
    console.print(f"Author Found: ID {author.author_id}, Name: {escape(author.name)}")


# ------------------------- Student actions ------------------------- #
def add_student(lib: Library) -> None:
    name = ask_record_text("Enter Student Name: ", lib)
    try:
        student = lib.add_student(name)
    except ValueError as e:
        report(e)
        return
    console.print(f"[green]Student added successfully with ID {student.student_id}.[/]")


def delete_student_by_id(lib: Library) -> None:
    student_id = ask_id("Enter Student ID to delete: ")
    if student_id is None:
        return
    try:
        lib.delete_student_by_id(student_id)
    except LibraryError as e:
        report(e)
        return
    console.print(f"[green]Student with ID {student_id} deleted successfully.[/]")


def delete_student_by_name(lib: Library) -> None:
    name = ask_text("Enter Student Name to delete: ")
    try:
        lib.delete_student_by_name(name)
    except LibraryError as e:
        report(e)
        return
    console.print(f"[green]Student with name '{escape(name)}' deleted successfully.[/]")


def update_student(lib: Library) -> None:
    student_id = ask_id("Enter Student ID to update: ")
    if student_id is None:
        return
    student = lib.find_student_by_id(student_id)
    if student is None:
        report(NotFoundError("Student", student_id))
        return
    name = ask_record_text(f"Enter new Student Name (leave blank to keep current '{escape(student.name)}'): ", lib)
    lib.update_student(student_id, name=name)
    console.print(f"[green]Student with ID {student_id} updated successfully.[/]")


def find_student_by_name(lib: Library) -> None:
    name = ask_text("Enter Student Name to find: ")
    student = lib.find_student_by_name(name)
    if student is None:
        report(NotFoundError("Student", name))
        return
    console.print(
        f"Student Found: ID {student.student_id}, Name: {escape(student.name)}, "
        f"Penalty Days: {student.penalty_days}"
    )


def student_info(lib: Library) -> None:
    student_id = ask_id("Enter Student ID to view info: ")
    if student_id is None:
        return
    try:
        student, loans = lib.student_info(student_id)
    except LibraryError as e:
        report(e)
        return
    print_student_info(student, loans)


def students_with_penalty(lib: Library) -> None:
    print_students(
        lib.students_with_penalty(),
        title="Students with Penalty",
        empty_message="No students currently have penalty days.",
    )


# ------------------------- Loan actions ------------------------- #
def borrow_book(lib: Library) -> None:
    student_id = ask_id("Enter Student ID: ")
    if student_id is None:
        return
    book_id = ask_id("Enter Book ID: ")
    if book_id is None:
        return
    copy_index = ask_id("Enter Copy Number: ")
    if copy_index is None:
        return
    try:
        loan = lib.add_loan(student_id, book_id, copy_index)
    except LibraryError as e:
        report(e)
        return
    console.print(f"[green]Book loaned successfully. Loan ID {loan.loan_id}, due {loan.due_date}.[/]")


def return_book(lib: Library) -> None:
    loan_id = ask_id("Enter Loan ID to return: ")
    if loan_id is None:
        return
    try:
        lib.return_loan(loan_id)
    except LibraryError as e:
        report(e)
        return
    console.print("[green]Book returned successfully.[/]")


def overdue_loans(lib: Library) -> None:
    print_loans(lib.overdue_loans(), title="Overdue Book Loans", empty_message="No overdue book loans.")


# ------------------------- Link actions ------------------------- #
def add_link(lib: Library) -> None:
    book_id = ask_id("Enter Book ID: ")
    if book_id is None:
        return
    author_id = ask_id("Enter Author ID: ")
    if author_id is None:
        return
    try:
        lib.add_link(book_id, author_id)
    except LibraryError as e:
        report(e)
        return
    console.print("[green]Book-author link added successfully.[/]")


# ------------------------- Menus ------------------------- #
Action = Callable[[Library], None]

SUBMENUS: Dict[str, Tuple[str, MenuItems, Dict[str, Action]]] = {
    "1": (
        "Book Operations",
        [
            ("1", "Add Book"),
            ("2", "Delete Book"),
            ("3", "Update Book"),
            ("4", "List All Books"),
            ("5", "List Book Copies (All Books)"),
            ("6", "List Book Copies (By Book Name)"),
            ("7", "Find Book by Name"),
            ("8", "Find Book by ISBN"),
            ("9", "Back to Main Menu"),
        ],
        {
            "1": add_book,
            "2": delete_book,
            "3": update_book,
            "4": lambda lib: print_books(lib.list_books()),
            "5": lambda lib: print_copies(lib.list_copies()),
            "6": copies_by_book_name,
            "7": find_book_by_name,
            "8": find_book_by_isbn,
            "9": lambda lib: None,
        },
    ),
    "2": (
        "Author Operations",
        [
            ("1", "Add Author"),
            ("2", "Delete Author"),
            ("3", "Update Author"),
            ("4", "List All Authors"),
            ("5", "Find Author by Name"),
            ("6", "Back to Main Menu"),
        ],
        {
            "1": add_author,
            "2": delete_author,
            "3": update_author,
            "4": lambda lib: print_authors(lib.list_authors()),
            "5": find_author_by_name,
            "6": lambda lib: None,
        },
    ),
    "3": (
        "Student Operations",
        [
            ("1", "Add Student"),
            ("2", "Delete Student by ID"),
            ("3", "Delete Student by Name"),
            ("4", "Update Student"),
            ("5", "List All Students"),
            ("6", "Find Student by Name"),
            ("7", "View Student Info (including loans)"),
            ("8", "List Students with Penalty"),
            ("9", "Back to Main Menu"),
        ],
        {
            "1": add_student,
            "2": delete_student_by_id,
            "3": delete_student_by_name,
            "4": update_student,
            "5": lambda lib: print_students(lib.list_students()),
            "6": find_student_by_name,
            "7": student_info,
            "8": students_with_penalty,
            "9": lambda lib: None,
        },
    ),
    "4": (
        "Book Loan Operations",
        [
            ("1", "Borrow Book"),
            ("2", "Return Book"),
            ("3", "List All Book Loans"),
            ("4", "List Overdue Loans"),
            ("5", "Back to Main Menu"),
        ],
        {
            "1": borrow_book,
            "2": return_book,
            "3": lambda lib: print_loans(lib.list_loans()),
            "4": overdue_loans,
            "5": lambda lib: None,
        },
    ),
    "5": (
        "Book-Author Link Operations",
        [
            ("1", "Add Book-Author Link"),
            ("2", "List All Book-Author Links"),
            ("3", "Back to Main Menu"),
        ],
        {
            "1": add_link,
            "2": lambda lib: print_links(lib.list_links()),
            "3": lambda lib: None,
        },
    ),
}

MAIN_MENU: MenuItems = [
    ("1", "Book Operations"),
    ("2", "Author Operations"),
    ("3", "Student Operations"),
    ("4", "Book Loan Operations"),
    ("5", "Book-Author Link Operations"),
    ("0", "Exit"),
]


def read_choice() -> Optional[str]:
    choice = ask_int("Enter your choice: ")
    return None if choice is None else str(choice)


def run_submenu(lib: Library, key: str) -> None:
    """Show one sub-menu until a valid choice is made, then run it."""
    title, items, actions = SUBMENUS[key]
    while True:
        render_menu(title, items)
        choice = read_choice()
        action = actions.get(choice) if choice is not None else None
        if action is None:
            console.print("[yellow]Invalid choice.[/]")
            continue
        action(lib)
        return


def shutdown(lib: Library) -> None:
    console.print("Exiting program. Saving data...")
    lib.close()
    console.print("[green]Data saved. Goodbye![/]")


def run_menu(lib: Optional[Library] = None) -> int:
    """Interactive menu for the library. Returns the process exit status."""
    lib = lib or LibraryManager.get_instance()
    try:
        while True:
            render_menu(f"{APP_NAME}", MAIN_MENU)
            choice = read_choice()
            if choice == "0":
                break
            if choice not in SUBMENUS:
                console.print("[yellow]Invalid choice. Please try again.[/]")
                continue
            run_submenu(lib, choice)
            print()  # blank line between operations
    except (EOFError, KeyboardInterrupt):
        console.print()
    shutdown(lib)
    return 0


# --- Typer CLI Application ---
app = typer.Typer(help="Library management CLI", add_completion=False)


@app.callback(invoke_without_command=True)
def _global_options(
    ctx: typer.Context,
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    data_dir: Optional[str] = typer.Option(
        None,
        "--data-dir",
        "-d",
        help="Directory holding the record files (default: LIBRARY_DATA_DIR or the current directory)",
    ),
):
    """Global options; with no command the interactive menu starts."""
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.WARNING))
    if output:
        set_output_mode(output)
    if data_dir:
        LibraryManager.set_instance(Library(data_dir=data_dir))
    if ctx.invoked_subcommand is None:
        raise typer.Exit(code=run_menu(LibraryManager.get_instance()))


@app.command("menu")
def cli_menu():
    """Start the interactive menu (saves all records on exit)."""
    raise typer.Exit(code=run_menu(LibraryManager.get_instance()))


@app.command("books")
def cli_books():
    """List all books."""
    print_books(LibraryManager.get_instance().list_books())


@app.command("copies")
def cli_copies(name: Optional[str] = typer.Option(None, "--name", "-n", help="Only this book (exact name)")):
    """List book copies and their shelf status (0: shelf, 1: borrowed)."""
    try:
        books = LibraryManager.get_instance().list_copies(name)
    except NotFoundError as e:
        print(str(e))
        raise typer.Exit(code=1)
    print_copies(books)


@app.command("authors")
def cli_authors():
    """List all authors."""
    print_authors(LibraryManager.get_instance().list_authors())


@app.command("students")
def cli_students():
    """List all students."""
    print_students(LibraryManager.get_instance().list_students())


@app.command("penalties")
def cli_penalties():
    """List students with penalty days."""
    print_students(
        LibraryManager.get_instance().students_with_penalty(),
        title="Students with Penalty",
        empty_message="No students currently have penalty days.",
    )


@app.command("student-info")
def cli_student_info(student_id: int = typer.Argument(..., help="Student ID")):
    """Show a student and their active loans."""
    try:
        student, loans = LibraryManager.get_instance().student_info(student_id)
    except NotFoundError as e:
        print(str(e))
        raise typer.Exit(code=1)
    print_student_info(student, loans)


@app.command("loans")
def cli_loans():
    """List all book loans."""
    print_loans(LibraryManager.get_instance().list_loans())


@app.command("overdue")
def cli_overdue():
    """List active loans past their due date."""
    print_loans(
        LibraryManager.get_instance().overdue_loans(),
        title="Overdue Book Loans",
        empty_message="No overdue book loans.",
    )


@app.command("links")
def cli_links():
    """List all book-author links."""
    print_links(LibraryManager.get_instance().list_links())


@app.command("stats")
def cli_stats():
    """Show library statistics."""
    print_stats_result(LibraryManager.get_instance().statistics())


if __name__ == "__main__":
    app()
