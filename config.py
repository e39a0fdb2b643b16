import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()

@dataclass
class Settings:
    # Application
    app_name: str = os.getenv("APP_NAME", "Library Management System")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    log_level: str = os.getenv("LOG_LEVEL", "WARNING").upper()

    # Record files
    data_dir: str = os.getenv("LIBRARY_DATA_DIR", ".")
    books_file: str = os.getenv("LIBRARY_BOOKS_FILE", "kitaplar.csv")
    authors_file: str = os.getenv("LIBRARY_AUTHORS_FILE", "yazarlar.csv")
    links_file: str = os.getenv("LIBRARY_LINKS_FILE", "kitap_yazar.csv")
    students_file: str = os.getenv("LIBRARY_STUDENTS_FILE", "ogrenciler.csv")
    loans_file: str = os.getenv("LIBRARY_LOANS_FILE", "kitap_odunc.csv")
    delimiter: str = os.getenv("LIBRARY_DELIMITER", ",")

    # Field limits (names and ISBNs longer than this are cut on input)
    max_name_len: int = int(os.getenv("LIBRARY_MAX_NAME_LEN", "100"))
    max_isbn_len: int = int(os.getenv("LIBRARY_MAX_ISBN_LEN", "20"))

    # Loans
    loan_days: int = int(os.getenv("LIBRARY_LOAN_DAYS", "14"))

    # CLI output: plain | json | rich
    output_mode: str = os.getenv("LIB_CLI_OUTPUT", "plain").lower()


settings = Settings()
