import pytest

from library import Library
from main import LibraryManager


@pytest.fixture
def lib(tmp_path, monkeypatch):
    # Each test gets its own data directory and plain output
    monkeypatch.setenv("LIB_CLI_OUTPUT", "plain")
    lib = Library(data_dir=str(tmp_path))
    LibraryManager.set_instance(lib)
    yield lib
    lib.close()
    LibraryManager.reset()
