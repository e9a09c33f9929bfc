"""Pytest configuration for the pharfile tests."""

import pytest

from generate_test_data import simple_phar


@pytest.fixture
def simple_archive_bytes():
    """The two-entry archive: 1.txt, index.php and serialized metadata."""
    return simple_phar()


@pytest.fixture
def phar_file(tmp_path):
    """Writes archive bytes to a file and returns its path."""
    def write(data, name="test.phar"):
        path = tmp_path / name
        path.write_bytes(data)
        return path
    return write
