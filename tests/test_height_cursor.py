"""
Test the durable height cursor.
"""

import pytest

from aleo_rewards.core.exceptions import CursorError
from aleo_rewards.indexer.height_cursor import HeightCursor


def test_missing_file_reads_none(cursor):
    assert cursor.read() is None
    assert not cursor.exists()


def test_write_is_four_byte_little_endian(cursor):
    cursor.write(372595)

    assert cursor.path.read_bytes() == (372595).to_bytes(4, "little")
    assert cursor.read() == 372595


def test_write_replaces_previous_value(cursor):
    cursor.write(10)
    cursor.write(11)

    assert cursor.read() == 11
    assert not cursor._tmp_path.exists()


def test_wrong_size_is_rejected(tmp_path):
    path = tmp_path / "height"
    path.write_bytes(b"\x01\x02")

    with pytest.raises(CursorError):
        HeightCursor(path).read()


@pytest.mark.parametrize("height", [-1, 2**32])
def test_height_must_be_u32(cursor, height):
    with pytest.raises(CursorError):
        cursor.write(height)


def test_ensure_creates_missing_file(cursor):
    assert cursor.ensure(42) == 42
    assert cursor.ensure(7) == 42
