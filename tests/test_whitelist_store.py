"""
Tests for the file-backed whitelist.

Run with: python -m pytest tests/test_whitelist_store.py -v
"""
import asyncio
import logging
import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from whitelist_store import WhitelistStore


def test_missing_file_loads_empty(tmp_path):
    store = WhitelistStore(str(tmp_path / "white_user.txt"))

    assert store.load() == set()
    assert not store.contains(1)


def test_load_skips_blank_and_garbage_lines(tmp_path):
    path = tmp_path / "white_user.txt"
    path.write_text("  101 \n\nnot-a-number\n202\n101\n-5\n", encoding="utf-8")

    store = WhitelistStore(str(path))

    assert store.load() == {101, 202, -5}
    assert store.contains(202)
    assert len(store) == 3


def test_unreadable_file_loads_empty_with_warning(tmp_path, caplog):
    # A directory at the whitelist path cannot be read as a file
    path = tmp_path / "white_user.txt"
    path.mkdir()

    store = WhitelistStore(str(path))
    with caplog.at_level(logging.WARNING):
        assert store.load() == set()

    assert "Could not read whitelist file" in caplog.text


def test_add_is_idempotent(tmp_path):
    path = tmp_path / "white_user.txt"
    store = WhitelistStore(str(path))
    store.load()

    async def scenario():
        first = await store.add(42)
        second = await store.add(42)
        return first, second

    first, second = asyncio.run(scenario())

    assert first is True
    assert second is False
    assert store.contains(42)
    assert path.read_text(encoding="utf-8") == "42\n"


def test_add_creates_parent_directory(tmp_path):
    path = tmp_path / "data" / "nested" / "white_user.txt"
    store = WhitelistStore(str(path))

    assert asyncio.run(store.add(7)) is True
    assert path.read_text(encoding="utf-8") == "7\n"


def test_concurrent_adds_write_one_line(tmp_path):
    path = tmp_path / "white_user.txt"
    store = WhitelistStore(str(path))

    async def scenario():
        return await asyncio.gather(*(store.add(555) for _ in range(20)))

    results = asyncio.run(scenario())

    assert results.count(True) == 1
    assert path.read_text(encoding="utf-8").splitlines() == ["555"]


def test_round_trip_through_file(tmp_path):
    path = tmp_path / "white_user.txt"
    store = WhitelistStore(str(path))
    user_ids = [3, 1, 2, 10_000_000_001, 3, 1]

    async def scenario():
        for user_id in user_ids:
            await store.add(user_id)

    asyncio.run(scenario())

    reloaded = WhitelistStore(str(path))
    assert reloaded.load() == {1, 2, 3, 10_000_000_001}
    assert len(path.read_text(encoding="utf-8").splitlines()) == 4


def test_failed_write_propagates_and_keeps_user_out(tmp_path):
    # The parent "directory" is a regular file, so the append must fail
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    store = WhitelistStore(str(blocker / "white_user.txt"))

    with pytest.raises(OSError):
        asyncio.run(store.add(99))

    assert not store.contains(99)
    assert len(store) == 0


def test_add_after_file_without_trailing_newline(tmp_path):
    path = tmp_path / "white_user.txt"
    path.write_text("101", encoding="utf-8")
    store = WhitelistStore(str(path))
    store.load()

    assert asyncio.run(store.add(202)) is True

    assert path.read_text(encoding="utf-8") == "101\n202\n"
    assert WhitelistStore(str(path)).load() == {101, 202}
