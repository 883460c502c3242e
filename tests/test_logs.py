from __future__ import annotations

from collections.abc import Iterator

import pytest
from loguru import logger

from kvbatch import logs
from kvbatch.app.subsystems.aio.store import memory
from kvbatch.batch import Batch


@pytest.fixture
def records() -> Iterator[list[str]]:
    captured: list[str] = []
    logs.configure("DEBUG", captured.append)
    yield captured
    logs.disable()


def test_disabled_by_default() -> None:
    captured: list[str] = []
    handler_id = logger.add(captured.append, level="DEBUG")
    try:
        Batch(is_atomic=False).ping().submit()
    finally:
        logger.remove(handler_id)

    assert captured == []


def test_submit_is_logged(records: list[str]) -> None:
    Batch(is_atomic=True).ping().ping().submit()

    assert any("submitting batch of 2 commands (atomic=True)" in r for r in records)


def test_rollback_is_logged(records: list[str]) -> None:
    store = memory.new(memory.Config())
    store.execute([Batch(is_atomic=True).set("a", "1").lpush("a", ["x"]).submit()])

    assert any("transaction rolled back at command 1 of 2 (LPUSH)" in r for r in records)


def test_level_filters_records(records: list[str]) -> None:
    logs.configure("WARNING", records.append)
    Batch(is_atomic=False).ping().submit()

    assert records == []
