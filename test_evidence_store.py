"""Tests for the local evidence store."""

import json
import re
from datetime import datetime, timedelta, timezone

import pytest

from compliance_lens.storage.evidence_store import (
    MAX_HISTORY_ITEMS,
    EvidenceStore,
    generate_item_id,
)
from compliance_lens.utils.errors import StorageError

BASE_TIME = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_append_returns_newest_first(tmp_path, analysis_result, normalized_image):
    async with EvidenceStore(tmp_path / "history") as store:
        await store.append(analysis_result, normalized_image, timestamp=BASE_TIME)
        history = await store.append(
            analysis_result, normalized_image, timestamp=BASE_TIME + timedelta(minutes=5)
        )

    assert len(history) == 2
    assert history[0].timestamp > history[1].timestamp
    assert history[0].result == analysis_result
    assert history[0].image == normalized_image


@pytest.mark.asyncio
async def test_capacity_keeps_twenty_most_recent(tmp_path, analysis_result, normalized_image):
    timestamps = [BASE_TIME + timedelta(seconds=i) for i in range(25)]

    async with EvidenceStore(tmp_path) as store:
        for timestamp in timestamps:
            await store.append(analysis_result, normalized_image, timestamp=timestamp)
        history = await store.list()

    assert MAX_HISTORY_ITEMS == 20
    assert len(history) == 20
    assert [item.timestamp for item in history] == sorted(timestamps[5:], reverse=True)
    assert len(list(tmp_path.glob("*.json"))) == 20


@pytest.mark.asyncio
async def test_eviction_is_by_timestamp_not_insertion_order(tmp_path, analysis_result, normalized_image):
    async with EvidenceStore(tmp_path, capacity=2) as store:
        await store.append(analysis_result, normalized_image, timestamp=BASE_TIME + timedelta(hours=2))
        await store.append(analysis_result, normalized_image, timestamp=BASE_TIME)
        history = await store.append(analysis_result, normalized_image, timestamp=BASE_TIME + timedelta(hours=1))

    assert [item.timestamp for item in history] == [
        BASE_TIME + timedelta(hours=2),
        BASE_TIME + timedelta(hours=1),
    ]


@pytest.mark.asyncio
async def test_clear_is_idempotent(tmp_path, analysis_result, normalized_image):
    async with EvidenceStore(tmp_path) as store:
        await store.append(analysis_result, normalized_image)
        await store.clear()
        assert await store.list() == []
        await store.clear()
        assert await store.list() == []


@pytest.mark.asyncio
async def test_history_survives_reopen(tmp_path, analysis_result, normalized_image):
    async with EvidenceStore(tmp_path) as store:
        saved = await store.append(analysis_result, normalized_image)

    async with EvidenceStore(tmp_path) as reopened:
        history = await reopened.list()
        found = await reopened.get(saved[0].id)

    assert [item.id for item in history] == [saved[0].id]
    assert found == saved[0]


@pytest.mark.asyncio
async def test_corrupt_record_is_skipped(tmp_path, analysis_result, normalized_image):
    async with EvidenceStore(tmp_path) as store:
        first = await store.append(analysis_result, normalized_image)
        valid = json.loads((tmp_path / f"{first[0].id}.json").read_text(encoding="utf-8"))

        (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")
        (tmp_path / "partial.json").write_text(json.dumps({"id": "x"}), encoding="utf-8")
        (tmp_path / "list.json").write_text("[]", encoding="utf-8")

        for name, key, value in [
            ("null-result", "result", None),
            ("text-image", "image", "data:image/jpeg;base64,AAAA"),
            ("bad-data-url", "image", {"dataUrl": 42}),
            ("list-violations", "result", {"summary": {"text": "x"}, "violations": 7}),
        ]:
            record = dict(valid, id=name, **{key: value})
            (tmp_path / f"{name}.json").write_text(json.dumps(record), encoding="utf-8")

        history = await store.list()
        saved = await store.append(analysis_result, normalized_image)

    assert len(history) == 1
    assert len(saved) == 2


@pytest.mark.asyncio
async def test_unavailable_storage_degrades_to_empty_history(tmp_path, analysis_result, normalized_image):
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("occupied", encoding="utf-8")

    store = EvidenceStore(blocker / "history")
    assert await store.open() is False
    assert store.is_open is False

    assert await store.list() == []
    assert await store.append(analysis_result, normalized_image) == []
    await store.clear()


@pytest.mark.asyncio
async def test_write_failure_returns_best_effort_history(
    tmp_path, monkeypatch, analysis_result, normalized_image
):
    async with EvidenceStore(tmp_path) as store:
        first = await store.append(analysis_result, normalized_image, timestamp=BASE_TIME)

        def failing_write(item):
            raise OSError("disk full")

        monkeypatch.setattr(store, "_write_record", failing_write)
        history = await store.append(analysis_result, normalized_image)

    assert [item.id for item in history] == [first[0].id]


@pytest.mark.asyncio
async def test_run_reports_failures_as_storage_error(tmp_path):
    async with EvidenceStore(tmp_path) as store:
        def boom():
            raise OSError("read-only file system")

        with pytest.raises(StorageError) as excinfo:
            await store._run("list", boom)

    assert "read-only file system" in str(excinfo.value)


@pytest.mark.asyncio
async def test_closed_store_reports_no_history(tmp_path, analysis_result, normalized_image):
    store = EvidenceStore(tmp_path)
    assert await store.list() == []
    assert await store.append(analysis_result, normalized_image) == []


def test_item_ids_are_unique_and_time_prefixed():
    ids = {generate_item_id() for _ in range(500)}
    assert len(ids) == 500
    assert all(re.fullmatch(r"[0-9a-f]+-[0-9a-f]{8}", item_id) for item_id in ids)


def test_capacity_must_be_positive(tmp_path):
    with pytest.raises(ValueError):
        EvidenceStore(tmp_path, capacity=0)


@pytest.mark.asyncio
async def test_clear_reaches_records_without_prior_open(tmp_path, analysis_result, normalized_image):
    async with EvidenceStore(tmp_path) as store:
        await store.append(analysis_result, normalized_image)

    unopened = EvidenceStore(tmp_path)
    await unopened.clear()

    assert unopened.is_open
    assert list(tmp_path.glob("*.json")) == []
    assert await unopened.list() == []
