"""Tests for the durable store implementations."""

import asyncio
from pathlib import Path

import pytest

from taskhue.exceptions import QuotaExceededError, StoreError
from taskhue.store import MemoryStore, StoreArea, StoreChange, YamlFileStore, read_store_file


class TestMemoryStore:
    """Tests for MemoryStore."""

    def test_get_omits_absent_keys(self) -> None:
        store = MemoryStore({StoreArea.SYNC: {"taskColors": {"t1": "#ff0000"}}})
        data = asyncio.run(store.get(StoreArea.SYNC, ["taskColors", "missing"]))
        assert data == {"taskColors": {"t1": "#ff0000"}}

    def test_tiers_are_separate(self) -> None:
        store = MemoryStore({StoreArea.SYNC: {"taskColors": {"t1": "#ff0000"}}})
        assert asyncio.run(store.get(StoreArea.LOCAL, ["taskColors"])) == {}

    def test_values_are_copied(self) -> None:
        store = MemoryStore()
        table = {"t1": "#ff0000"}

        async def run() -> dict:
            await store.set(StoreArea.SYNC, {"taskColors": table})
            table["t2"] = "#00ff00"
            data = await store.get(StoreArea.SYNC, ["taskColors"])
            data["taskColors"]["t3"] = "#0000ff"
            return (await store.get(StoreArea.SYNC, ["taskColors"]))["taskColors"]

        assert asyncio.run(run()) == {"t1": "#ff0000"}

    def test_set_notifies_listeners(self) -> None:
        store = MemoryStore()
        changes: list[StoreChange] = []
        unsubscribe = store.on_change(changes.append)

        asyncio.run(store.set(StoreArea.LOCAL, {"taskToListMap": {}, "calendarEventMapping": {}}))
        unsubscribe()
        asyncio.run(store.set(StoreArea.LOCAL, {"taskToListMap": {}}))

        assert changes == [
            StoreChange(StoreArea.LOCAL, frozenset({"taskToListMap", "calendarEventMapping"}))
        ]

    def test_sync_quota(self) -> None:
        store = MemoryStore(sync_quota_bytes_per_item=30)
        big = {f"task-{i}": "#ff0000" for i in range(5)}

        with pytest.raises(QuotaExceededError, match="quota is 30 bytes"):
            asyncio.run(store.set(StoreArea.SYNC, {"taskColors": big}))
        assert store.snapshot()["sync"] == {}

    def test_local_tier_has_no_quota(self) -> None:
        store = MemoryStore(sync_quota_bytes_per_item=30)
        big = {f"task-{i}": "list" for i in range(50)}
        asyncio.run(store.set(StoreArea.LOCAL, {"taskToListMap": big}))
        assert len(store.snapshot()["local"]["taskToListMap"]) == 50


class TestYamlFileStore:
    """Tests for YamlFileStore."""

    def test_writes_persist(self, tmp_path: Path) -> None:
        path = tmp_path / "store.yaml"
        store = YamlFileStore(path)
        asyncio.run(store.set(StoreArea.SYNC, {"taskColors": {"t1": "#ff0000"}}))

        reopened = YamlFileStore(path)
        data = asyncio.run(reopened.get(StoreArea.SYNC, ["taskColors"]))
        assert data == {"taskColors": {"t1": "#ff0000"}}

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        store = YamlFileStore(tmp_path / "new.yaml")
        assert store.snapshot() == {"sync": {}, "local": {}}


class TestReadStoreFile:
    """Tests for read_store_file."""

    def test_reads_tiers(self, tmp_path: Path) -> None:
        path = tmp_path / "store.yaml"
        path.write_text("sync:\n  taskColors:\n    t1: '#ff0000'\nlocal:\n  taskToListMap: {}\n")

        data = read_store_file(path)

        assert data[StoreArea.SYNC] == {"taskColors": {"t1": "#ff0000"}}
        assert data[StoreArea.LOCAL] == {"taskToListMap": {}}

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "store.yaml"
        path.write_text("")
        assert read_store_file(path) == {}

    def test_unknown_tier_is_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "store.yaml"
        path.write_text("session:\n  x: 1\nsync: {}\n")
        assert read_store_file(path) == {StoreArea.SYNC: {}}

    @pytest.mark.parametrize(
        "content",
        ["- a\n- b\n", "sync: [1, 2]\n", "sync: {unclosed\n"],
    )
    def test_bad_files(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "store.yaml"
        path.write_text(content)
        with pytest.raises(StoreError):
            read_store_file(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(StoreError, match="Failed to read"):
            read_store_file(tmp_path / "missing.yaml")
