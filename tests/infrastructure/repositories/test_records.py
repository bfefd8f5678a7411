"""Tests for owner-scoped record storage."""

from typing import Any

import pytest
from sqlalchemy.engine import Engine

from mategate.infrastructure.repositories.records import RecordRepository


def _row(record_id: str, **overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": record_id,
        "domain": "memories",
        "owner": "alice",
        "title": f"title {record_id}",
        "body": "",
        "tags": [],
        "data": {},
        "created": "2026-01-01T00:00:00+00:00",
        "modified": "2026-01-01T00:00:00+00:00",
    }
    row.update(overrides)
    return row


@pytest.fixture
def repo(db_engine: Engine) -> RecordRepository:
    return RecordRepository(db_engine)


class TestRecordRepository:
    def test_insert_and_get_decodes_json(self, repo: RecordRepository) -> None:
        repo.insert(_row("mem_1", tags=["x"], data={"k": 1}))
        row = repo.get("memories", "alice", "mem_1")
        assert row is not None
        assert row["tags"] == ["x"]
        assert row["data"] == {"k": 1}

    def test_owner_and_domain_scoping(self, repo: RecordRepository) -> None:
        repo.insert(_row("mem_1"))
        assert repo.get("memories", "bob", "mem_1") is None
        assert repo.get("knowledge", "alice", "mem_1") is None
        assert not repo.update("memories", "bob", "mem_1", {"title": "x"})
        assert not repo.delete("memories", "bob", "mem_1")
        assert repo.get("memories", "alice", "mem_1") is not None

    def test_list_newest_first_with_tag_filter(self, repo: RecordRepository) -> None:
        repo.insert(_row("mem_1", tags=["a"], modified="2026-01-01T00:00:01+00:00"))
        repo.insert(_row("mem_2", tags=["b"], modified="2026-01-01T00:00:02+00:00"))
        repo.insert(_row("mem_3", tags=["a", "b"], modified="2026-01-01T00:00:03+00:00"))
        assert [r["id"] for r in repo.list_rows("memories", "alice")] == [
            "mem_3",
            "mem_2",
            "mem_1",
        ]
        assert [r["id"] for r in repo.list_rows("memories", "alice", tag="a")] == [
            "mem_3",
            "mem_1",
        ]
        assert [r["id"] for r in repo.list_rows("memories", "alice", limit=1, offset=1)] == [
            "mem_2"
        ]

    def test_update_and_delete(self, repo: RecordRepository) -> None:
        repo.insert(_row("mem_1"))
        assert repo.update("memories", "alice", "mem_1", {"title": "new", "tags": ["t"]})
        row = repo.get("memories", "alice", "mem_1")
        assert row["title"] == "new"
        assert row["tags"] == ["t"]
        assert repo.delete("memories", "alice", "mem_1")
        assert repo.get("memories", "alice", "mem_1") is None

    def test_search_case_insensitive_across_domains(self, repo: RecordRepository) -> None:
        repo.insert(_row("mem_1", title="Deploy notes"))
        repo.insert(_row("kn_1", domain="knowledge", body="how to DEPLOY"))
        repo.insert(_row("kn_2", domain="knowledge", title="other"))
        repo.insert(_row("mem_9", owner="bob", title="deploy"))
        hits = repo.search("alice", "deploy", domains=["memories", "knowledge"])
        assert sorted(h["id"] for h in hits) == ["kn_1", "mem_1"]
        only = repo.search("alice", "deploy", domains=["knowledge"])
        assert [h["id"] for h in only] == ["kn_1"]

    def test_search_treats_wildcards_literally(self, repo: RecordRepository) -> None:
        repo.insert(_row("mem_1", title="100% done"))
        repo.insert(_row("mem_2", title="1000 things"))
        assert [h["id"] for h in repo.search("alice", "100%", domains=["memories"])] == ["mem_1"]
