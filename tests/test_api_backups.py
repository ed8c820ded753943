"""Tests for backup, export and restore API endpoints."""

from typing import Any

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError

from cardkeeper.db.operations import add_card
from cardkeeper.services import restore_engine as restore_module

USER = "user-a"


def _payload(cards: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "version": "2.0",
        "timestamp": "2024-05-01T10:00:00.000Z",
        "appName": "Sports Card Tracker",
        "userId": USER,
        "cards": cards,
        "metadata": {"totalCards": len(cards), "totalValue": 0},
    }


@pytest.fixture
async def stored_cards(session, make_card):
    cards = [make_card(), make_card()]
    for card in cards:
        await add_card(session, card)
    await session.commit()
    return cards


class TestExport:
    async def test_snapshot(self, client: AsyncClient, stored_cards) -> None:
        response = await client.get(f"/backups/{USER}/snapshot", params={"user_name": "Ann"})

        assert response.status_code == 200
        data = response.json()
        assert data["version"] == "2.0"
        assert data["appName"] == "Sports Card Tracker"
        assert data["userId"] == USER
        assert [card["id"] for card in data["cards"]] == [c.id for c in stored_cards]
        assert data["metadata"]["totalCards"] == 2
        assert data["metadata"]["totalValue"] == 50
        assert data["metadata"]["userName"] == "Ann"

    async def test_csv(self, client: AsyncClient, stored_cards) -> None:
        response = await client.get(f"/backups/{USER}/export.csv")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "sports-cards-" in response.headers["content-disposition"]
        lines = response.text.split("\n")
        assert lines[0].startswith("ID,Player,")
        assert len(lines) == 3


class TestStoredBackups:
    async def test_create_and_list(self, client: AsyncClient, stored_cards) -> None:
        response = await client.post(f"/backups/{USER}", json={})

        assert response.status_code == 201
        created = response.json()
        assert created["type"] == "manual"
        assert created["total_cards"] == 2
        assert created["size_bytes"] > 0

        listed = (await client.get(f"/backups/{USER}")).json()
        assert [b["id"] for b in listed["backups"]] == [created["id"]]

    async def test_only_one_auto_backup_kept(self, client: AsyncClient, stored_cards) -> None:
        first = (await client.post(f"/backups/{USER}", json={"type": "auto"})).json()
        second = (await client.post(f"/backups/{USER}", json={"type": "auto"})).json()
        await client.post(f"/backups/{USER}", json={"type": "manual"})

        auto = (await client.get(f"/backups/{USER}/auto")).json()
        assert [b["id"] for b in auto["backups"]] == [second["id"]]
        assert first["id"] != second["id"]

        stats = (await client.get(f"/backups/{USER}/stats")).json()
        assert stats["total_backups"] == 2
        assert stats["auto_backups"] == 1
        assert stats["manual_backups"] == 1
        assert stats["total_size_bytes"] > 0

    async def test_clear_auto_then_all(self, client: AsyncClient, stored_cards) -> None:
        await client.post(f"/backups/{USER}", json={"type": "auto"})
        await client.post(f"/backups/{USER}", json={"type": "manual"})

        cleared = (await client.delete(f"/backups/{USER}/auto")).json()
        assert cleared["removed"] == 1

        cleared = (await client.delete(f"/backups/{USER}")).json()
        assert cleared["removed"] == 1
        assert (await client.get(f"/backups/{USER}")).json()["backups"] == []

    async def test_get_and_delete_one(self, client: AsyncClient, stored_cards) -> None:
        created = (await client.post(f"/backups/{USER}", json={})).json()

        response = await client.get(f"/backups/{USER}/{created['id']}")
        assert response.status_code == 200
        assert len(response.json()["cards"]) == 2

        response = await client.delete(f"/backups/{USER}/{created['id']}")
        assert response.status_code == 204
        assert (await client.get(f"/backups/{USER}/{created['id']}")).status_code == 404

    async def test_other_users_backup_is_not_found(
        self, client: AsyncClient, stored_cards
    ) -> None:
        created = (await client.post(f"/backups/{USER}", json={})).json()

        response = await client.get(f"/backups/user-b/{created['id']}")

        assert response.status_code == 404


class TestRestore:
    async def test_restore_file(self, client: AsyncClient, make_card) -> None:
        cards = [make_card().to_wire() for _ in range(3)]

        response = await client.post(
            f"/backups/{USER}/restore", json={"backup": _payload(cards)}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["imported"] == 3
        assert data["phase"] == "done"
        assert data["final_card_count"] == 3

    async def test_restore_skips_duplicates(
        self, client: AsyncClient, stored_cards
    ) -> None:
        cards = [card.to_wire() for card in stored_cards]

        response = await client.post(
            f"/backups/{USER}/restore", json={"backup": _payload(cards)}
        )

        assert response.json()["imported"] == 0
        assert response.json()["skipped"] == 2

    async def test_invalid_file_is_rejected(self, client: AsyncClient) -> None:
        payload = _payload([])
        del payload["appName"]

        response = await client.post(f"/backups/{USER}/restore", json={"backup": payload})

        assert response.status_code == 422
        body = response.json()
        assert body["kind"] == "validation_failed"
        assert "appName" in body["detail"]

    async def test_restore_needs_a_source(self, client: AsyncClient) -> None:
        response = await client.post(f"/backups/{USER}/restore", json={})

        assert response.status_code == 422
        assert response.json()["kind"] == "validation_failed"

    async def test_restore_stored_backup(self, client: AsyncClient, stored_cards) -> None:
        created = (await client.post(f"/backups/{USER}", json={})).json()

        response = await client.post(
            f"/backups/{USER}/restore",
            json={"backup_id": created["id"], "clear_existing": True},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["cleared"] == 2
        assert data["imported"] == 2
        assert data["final_card_count"] == 2

    async def test_store_failure_returns_partial_result(
        self, client: AsyncClient, make_card, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        real_add_card = restore_module.add_card
        calls = {"n": 0}

        async def dying_add_card(session, card):
            calls["n"] += 1
            if calls["n"] == 2:
                raise OperationalError("INSERT", {}, Exception("database is locked"))
            return await real_add_card(session, card)

        monkeypatch.setattr(restore_module, "add_card", dying_add_card)
        cards = [make_card().to_wire() for _ in range(3)]

        response = await client.post(
            f"/backups/{USER}/restore", json={"backup": _payload(cards)}
        )

        assert response.status_code == 503
        body = response.json()
        assert body["kind"] == "partial_import"
        assert body["result"]["imported"] == 1
        assert body["result"]["phase"] == "importing"
