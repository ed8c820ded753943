"""Tests for backup validation and restore."""

import asyncio
import json
from typing import Any

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from cardkeeper.db.operations import (
    add_card,
    card_to_model,
    count_cards,
    get_card,
    list_cards,
)
from cardkeeper.models.failure import PartialImportError, ValidationError
from cardkeeper.services import restore_engine as restore_module
from cardkeeper.services.collection_registry import CollectionCreate, CollectionRegistry
from cardkeeper.services.locks import user_locks
from cardkeeper.services.restore_engine import (
    RestoreEngine,
    RestoreOptions,
    RestorePhase,
    validate_snapshot,
)
from cardkeeper.services.snapshot_builder import SnapshotBuilder

USER = "user-a"


def _payload(cards: list[Any], version: str = "2.0", user_id: str | None = USER) -> dict:
    payload: dict[str, Any] = {
        "version": version,
        "timestamp": "2024-05-01T10:00:00.000Z",
        "appName": "Sports Card Tracker",
        "cards": cards,
        "metadata": {"totalCards": len(cards), "totalValue": 0},
    }
    if user_id is not None:
        payload["userId"] = user_id
    return payload


@pytest.fixture
def wire_cards(make_card):
    def _make(count: int, **overrides: Any) -> list[dict[str, Any]]:
        return [make_card(**overrides).to_wire() for _ in range(count)]

    return _make


@pytest.fixture
def engine(session: AsyncSession) -> RestoreEngine:
    return RestoreEngine(session)


class TestValidation:
    @pytest.mark.parametrize("field", ["version", "timestamp", "appName"])
    def test_missing_header_field(self, field: str) -> None:
        payload = _payload([])
        del payload[field]

        with pytest.raises(ValidationError) as exc_info:
            validate_snapshot(payload)

        assert exc_info.value.field == field

    def test_not_json(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_snapshot("{not json")

        assert exc_info.value.field == "$"

    def test_not_an_object(self) -> None:
        with pytest.raises(ValidationError):
            validate_snapshot([1, 2, 3])

    def test_cards_must_be_a_list(self) -> None:
        payload = _payload([])
        payload["cards"] = {"id": "x"}

        with pytest.raises(ValidationError) as exc_info:
            validate_snapshot(payload)

        assert exc_info.value.field == "cards"

    def test_metadata_required(self) -> None:
        payload = _payload([])
        del payload["metadata"]

        with pytest.raises(ValidationError) as exc_info:
            validate_snapshot(payload)

        assert exc_info.value.field == "metadata"

    def test_version_two_requires_owner(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_snapshot(_payload([], user_id=None))

        assert exc_info.value.field == "userId"

    def test_version_two_cards_require_owner(self, wire_cards) -> None:
        cards = wire_cards(2)
        cards[1]["userId"] = ""

        with pytest.raises(ValidationError) as exc_info:
            validate_snapshot(_payload(cards))

        assert exc_info.value.card_index == 1
        assert exc_info.value.field == "userId"

    def test_version_one_needs_no_owner(self, wire_cards) -> None:
        cards = wire_cards(1)
        del cards[0]["userId"]

        snapshot = validate_snapshot(_payload(cards, version="1.0", user_id=None))

        assert snapshot.user_id == ""
        assert len(snapshot.cards) == 1

    async def test_empty_metadata_accepted(self, engine, session, wire_cards) -> None:
        payload = _payload(wire_cards(2), version="1.0", user_id=None)
        payload["metadata"] = {}

        snapshot = validate_snapshot(payload)
        result = await engine.restore(USER, snapshot)

        assert snapshot.metadata.total_cards == 0
        assert result.imported == 2
        assert await count_cards(session, USER) == 2

    def test_zero_year_counts_as_missing(self, wire_cards) -> None:
        cards = wire_cards(2)
        cards[1]["year"] = 0

        with pytest.raises(ValidationError) as exc_info:
            validate_snapshot(_payload(cards))

        assert exc_info.value.detail == "cards[1].year: missing"

    def test_unparseable_version(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_snapshot(_payload([], version="next"))

        assert exc_info.value.field == "version"

    def test_card_missing_required_field(self, wire_cards) -> None:
        cards = wire_cards(3)
        del cards[2]["player"]

        with pytest.raises(ValidationError) as exc_info:
            validate_snapshot(_payload(cards))

        assert exc_info.value.detail == "cards[2].player: missing"

    def test_card_with_bad_type(self, wire_cards) -> None:
        cards = wire_cards(2)
        cards[0]["year"] = "nineteen-ninety"

        with pytest.raises(ValidationError) as exc_info:
            validate_snapshot(_payload(cards))

        assert exc_info.value.card_index == 0
        assert exc_info.value.field == "year"

    def test_accepts_json_text(self, wire_cards) -> None:
        snapshot = validate_snapshot(json.dumps(_payload(wire_cards(2))))

        assert len(snapshot.cards) == 2

    async def test_rejected_file_writes_nothing(self, engine, session, wire_cards) -> None:
        cards = wire_cards(3)
        cards[2]["brand"] = ""

        with pytest.raises(ValidationError):
            await engine.restore_raw(USER, _payload(cards))

        assert await count_cards(session, USER) == 0


class TestRestore:
    async def test_imports_cards_as_acting_user(self, engine, session, wire_cards) -> None:
        payload = _payload(wire_cards(3, user_id="someone-else"), user_id="someone-else")

        result = await engine.restore_raw(USER, payload)

        assert result.imported == 3
        assert result.phase is RestorePhase.DONE
        assert result.final_card_count == 3
        assert all(row.user_id == USER for row in await list_cards(session, USER))

    async def test_skip_duplicates_is_idempotent(self, engine, session, wire_cards) -> None:
        payload = _payload(wire_cards(4))

        first = await engine.restore_raw(USER, payload)
        second = await engine.restore_raw(USER, payload)

        assert first.imported == 4
        assert second.imported == 0
        assert second.skipped == 4
        assert await count_cards(session, USER) == 4

    async def test_without_skip_duplicates_existing_ids_fail(
        self, engine, session, wire_cards
    ) -> None:
        payload = _payload(wire_cards(2))
        await engine.restore_raw(USER, payload)

        result = await engine.restore_raw(
            USER, payload, RestoreOptions(skip_duplicates=False)
        )

        assert result.imported == 0
        assert len(result.errors) == 2
        assert "a card with this id already exists" in result.errors[0]
        assert await count_cards(session, USER) == 2

    async def test_clear_existing_leaves_exactly_the_file(
        self, engine, session, make_card, wire_cards
    ) -> None:
        for _ in range(5):
            await add_card(session, make_card())
        await add_card(session, make_card("bystander", user_id="user-b"))
        await session.commit()
        payload = _payload(wire_cards(2))
        expected_ids = {card["id"] for card in payload["cards"]}

        result = await engine.restore_raw(USER, payload, RestoreOptions(clear_existing=True))

        assert result.cleared == 5
        assert result.imported == 2
        assert {row.id for row in await list_cards(session, USER)} == expected_ids
        assert await get_card(session, "bystander") is not None

    async def test_clear_existing_with_empty_file(self, engine, session, make_card) -> None:
        await add_card(session, make_card())
        await session.commit()

        result = await engine.restore_raw(USER, _payload([]), RestoreOptions(clear_existing=True))

        assert result.cleared == 1
        assert result.final_card_count == 0

    async def test_other_users_card_id_is_not_taken_over(
        self, engine, session, make_card
    ) -> None:
        theirs = make_card("shared-id", user_id="user-b", player="Theirs")
        await add_card(session, theirs)
        await session.commit()

        result = await engine.restore_raw(USER, _payload([theirs.to_wire()]))

        assert result.imported == 0
        assert len(result.errors) == 1
        assert (await get_card(session, "shared-id")).user_id == "user-b"

    async def test_foreign_collection_falls_back_to_default(
        self, engine, session, wire_cards
    ) -> None:
        registry = CollectionRegistry(session)
        mine = await registry.create(USER, CollectionCreate(name="Mine"))
        cards = [
            *wire_cards(1, collection_id=mine.id),
            *wire_cards(1, collection_id="collection-from-another-account"),
            *wire_cards(1, collection_id=None),
        ]

        await engine.restore_raw(USER, _payload(cards))

        default = await registry.get_default(USER)
        by_id = {row.id: row.collection_id for row in await list_cards(session, USER)}
        assert by_id[cards[0]["id"]] == mine.id
        assert by_id[cards[1]["id"]] == default.id
        assert by_id[cards[2]["id"]] is None

    async def test_round_trip(self, session_factory, make_card) -> None:
        async with session_factory() as session:
            for category in ("Baseball", "Hockey", "Football"):
                await add_card(
                    session,
                    make_card(category=category, parallel="Gold", purchase_date="2022-02-02"),
                )
            await session.commit()
            snapshot = await SnapshotBuilder(session).build(USER)

        async with session_factory() as session:
            result = await RestoreEngine(session).restore(
                USER, snapshot, RestoreOptions(clear_existing=True)
            )
            restored = [card_to_model(row) for row in await list_cards(session, USER)]

        assert result.imported == 3
        assert restored == list(snapshot.cards)

    async def test_wire_round_trip_through_json(self, session_factory, make_card) -> None:
        async with session_factory() as session:
            await add_card(session, make_card(notes='Says "rookie", mint'))
            await session.commit()
            exported = (await SnapshotBuilder(session).build(USER)).to_json()

        async with session_factory() as session:
            engine = RestoreEngine(session)
            await engine.restore_raw(USER, exported, RestoreOptions(clear_existing=True))
            rebuilt = await SnapshotBuilder(session).build(USER)

        assert json.loads(exported)["cards"] == [card.to_wire() for card in rebuilt.cards]


class TestProgressAndCancel:
    async def test_progress_in_file_order(self, engine, wire_cards) -> None:
        calls: list[tuple[int, int]] = []

        await engine.restore_raw(
            USER,
            _payload(wire_cards(3)),
            RestoreOptions(on_progress=lambda done, total: calls.append((done, total))),
        )

        assert calls == [(1, 3), (2, 3), (3, 3)]

    async def test_progress_skips_duplicates(self, engine, session, wire_cards) -> None:
        cards = wire_cards(3)
        await engine.restore_raw(USER, _payload(cards[:1]))
        calls: list[int] = []

        await engine.restore_raw(
            USER,
            _payload(cards),
            RestoreOptions(on_progress=lambda done, total: calls.append(done)),
        )

        assert calls == [2, 3]

    async def test_cancel_keeps_imported_cards(self, engine, session, wire_cards) -> None:
        cancel = asyncio.Event()

        def on_progress(done: int, total: int) -> None:
            if done == 2:
                cancel.set()

        result = await engine.restore_raw(
            USER,
            _payload(wire_cards(5)),
            RestoreOptions(on_progress=on_progress, cancel_event=cancel),
        )

        assert result.cancelled is True
        assert result.imported == 2
        assert await count_cards(session, USER) == 2

    async def test_holds_user_lock_while_importing(self, engine, wire_cards) -> None:
        seen: list[bool] = []

        await engine.restore_raw(
            USER,
            _payload(wire_cards(1)),
            RestoreOptions(
                on_progress=lambda done, total: seen.append(user_locks.is_locked(USER))
            ),
        )

        assert seen == [True]
        assert user_locks.is_locked(USER) is False


class TestFailures:
    async def test_bad_card_is_recorded_and_skipped(
        self, engine, session, wire_cards, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        cards = wire_cards(3)
        cards[1]["player"] = "Broken Player"
        cards[1]["year"] = 1999
        real_add_card = restore_module.add_card

        async def picky_add_card(session, card):
            if card.player == "Broken Player":
                raise IntegrityError("INSERT", {}, Exception("CHECK constraint failed"))
            return await real_add_card(session, card)

        monkeypatch.setattr(restore_module, "add_card", picky_add_card)

        result = await engine.restore_raw(USER, _payload(cards))

        assert result.imported == 2
        assert result.errors == ["Failed to import card Broken Player (1999): IntegrityError"]
        assert result.phase is RestorePhase.DONE
        assert await count_cards(session, USER) == 2

    async def test_store_failure_reports_partial_progress(
        self, engine, session, wire_cards, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        real_add_card = restore_module.add_card
        calls = {"n": 0}

        async def dying_add_card(session, card):
            calls["n"] += 1
            if calls["n"] == 3:
                raise OperationalError("INSERT", {}, Exception("database is locked"))
            return await real_add_card(session, card)

        monkeypatch.setattr(restore_module, "add_card", dying_add_card)

        with pytest.raises(PartialImportError) as exc_info:
            await engine.restore_raw(USER, _payload(wire_cards(5)))

        assert exc_info.value.result.imported == 2
        assert exc_info.value.status_code == 503
        await session.rollback()
        assert await count_cards(session, USER) == 2
        assert user_locks.is_locked(USER) is False
