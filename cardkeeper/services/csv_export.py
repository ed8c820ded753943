"""
CSV export of a user's cards.

Produces a spreadsheet-friendly view of the same cards a backup holds.
It is one-way: CSV files are never restored.
"""

import csv
import io
from collections.abc import Iterable
from datetime import date, datetime

from cardkeeper.models.card import Card, as_utc

CSV_HEADERS = (
    "ID",
    "Player",
    "Team",
    "Year",
    "Brand",
    "Category",
    "Card Number",
    "Parallel",
    "Condition",
    "Grading Company",
    "Purchase Price",
    "Purchase Date",
    "Current Value",
    "Sell Price",
    "Sell Date",
    "Notes",
    "Created At",
    "Updated At",
)


def _format_number(value: float | None) -> str:
    if value is None:
        return ""
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def _format_date(value: date | None) -> str:
    return value.isoformat() if value is not None else ""


def _format_timestamp(value: datetime) -> str:
    return as_utc(value).isoformat().replace("+00:00", "Z")


def card_to_row(card: Card) -> list[str]:
    """One CSV row, in ``CSV_HEADERS`` order."""
    return [
        card.id,
        card.player,
        card.team,
        str(card.year),
        card.brand,
        card.category,
        card.card_number,
        card.parallel or "",
        card.condition,
        card.grading_company or "",
        _format_number(card.purchase_price),
        _format_date(card.purchase_date),
        _format_number(card.current_value),
        _format_number(card.sell_price),
        _format_date(card.sell_date),
        card.notes,
        _format_timestamp(card.created_at),
        _format_timestamp(card.updated_at),
    ]


def cards_to_csv(cards: Iterable[Card]) -> str:
    """
    Render cards as CSV text with a header row.

    Cells holding a comma, quote or newline are quoted with inner quotes
    doubled. Rows are separated by ``\\n`` with no trailing newline.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for card in cards:
        writer.writerow(card_to_row(card))
    return buffer.getvalue().rstrip("\n")
