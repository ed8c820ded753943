import csv
import io
from datetime import UTC, datetime

from cardkeeper.models.card import Card
from cardkeeper.services.csv_export import CSV_HEADERS, card_to_row, cards_to_csv


def _card(**overrides) -> Card:
    fields = {
        "id": "c1",
        "player": "Mike Trout",
        "team": "Los Angeles Angels",
        "year": 2011,
        "brand": "Topps Update",
        "category": "Baseball",
        "card_number": "US175",
        "condition": "9: MINT",
        "grading_company": "PSA",
        "purchase_price": 1200,
        "purchase_date": "2024-01-15",
        "current_value": 3500.5,
        "notes": "",
        "created_at": datetime(2024, 1, 15, 8, 30, tzinfo=UTC),
        "updated_at": datetime(2024, 2, 1, 9, 0, tzinfo=UTC),
    }
    fields.update(overrides)
    return Card(**fields)


class TestCardsToCsv:
    def test_header_only_for_no_cards(self) -> None:
        assert cards_to_csv([]) == ",".join(CSV_HEADERS)

    def test_row_formatting(self) -> None:
        row = card_to_row(_card())

        assert row == [
            "c1",
            "Mike Trout",
            "Los Angeles Angels",
            "2011",
            "Topps Update",
            "Baseball",
            "US175",
            "",
            "9: MINT",
            "PSA",
            "1200",
            "2024-01-15",
            "3500.5",
            "",
            "",
            "",
            "2024-01-15T08:30:00Z",
            "2024-02-01T09:00:00Z",
        ]

    def test_rows_joined_without_trailing_newline(self) -> None:
        text = cards_to_csv([_card(id="a"), _card(id="b")])

        lines = text.split("\n")
        assert len(lines) == 3
        assert lines[1].startswith("a,")
        assert lines[2].startswith("b,")
        assert not text.endswith("\n")

    def test_special_characters_quoted(self) -> None:
        card = _card(notes='Signed, "on card"\nsecond line', team="Angels")

        text = cards_to_csv([card])

        assert '"Signed, ""on card""\nsecond line"' in text
        parsed = list(csv.reader(io.StringIO(text)))
        assert parsed[1][CSV_HEADERS.index("Notes")] == 'Signed, "on card"\nsecond line'

    def test_sold_card(self) -> None:
        row = card_to_row(_card(sell_price=4000, sell_date="2024-06-01"))

        assert row[CSV_HEADERS.index("Sell Price")] == "4000"
        assert row[CSV_HEADERS.index("Sell Date")] == "2024-06-01"
