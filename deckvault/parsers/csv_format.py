"""
CSV import and export in Moxfield and ManaBox layouts.

Export writes one row per card with name, set code, quantity, foil flag,
Scryfall id, price, condition and language. Import auto-detects the layout
from the header row; columns are located by name, not position.
"""

import csv
from dataclasses import dataclass
from enum import Enum
from io import StringIO

from deckvault.parsers.deck_text import ParsedCard, merge_duplicates


class CsvDialect(str, Enum):
    MOXFIELD = "moxfield"
    MANABOX = "manabox"


MOXFIELD_HEADER = [
    "Count",
    "Name",
    "Edition",
    "Condition",
    "Language",
    "Foil",
    "Collector Number",
    "Alter",
    "Proxy",
    "Purchase Price",
]

MANABOX_HEADER = [
    "Name",
    "Set code",
    "Set name",
    "Collector number",
    "Foil",
    "Rarity",
    "Quantity",
    "ManaBox ID",
    "Scryfall ID",
    "Purchase price",
    "Misprint",
    "Altered",
    "Condition",
    "Language",
    "Purchase currency",
]

# App condition code -> dialect condition string
_MOXFIELD_CONDITIONS = {
    "M": "Near Mint",
    "NM": "Near Mint",
    "LP": "Lightly Played",
    "MP": "Moderately Played",
    "HP": "Heavily Played",
    "PO": "Damaged",
}
_MANABOX_CONDITIONS = {
    "M": "mint",
    "NM": "near_mint",
    "LP": "excellent",
    "MP": "light_played",
    "HP": "played",
    "PO": "poor",
}

# Dialect condition string -> app condition code
_FROM_MOXFIELD = {
    "mint": "M",
    "near mint": "NM",
    "lightly played": "LP",
    "moderately played": "MP",
    "heavily played": "HP",
    "damaged": "PO",
}
_FROM_MANABOX = {
    "mint": "M",
    "near_mint": "NM",
    "excellent": "LP",
    "good": "LP",
    "light_played": "MP",
    "played": "HP",
    "poor": "PO",
}


@dataclass(frozen=True, slots=True)
class ExportRow:
    name: str
    set_code: str
    quantity: int
    foil: bool = False
    scryfall_id: str = ""
    price: float = 0.0
    condition: str = "NM"
    language: str = "en"


def _format_price(price: float) -> str:
    return f"{price:.2f}" if price else ""


def build_csv(rows: list[ExportRow], dialect: CsvDialect = CsvDialect.MOXFIELD) -> str:
    """Render export rows as CSV text in the requested dialect."""
    buffer = StringIO()
    writer = csv.writer(buffer, lineterminator="\n")

    if dialect == CsvDialect.MOXFIELD:
        writer.writerow(MOXFIELD_HEADER)
        for row in rows:
            writer.writerow(
                [
                    row.quantity,
                    row.name,
                    row.set_code,
                    _MOXFIELD_CONDITIONS.get(row.condition, "Near Mint"),
                    (row.language or "en").upper(),
                    "foil" if row.foil else "",
                    "",
                    "",
                    "",
                    _format_price(row.price),
                ]
            )
    else:
        writer.writerow(MANABOX_HEADER)
        for row in rows:
            writer.writerow(
                [
                    row.name,
                    row.set_code,
                    "",
                    "",
                    "foil" if row.foil else "",
                    "",
                    row.quantity,
                    "",
                    row.scryfall_id,
                    _format_price(row.price),
                    "",
                    "",
                    _MANABOX_CONDITIONS.get(row.condition, "near_mint"),
                    (row.language or "en").lower(),
                    "",
                ]
            )

    return buffer.getvalue().rstrip("\n")


def is_csv_format(text: str) -> bool:
    """Detect a Moxfield or ManaBox CSV export from its header row."""
    first_line = text.strip().split("\n", 1)[0] if text.strip() else ""
    return (
        "Name,Set code" in first_line
        or "Scryfall ID" in first_line
        or "Count,Name,Edition" in first_line
        or "Collector Number" in first_line
    )


def parse_csv_import(text: str) -> tuple[list[ParsedCard], int]:
    """
    Parse a Moxfield or ManaBox CSV export.

    Returns:
        Tuple of (cards, skipped_rows). Rows without a name or with a
        non-positive quantity are skipped.
    """
    reader = csv.DictReader(StringIO(text.strip()))
    if not reader.fieldnames:
        return [], 0

    columns = {name.strip(): name for name in reader.fieldnames}
    name_col = columns.get("Name")
    qty_col = columns.get("Quantity") or columns.get("Count")
    if not name_col or not qty_col:
        return [], 0

    set_col = columns.get("Set code") or columns.get("Edition")
    price_col = columns.get("Purchase price") or columns.get("Purchase Price")
    is_manabox = "Set code" in columns or "Scryfall ID" in columns
    conditions = _FROM_MANABOX if is_manabox else _FROM_MOXFIELD

    def field(row: dict[str, str | None], column: str | None) -> str:
        if column is None:
            return ""
        return (row.get(column) or "").strip()

    cards: list[ParsedCard] = []
    skipped = 0
    for row in reader:
        name = field(row, name_col)
        try:
            quantity = int(field(row, qty_col) or "0")
        except ValueError:
            quantity = 0
        if not name or quantity <= 0:
            skipped += 1
            continue

        try:
            price = float(field(row, price_col) or "0")
        except ValueError:
            price = 0.0

        cards.append(
            ParsedCard(
                name=name,
                quantity=quantity,
                set_code=field(row, set_col).upper(),
                collector_number=field(row, columns.get("Collector number"))
                or field(row, columns.get("Collector Number")),
                foil=field(row, columns.get("Foil")).lower() == "foil",
                scryfall_id=field(row, columns.get("Scryfall ID")),
                price=price,
                condition=conditions.get(field(row, columns.get("Condition")).lower(), "NM"),
                language=field(row, columns.get("Language")).lower() or "en",
            )
        )

    return merge_duplicates(cards), skipped
