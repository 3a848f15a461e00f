"""
Parser for plain-text deck lists.

Format, one card per line:
    <quantity>[x] <card name>[ (<SETCODE>)[ <collector number>]][ *F*]

Example:
    2 Lightning Bolt (LEA)
    4x Counterspell
    1 Fire // Ice (MH2) 290 *F*

    Sideboard
    1 Negate

A line containing the word "sideboard" switches every following line into
the sideboard. Blank lines and `//` comments are ignored; anything else that
does not match is skipped and counted, never fatal.
"""

import re
from dataclasses import dataclass, field, replace

from deckvault.models.allocation import Section

# Groups: quantity, name, set_code, collector, foil
IMPORT_LINE_PATTERN = re.compile(
    r"^(?P<quantity>\d+)x?\s+(?P<name>.+?)"
    r"(?:\s+\((?P<set_code>[A-Za-z0-9]+)\)(?:\s+(?P<collector>[^\s*]+))?)?"
    r"(?P<foil>\s+\*F\*)?\s*$",
    re.IGNORECASE,
)

SIDEBOARD_MARKER = re.compile(r"\bsideboard\b", re.IGNORECASE)

# Headers that carry no card and are not worth reporting as skipped
SECTION_HEADERS = frozenset({"deck", "mainboard", "main", "commander", "companion"})


@dataclass(frozen=True, slots=True)
class ParsedCard:
    """One card line from an import."""

    name: str
    quantity: int
    section: Section = Section.MAINBOARD
    set_code: str = ""
    collector_number: str = ""
    foil: bool = False
    scryfall_id: str = ""
    price: float = 0.0
    condition: str = "NM"
    language: str = "en"

    @property
    def merge_key(self) -> tuple[str, str, bool, Section]:
        return (self.name.lower(), self.set_code, self.foil, self.section)


@dataclass
class ParsedImport:
    """Cards found in an import, split by section, plus skipped line count."""

    mainboard: list[ParsedCard] = field(default_factory=list)
    sideboard: list[ParsedCard] = field(default_factory=list)
    skipped: int = 0

    @property
    def cards(self) -> list[ParsedCard]:
        return self.mainboard + self.sideboard


def parse_line(line: str, section: Section = Section.MAINBOARD) -> ParsedCard | None:
    """
    Parse a single card line.

    Returns None if the line is not a card line or its quantity is zero.
    """
    match = IMPORT_LINE_PATTERN.match(line.strip())
    if not match:
        return None

    quantity = int(match.group("quantity"))
    name = match.group("name").strip()
    if quantity <= 0 or not name:
        return None

    return ParsedCard(
        name=name,
        quantity=quantity,
        section=section,
        set_code=(match.group("set_code") or "").upper(),
        collector_number=match.group("collector") or "",
        foil=match.group("foil") is not None,
    )


def merge_duplicates(cards: list[ParsedCard]) -> list[ParsedCard]:
    """Sum quantities of lines naming the same printing in the same section."""
    merged: dict[tuple[str, str, bool, Section], ParsedCard] = {}
    for card in cards:
        existing = merged.get(card.merge_key)
        if existing is None:
            merged[card.merge_key] = card
        else:
            merged[card.merge_key] = replace(existing, quantity=existing.quantity + card.quantity)
    return list(merged.values())


def parse_deck_text(text: str, include_sideboard: bool = True) -> ParsedImport:
    """
    Parse deck list text into mainboard and sideboard cards.

    Args:
        text: Raw deck list (clipboard paste)
        include_sideboard: When False, sideboard lines are dropped

    Returns:
        ParsedImport. Empty if the input is empty/whitespace.
    """
    parsed = ParsedImport()
    if not text or not text.strip():
        return parsed

    section = Section.MAINBOARD
    mainboard: list[ParsedCard] = []
    sideboard: list[ParsedCard] = []

    for raw_line in text.splitlines():
        line = raw_line.strip()

        if not line or line.startswith("//"):
            continue

        card = parse_line(line, section)
        if card is None:
            if SIDEBOARD_MARKER.search(line):
                section = Section.SIDEBOARD
            elif line.lower().rstrip(":") not in SECTION_HEADERS:
                parsed.skipped += 1
            continue

        if section == Section.SIDEBOARD:
            sideboard.append(card)
        else:
            mainboard.append(card)

    parsed.mainboard = merge_duplicates(mainboard)
    parsed.sideboard = merge_duplicates(sideboard) if include_sideboard else []
    return parsed
