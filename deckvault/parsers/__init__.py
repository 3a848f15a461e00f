from deckvault.parsers.csv_format import (
    CsvDialect,
    ExportRow,
    build_csv,
    is_csv_format,
    parse_csv_import,
)
from deckvault.parsers.deck_text import (
    ParsedCard,
    ParsedImport,
    merge_duplicates,
    parse_deck_text,
    parse_line,
)

__all__ = [
    "CsvDialect",
    "ExportRow",
    "ParsedCard",
    "ParsedImport",
    "build_csv",
    "is_csv_format",
    "merge_duplicates",
    "parse_csv_import",
    "parse_deck_text",
    "parse_line",
]
