"""CSV rows for the article list export and the search results export."""

from __future__ import annotations

import html
from typing import Iterable, Iterator, Sequence, Tuple, Union

from app.services.kb.models import ArticleRecord, SearchMatch

ARTICLE_HEADERS = ("Article Name", "Article URL", "Category")
CONTEXT_HEADER = "Match Context"
CATEGORY_SEPARATOR = " > "
CONTEXT_SEPARATOR = "\n"

CsvRow = Tuple[str, ...]


def quote_field(value: object) -> str:
    """Wrap a value in double quotes, doubling any embedded quote."""
    text = "" if value is None else str(value)
    return '"' + text.replace('"', '""') + '"'


def match_context_text(match: SearchMatch) -> str:
    """Highlighted contexts of one article, entity-escaped so markers read as text."""
    return CONTEXT_SEPARATOR.join(
        html.escape(item.highlighted_context, quote=True) for item in match.matches
    )


def to_csv_row(
    record: Union[ArticleRecord, SearchMatch], include_context: bool = False
) -> CsvRow:
    if isinstance(record, ArticleRecord):
        fields = [record.name, record.url, CATEGORY_SEPARATOR.join(record.category_path)]
    else:
        fields = [
            record.article_title,
            record.article_url,
            CATEGORY_SEPARATOR.join(record.category_hierarchy),
        ]
        if include_context:
            fields.append(match_context_text(record))
    return tuple(quote_field(field) for field in fields)


def header_row(columns: int = len(ARTICLE_HEADERS)) -> CsvRow:
    if columns == len(ARTICLE_HEADERS):
        names: Sequence[str] = ARTICLE_HEADERS
    elif columns == len(ARTICLE_HEADERS) + 1:
        names = ARTICLE_HEADERS + (CONTEXT_HEADER,)
    else:
        raise ValueError(f"unsupported CSV width: {columns}")
    return tuple(quote_field(name) for name in names)


def iter_csv_lines(rows: Iterable[CsvRow], columns: int = len(ARTICLE_HEADERS)) -> Iterator[str]:
    """Yield the header and every row as newline-terminated CSV lines."""
    yield ",".join(header_row(columns)) + "\n"
    for row in rows:
        yield ",".join(row) + "\n"


def to_csv_document(rows: Sequence[CsvRow], columns: int | None = None) -> str:
    """Join escaped rows into one document under a header of matching width."""
    if columns is None:
        columns = len(rows[0]) if rows else len(ARTICLE_HEADERS)
    lines = [header_row(columns), *rows]
    return "\n".join(",".join(row) for row in lines)
