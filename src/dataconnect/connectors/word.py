"""
dataconnect Word Connector — Query paragraphs and tables of Word documents.

Query format:
    EXTRACT_TEXT:<paragraphs|table_N|all>
    EXTRACT_TABLES:<n>        the n-th table (omit for the first)
    SEARCH:<term>
    ANALYZE:
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .files import FILE_DATA_TYPES, FileConnector
from .tabular import (
    Grid,
    TableData,
    cells_table,
    joined_term,
    maybe_table,
    parse_number,
    search_table,
    text_metrics,
)
from ..core.schema import Capabilities, ColumnType, Connection
from ..core.validation import QueryGrammar, VerbQuery

WORD_GRAMMAR = QueryGrammar(
    label="Word",
    verbs=("EXTRACT_TEXT", "EXTRACT_TABLES", "SEARCH", "ANALYZE"),
    example="EXTRACT_TEXT:all",
    sample_verb="EXTRACT_TEXT",
)

WORD_CAPABILITIES = Capabilities(
    supports_sql=False,
    supported_operations=(
        "READ", "EXTRACT_TEXT", "EXTRACT_TABLES", "EXTRACT_IMAGES", "ANALYZE", "SEARCH",
    ),
    supported_data_types=FILE_DATA_TYPES,
    native_data_types=(
        "TEXT", "HEADING", "PARAGRAPH", "TABLE", "IMAGE", "HYPERLINK", "LIST", "FORM_FIELD",
    ),
    max_query_size=50_000,
    max_result_size=500_000,
    max_connections=4,
)

PARAGRAPH_TYPES = {
    "paragraph_number": ColumnType.INTEGER,
    "style": ColumnType.STRING,
    "content": ColumnType.STRING,
}


@dataclass
class WordDocument:
    paragraphs: TableData
    tables: List[TableData] = field(default_factory=list)
    properties: Dict[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return "\n\n".join(row[2] for row in self.paragraphs.rows)


class WordConnector(FileConnector):
    """Connector for Word (.docx) documents.

    Non-empty paragraphs form the ``paragraphs`` table; each embedded
    table becomes ``table_1``, ``table_2``, ... with its first row as headers.
    """

    display_name = "Word"
    file_type = "Word"
    extensions = (".docx", ".doc")
    extension_error = "File must be a Word document (.docx or .doc)"
    capabilities = WORD_CAPABILITIES
    grammar = WORD_GRAMMAR

    @property
    def source_type(self) -> str:
        return "word"

    def parse(self, path: str, connection: Connection) -> WordDocument:
        try:
            import docx
        except ImportError:
            raise ImportError(
                "python-docx is required for Word support. "
                "Install it with: pip install python-docx"
            )

        doc = docx.Document(path)
        rows = []
        for paragraph in doc.paragraphs:
            text = paragraph.text.strip()
            if not text:
                continue
            style = paragraph.style.name if paragraph.style is not None else None
            rows.append([len(rows) + 1, style, text])

        tables = []
        for i, table in enumerate(doc.tables, start=1):
            cells = [[cell.text.strip() for cell in row.cells] for row in table.rows]
            tables.append(cells_table(f"table_{i}", cells))

        core = doc.core_properties
        properties = {
            "title": core.title or None,
            "author": core.author or None,
            "created": core.created.isoformat() if core.created else None,
            "modified": core.modified.isoformat() if core.modified else None,
        }
        return WordDocument(
            paragraphs=TableData(
                name="paragraphs", columns=list(PARAGRAPH_TYPES), rows=rows, types=PARAGRAPH_TYPES
            ),
            tables=tables,
            properties=properties,
        )

    def tables(self, document: WordDocument) -> List[TableData]:
        return [document.paragraphs] + document.tables

    def describe_file(self, document: WordDocument) -> Dict[str, Any]:
        return {
            "paragraph_count": len(document.paragraphs.rows),
            "table_count": len(document.tables),
            "properties": document.properties,
            "estimated_rows": len(document.paragraphs.rows),
        }

    def handle(self, query: VerbQuery, document: WordDocument, params: Optional[Sequence[Any]]) -> Grid:
        if query.verb == "EXTRACT_TEXT":
            table = maybe_table(self.tables(document), query.target)
            if table is not None:
                return table.grid()
            return ["content"], [[document.text]]
        if query.verb == "EXTRACT_TABLES":
            if not document.tables:
                raise ValueError("Document has no tables")
            number = parse_number(query.target, "Table number") if query.target else 1
            if number > len(document.tables):
                raise ValueError(f"Table {number} out of range (document has {len(document.tables)} tables)")
            table = document.tables[number - 1]
            return table.grid()
        if query.verb == "SEARCH":
            return search_table(document.paragraphs, joined_term(query))
        if query.verb == "ANALYZE":
            columns, rows = text_metrics(document.text)
            headings = sum(1 for r in document.paragraphs.rows if (r[1] or "").startswith("Heading"))
            return columns, rows + [["headings", headings], ["tables", len(document.tables)]]
        raise ValueError(f"Unsupported Word operation: {query.verb}")
