"""
dataconnect Google Docs Connector — Query the structure and text of a Google Doc.

The document body becomes a ``sections`` table (one row per heading,
paragraph or table); each embedded table is also exposed as ``table_N``.

Query format:
    READ_DOC:<sections|table_N>
    GET_CONTENT:<section title|section number|all>
    SEARCH:<term>
    ANALYZE:
    EXTRACT:<table_N|heading>
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .google_oauth import GoogleOAuthConnector
from .tabular import (
    TABULAR_DATA_TYPES,
    Grid,
    TableData,
    TabularConnector,
    cells_table,
    joined_term,
    maybe_table,
    search_table,
    text_metrics,
)
from .utils import word_count
from ..core.schema import Capabilities, ColumnType, Connection
from ..core.validation import QueryGrammar, VerbQuery

logger = logging.getLogger(__name__)

DOCS_GRAMMAR = QueryGrammar(
    label="Google Docs",
    verbs=("READ_DOC", "GET_CONTENT", "SEARCH", "ANALYZE", "EXTRACT"),
    example="READ_DOC:Document_1",
    sample_verb="READ_DOC",
)

DOCS_CAPABILITIES = Capabilities(
    supports_sql=False,
    supported_operations=("READ", "WRITE", "UPDATE", "ANALYZE", "SEARCH", "EXTRACT", "COMMENT"),
    supported_data_types=TABULAR_DATA_TYPES,
    native_data_types=(
        "TEXT", "HEADING", "PARAGRAPH", "LIST", "TABLE", "IMAGE", "HYPERLINK", "COMMENT",
    ),
    max_query_size=50_000,
    max_result_size=1_000_000,
    max_connections=4,
)

SECTION_TYPES = {
    "section_number": ColumnType.INTEGER,
    "type": ColumnType.STRING,
    "title": ColumnType.STRING,
    "content": ColumnType.STRING,
    "word_count": ColumnType.INTEGER,
}

HEADING_STYLES = {f"HEADING_{n}" for n in range(1, 7)} | {"TITLE", "SUBTITLE"}


@dataclass
class GoogleDocument:
    document_id: str
    title: str
    sections: TableData
    tables: List[TableData] = field(default_factory=list)
    revision_id: Optional[str] = None

    @property
    def text(self) -> str:
        return "\n\n".join(row[3] for row in self.sections.rows)


def paragraph_text(paragraph: Dict[str, Any]) -> str:
    parts = []
    for element in paragraph.get("elements") or []:
        run = element.get("textRun")
        if run:
            parts.append(run.get("content") or "")
    return "".join(parts).strip()


def table_cells(table: Dict[str, Any]) -> List[List[str]]:
    cells = []
    for row in table.get("tableRows") or []:
        values = []
        for cell in row.get("tableCells") or []:
            text = " ".join(
                paragraph_text(item["paragraph"])
                for item in cell.get("content") or []
                if "paragraph" in item
            )
            values.append(text.strip())
        cells.append(values)
    return cells


def parse_document(payload: Dict[str, Any]) -> GoogleDocument:
    """Turn a ``documents.get`` response into sections and tables."""
    rows = []
    tables = []
    for element in (payload.get("body") or {}).get("content") or []:
        if "paragraph" in element:
            paragraph = element["paragraph"]
            text = paragraph_text(paragraph)
            if not text:
                continue
            style = (paragraph.get("paragraphStyle") or {}).get("namedStyleType")
            heading = style in HEADING_STYLES
            number = len(rows) + 1
            title = text[:100] if heading else f"Section {number}"
            rows.append([number, "heading" if heading else "paragraph", title, text, word_count(text)])
        elif "table" in element:
            cells = table_cells(element["table"])
            content = "\n".join(" | ".join(row) for row in cells)
            if not content.strip():
                continue
            tables.append(cells_table(f"table_{len(tables) + 1}", cells))
            number = len(rows) + 1
            rows.append([number, "table", f"Table {len(tables)}", content, word_count(content)])

    return GoogleDocument(
        document_id=payload.get("documentId", ""),
        title=payload.get("title") or "Untitled Document",
        sections=TableData(name="sections", columns=list(SECTION_TYPES), rows=rows, types=SECTION_TYPES),
        tables=tables,
        revision_id=payload.get("revisionId"),
    )


class GoogleDocsConnector(TabularConnector, GoogleOAuthConnector):
    """Connector for a single Google Docs document.

    Config: ``oauth_token`` (plus optional ``refresh_token``) and the
    document as ``document_id`` or a ``document_url``.
    """

    display_name = "Google Docs"
    capabilities = DOCS_CAPABILITIES
    grammar = DOCS_GRAMMAR
    api_url = "https://docs.googleapis.com/v1/documents"
    resource_key = "document_id"
    resource_aliases = ("doc_id", "document_url", "url")
    missing_resource_error = "Document ID is required for Google Docs queries"

    @property
    def source_type(self) -> str:
        return "google-docs"

    async def probe_resource(self, connection: Connection) -> Dict[str, Any]:
        response = await self.google_request(
            connection,
            "GET",
            f"{connection.connection_string}/{self.resource_id(connection)}",
            params={"fields": "documentId,title,revisionId"},
        )
        payload = response.json()
        return {
            "document_id": payload.get("documentId"),
            "title": payload.get("title"),
            "revision_id": payload.get("revisionId"),
        }

    async def document(self, connection: Connection) -> GoogleDocument:
        self.ensure_open(connection)
        if "document" not in connection.state:
            url = f"{connection.connection_string}/{self.resource_id(connection)}"
            response = await self.google_request(connection, "GET", url)
            connection.state["document"] = parse_document(response.json())
            logger.info(
                "Loaded Google Doc %s (%d sections)",
                connection.state["document"].document_id,
                len(connection.state["document"].sections.rows),
            )
        return connection.state["document"]

    def tables(self, document: GoogleDocument) -> List[TableData]:
        return [document.sections] + document.tables

    async def get_database_info(self, connection: Connection) -> Dict[str, Any]:
        document = await self.document(connection)
        return {
            "name": document.title,
            "version": document.revision_id or "unknown",
            "type": self.source_type,
            "document_id": document.document_id,
        }

    def result_metadata(self, connection: Connection) -> Dict[str, Any]:
        return {"document_id": connection.option(self.resource_key)}

    def handle(self, query: VerbQuery, document: GoogleDocument, params: Optional[Sequence[Any]]) -> Grid:
        sections = document.sections
        if query.verb == "READ_DOC":
            table = maybe_table(document.tables, query.target)
            return (table or sections).grid()
        if query.verb == "GET_CONTENT":
            return self._content(document, joined_term(query))
        if query.verb == "SEARCH":
            return search_table(sections, joined_term(query))
        if query.verb == "ANALYZE":
            columns, rows = text_metrics(document.text)
            headings = sum(1 for r in sections.rows if r[1] == "heading")
            return columns, [["title", document.title], ["sections", len(sections.rows)],
                             ["headings", headings], ["tables", len(document.tables)]] + rows
        if query.verb == "EXTRACT":
            table = maybe_table(document.tables, query.target)
            if table is not None:
                return table.grid()
            return self._under_heading(document, joined_term(query))
        raise ValueError(f"Unsupported Google Docs operation: {query.verb}")

    def _content(self, document: GoogleDocument, target: str) -> Grid:
        if not target or target.lower() in ("all", "*"):
            return ["title", "content"], [[document.title, document.text]]
        rows = document.sections.rows
        if target.isdigit():
            number = int(target)
            if not 1 <= number <= len(rows):
                raise ValueError(f"Section {number} out of range (document has {len(rows)} sections)")
            return list(document.sections.columns), [list(rows[number - 1])]
        matches = [list(r) for r in rows if r[2].lower() == target.lower()]
        if not matches:
            raise ValueError(f"Section '{target}' not found")
        return list(document.sections.columns), matches

    def _under_heading(self, document: GoogleDocument, heading: str) -> Grid:
        """Sections between ``heading`` and the next heading."""
        rows = document.sections.rows
        for i, row in enumerate(rows):
            if row[1] == "heading" and row[3].lower() == heading.lower():
                body = []
                for following in rows[i + 1:]:
                    if following[1] == "heading":
                        break
                    body.append(following[3])
                return ["heading", "content"], [[row[3], "\n\n".join(body)]]
        raise ValueError(f"Heading '{heading}' not found")
