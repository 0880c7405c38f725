"""
dataconnect PDF Connector — Query the text of PDF documents page by page.

Query format:
    EXTRACT_TEXT:<pages|all>
    GET_PAGE:<n>
    SEARCH:<term>
    ANALYZE:
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .files import FILE_DATA_TYPES, FileConnector
from .tabular import (
    Grid,
    TableData,
    joined_term,
    maybe_table,
    parse_number,
    search_table,
    text_metrics,
)
from .utils import word_count
from ..core.schema import Capabilities, ColumnType, Connection
from ..core.validation import QueryGrammar, VerbQuery

PDF_GRAMMAR = QueryGrammar(
    label="PDF",
    verbs=("EXTRACT_TEXT", "GET_PAGE", "SEARCH", "ANALYZE"),
    example="EXTRACT_TEXT:all",
    sample_verb="EXTRACT_TEXT",
)

PDF_CAPABILITIES = Capabilities(
    supports_sql=False,
    supported_operations=(
        "READ", "EXTRACT_TEXT", "EXTRACT_TABLES", "EXTRACT_IMAGES", "ANALYZE", "SEARCH",
    ),
    supported_data_types=FILE_DATA_TYPES,
    native_data_types=("TEXT", "NUMBER", "DATE", "BOOLEAN", "IMAGE", "TABLE", "FORM_FIELD"),
    max_query_size=50_000,
    max_result_size=500_000,
    max_connections=4,
)

PAGE_TYPES = {
    "page_number": ColumnType.INTEGER,
    "content": ColumnType.STRING,
    "word_count": ColumnType.INTEGER,
}


@dataclass
class PDFDocument:
    pages: TableData
    info: Dict[str, str] = field(default_factory=dict)
    encrypted: bool = False

    @property
    def text(self) -> str:
        return "\n\n".join(row[1] for row in self.pages.rows if row[1])


class PDFConnector(FileConnector):
    """Connector for PDF files.

    The ``pages`` table has one row per page with its extracted text.
    Scanned pages without a text layer come back empty.
    """

    display_name = "PDF"
    file_type = "PDF"
    extensions = (".pdf",)
    extension_error = "File must be a PDF file (.pdf)"
    capabilities = PDF_CAPABILITIES
    grammar = PDF_GRAMMAR

    @property
    def source_type(self) -> str:
        return "pdf"

    def parse(self, path: str, connection: Connection) -> PDFDocument:
        try:
            from pypdf import PdfReader
        except ImportError:
            raise ImportError(
                "pypdf is required for PDF support. "
                "Install it with: pip install pypdf"
            )

        reader = PdfReader(path)
        encrypted = bool(reader.is_encrypted)
        if encrypted:
            reader.decrypt(connection.option("password") or "")

        rows = []
        for number, page in enumerate(reader.pages, start=1):
            content = (page.extract_text() or "").strip()
            rows.append([number, content, word_count(content)])

        info = {}
        if reader.metadata:
            for key, value in reader.metadata.items():
                info[key[1:] if key.startswith("/") else key] = str(value)

        return PDFDocument(
            pages=TableData(name="pages", columns=list(PAGE_TYPES), rows=rows, types=PAGE_TYPES),
            info=info,
            encrypted=encrypted,
        )

    def tables(self, document: PDFDocument) -> List[TableData]:
        return [document.pages]

    def describe_file(self, document: PDFDocument) -> Dict[str, Any]:
        return {
            "page_count": len(document.pages.rows),
            "encrypted": document.encrypted,
            "document_info": document.info,
            "estimated_rows": len(document.pages.rows),
        }

    def handle(self, query: VerbQuery, document: PDFDocument, params: Optional[Sequence[Any]]) -> Grid:
        pages = document.pages
        if query.verb == "EXTRACT_TEXT":
            if maybe_table(self.tables(document), query.target) is not None:
                return pages.grid()
            return ["content"], [[document.text]]
        if query.verb == "GET_PAGE":
            number = parse_number(query.target, "Page number")
            if number > len(pages.rows):
                raise ValueError(f"Page {number} out of range (document has {len(pages.rows)} pages)")
            return list(pages.columns), [list(pages.rows[number - 1])]
        if query.verb == "SEARCH":
            return search_table(pages, joined_term(query))
        if query.verb == "ANALYZE":
            columns, rows = text_metrics(document.text)
            return columns, [["pages", len(pages.rows)]] + rows
        raise ValueError(f"Unsupported PDF operation: {query.verb}")
