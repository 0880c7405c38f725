"""
dataconnect PowerPoint Connector — Query slide text and speaker notes.

Query format:
    EXTRACT_SLIDE:<n>
    EXTRACT_TEXT:<slides|all>
    GET_SLIDE:<n>            one row per shape on the slide
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
from ..core.schema import Capabilities, ColumnType, Connection
from ..core.validation import QueryGrammar, VerbQuery

POWERPOINT_GRAMMAR = QueryGrammar(
    label="PowerPoint",
    verbs=("EXTRACT_SLIDE", "EXTRACT_TEXT", "GET_SLIDE", "SEARCH", "ANALYZE"),
    example="EXTRACT_SLIDE:1",
    sample_verb="EXTRACT_TEXT",
)

POWERPOINT_CAPABILITIES = Capabilities(
    supports_sql=False,
    supported_operations=(
        "READ", "EXTRACT_TEXT", "EXTRACT_SLIDES", "EXTRACT_TABLES", "EXTRACT_IMAGES", "ANALYZE",
    ),
    supported_data_types=FILE_DATA_TYPES,
    native_data_types=(
        "TEXT", "HEADING", "BULLET_POINT", "TABLE", "IMAGE", "CHART", "SHAPE", "SLIDE",
    ),
    max_query_size=50_000,
    max_result_size=500_000,
    max_connections=4,
)

SLIDE_TYPES = {
    "slide_number": ColumnType.INTEGER,
    "title": ColumnType.STRING,
    "content": ColumnType.STRING,
    "notes": ColumnType.STRING,
}


@dataclass
class Presentation:
    slides: TableData
    shapes: Dict[int, List[List[Any]]] = field(default_factory=dict)

    @property
    def text(self) -> str:
        parts = []
        for _, title, content, _ in self.slides.rows:
            parts.append("\n".join(p for p in (title, content) if p))
        return "\n\n".join(p for p in parts if p)


def _shape_kind(shape) -> str:
    try:
        kind = shape.shape_type
    except NotImplementedError:
        return "UNKNOWN"
    return kind.name if kind is not None and hasattr(kind, "name") else str(kind)


class PowerPointConnector(FileConnector):
    """Connector for PowerPoint (.pptx) presentations.

    The ``slides`` table has one row per slide: its title, the text of its
    other shapes, and the speaker notes.
    """

    display_name = "PowerPoint"
    file_type = "PowerPoint"
    extensions = (".pptx", ".ppt")
    extension_error = "File must be a PowerPoint presentation (.pptx or .ppt)"
    capabilities = POWERPOINT_CAPABILITIES
    grammar = POWERPOINT_GRAMMAR

    @property
    def source_type(self) -> str:
        return "powerpoint"

    def parse(self, path: str, connection: Connection) -> Presentation:
        try:
            from pptx import Presentation as load_presentation
        except ImportError:
            raise ImportError(
                "python-pptx is required for PowerPoint support. "
                "Install it with: pip install python-pptx"
            )

        deck = load_presentation(path)
        rows = []
        shapes: Dict[int, List[List[Any]]] = {}
        for number, slide in enumerate(deck.slides, start=1):
            title_shape = slide.shapes.title
            title = title_shape.text_frame.text.strip() if title_shape is not None else None
            texts = []
            shape_rows = []
            for shape in slide.shapes:
                text = shape.text_frame.text.strip() if shape.has_text_frame else ""
                shape_rows.append([shape.shape_id, shape.name, _shape_kind(shape), text or None])
                if text and (title_shape is None or shape.shape_id != title_shape.shape_id):
                    texts.append(text)
            notes = None
            if slide.has_notes_slide:
                notes = slide.notes_slide.notes_text_frame.text.strip() or None
            rows.append([number, title or None, "\n".join(texts), notes])
            shapes[number] = shape_rows

        return Presentation(
            slides=TableData(name="slides", columns=list(SLIDE_TYPES), rows=rows, types=SLIDE_TYPES),
            shapes=shapes,
        )

    def tables(self, document: Presentation) -> List[TableData]:
        return [document.slides]

    def describe_file(self, document: Presentation) -> Dict[str, Any]:
        return {
            "slide_count": len(document.slides.rows),
            "estimated_rows": len(document.slides.rows),
        }

    def _slide_number(self, document: Presentation, spec: str) -> int:
        number = parse_number(spec, "Slide number")
        if number > len(document.slides.rows):
            raise ValueError(
                f"Slide {number} out of range (presentation has {len(document.slides.rows)} slides)"
            )
        return number

    def handle(self, query: VerbQuery, document: Presentation, params: Optional[Sequence[Any]]) -> Grid:
        slides = document.slides
        if query.verb == "EXTRACT_SLIDE":
            number = self._slide_number(document, query.target)
            return list(slides.columns), [list(slides.rows[number - 1])]
        if query.verb == "GET_SLIDE":
            number = self._slide_number(document, query.target)
            return ["shape_id", "name", "shape_type", "text"], [list(r) for r in document.shapes[number]]
        if query.verb == "EXTRACT_TEXT":
            if maybe_table(self.tables(document), query.target) is not None:
                return slides.grid()
            return ["content"], [[document.text]]
        if query.verb == "SEARCH":
            return search_table(slides, joined_term(query))
        if query.verb == "ANALYZE":
            columns, rows = text_metrics(document.text)
            with_notes = sum(1 for r in slides.rows if r[3])
            return columns, [["slides", len(slides.rows)], ["slides_with_notes", with_notes]] + rows
        raise ValueError(f"Unsupported PowerPoint operation: {query.verb}")
