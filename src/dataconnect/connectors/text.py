"""
dataconnect Text Connector — Query plain text, logs, Markdown, JSON and XML files.

Query format:
    EXTRACT_TEXT:<section|lines|paragraphs|all>
    GET_LINES:<n> | <a>-<b>
    SEARCH:<term>
    ANALYZE:
    PARSE:<json|kv>
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .files import FILE_DATA_TYPES, FileConnector
from .tabular import (
    Grid,
    TableData,
    joined_term,
    maybe_table,
    parse_span,
    search_table,
    text_metrics,
)
from .utils import word_count
from ..core.schema import Capabilities, ColumnType, Connection, QueryResult
from ..core.validation import QueryGrammar, VerbQuery

TEXT_GRAMMAR = QueryGrammar(
    label="text",
    verbs=("EXTRACT_TEXT", "GET_LINES", "SEARCH", "ANALYZE", "PARSE"),
    example="EXTRACT_TEXT:section_name",
    sample_verb="EXTRACT_TEXT",
)

TEXT_CAPABILITIES = Capabilities(
    supports_sql=False,
    supported_operations=("READ", "EXTRACT_TEXT", "ANALYZE", "SEARCH", "PARSE", "FILTER"),
    supported_data_types=FILE_DATA_TYPES,
    native_data_types=("TEXT", "LINE", "PARAGRAPH", "WORD", "CHARACTER"),
    max_query_size=100_000,
    max_result_size=1_000_000,
    max_connections=4,
)

_HEADING = re.compile(r"^\s*(#{1,6})\s+(.*?)\s*#*\s*$")
_KEY_VALUE = re.compile(r"^\s*([^=:#\s][^=:]*?)\s*[=:]\s*(.*?)\s*$")


@dataclass
class TextDocument:
    text: str
    lines: TableData
    paragraphs: TableData
    sections: Dict[str, List[str]] = field(default_factory=dict)


def split_sections(lines: List[str]) -> Dict[str, List[str]]:
    """Group lines under Markdown-style headings."""
    sections: Dict[str, List[str]] = {}
    current = None
    for line in lines:
        match = _HEADING.match(line)
        if match:
            current = match.group(2)
            sections.setdefault(current, [])
        elif current is not None:
            sections[current].append(line)
    return sections


def parse_structured(text: str, mode: str) -> Grid:
    """Parse JSON or ``key: value`` text into rows."""
    mode = (mode or "json").lower()
    if mode == "json":
        data = json.loads(text)
        if isinstance(data, list) and all(isinstance(item, dict) for item in data):
            result = QueryResult.from_records(data, query="")
            return result.columns, result.rows
        if isinstance(data, dict):
            return ["key", "value"], [
                [k, json.dumps(v) if isinstance(v, (dict, list)) else v] for k, v in data.items()
            ]
        if isinstance(data, list):
            return ["value"], [[item] for item in data]
        return ["value"], [[data]]
    if mode in ("kv", "key_value", "properties"):
        rows = []
        for line in text.splitlines():
            match = _KEY_VALUE.match(line)
            if match:
                rows.append([match.group(1), match.group(2)])
        return ["key", "value"], rows
    raise ValueError(f"Unknown parse format: {mode} (use json or kv)")


class TextConnector(FileConnector):
    """Connector for text-like files (.txt, .log, .md, .json, .xml).

    Exposes two tables: ``lines`` (one row per line) and ``paragraphs``
    (blocks separated by blank lines).
    """

    display_name = "Text"
    file_type = "Text"
    extensions = (".txt", ".log", ".md", ".json", ".xml")
    extension_error = "File must be a text file (.txt, .log, .md, .json, .xml)"
    capabilities = TEXT_CAPABILITIES
    grammar = TEXT_GRAMMAR

    @property
    def source_type(self) -> str:
        return "text"

    def parse(self, path: str, connection: Connection) -> TextDocument:
        with open(path, "r", encoding=connection.option("encoding", "utf-8"), errors="replace") as f:
            text = f.read()

        lines = text.splitlines()
        paragraphs = [p.strip() for p in re.split(r"\n\s*\n", text) if p.strip()]
        return TextDocument(
            text=text,
            lines=TableData(
                name="lines",
                columns=["line_number", "content"],
                rows=[[i + 1, line] for i, line in enumerate(lines)],
                types={"line_number": ColumnType.INTEGER, "content": ColumnType.STRING},
            ),
            paragraphs=TableData(
                name="paragraphs",
                columns=["paragraph_number", "content", "word_count"],
                rows=[[i + 1, p, word_count(p)] for i, p in enumerate(paragraphs)],
                types={
                    "paragraph_number": ColumnType.INTEGER,
                    "content": ColumnType.STRING,
                    "word_count": ColumnType.INTEGER,
                },
            ),
            sections=split_sections(lines),
        )

    def tables(self, document: TextDocument) -> List[TableData]:
        return [document.lines, document.paragraphs]

    def describe_file(self, document: TextDocument) -> Dict[str, Any]:
        return {
            "estimated_rows": len(document.lines.rows),
            "word_count": word_count(document.text),
            "sections": list(document.sections),
        }

    def handle(self, query: VerbQuery, document: TextDocument, params: Optional[Sequence[Any]]) -> Grid:
        if query.verb == "EXTRACT_TEXT":
            return self._extract(document, query.target)
        if query.verb == "GET_LINES":
            start, end = parse_span(query.target, len(document.lines.rows))
            return list(document.lines.columns), [list(r) for r in document.lines.rows[start:end]]
        if query.verb == "SEARCH":
            return search_table(document.lines, joined_term(query))
        if query.verb == "ANALYZE":
            return text_metrics(document.text)
        if query.verb == "PARSE":
            return parse_structured(document.text, query.target)
        raise ValueError(f"Unsupported text operation: {query.verb}")

    def _extract(self, document: TextDocument, target: str) -> Grid:
        table = maybe_table(self.tables(document), target)
        if table is not None:
            return table.grid()
        if not target or target.lower() in ("all", "*"):
            return ["content"], [[document.text]]
        for heading, lines in document.sections.items():
            if heading.lower() == target.lower():
                return ["section", "content"], [[heading, "\n".join(lines).strip()]]
        raise ValueError(f"Section '{target}' not found")
