"""
dataconnect Google Analytics Connector — Predefined reports over the GA4 Data API.

Each predefined report is a table whose columns are its dimensions followed
by its metrics. Discovery loads every report over the default window.

Query format:
    GET_REPORT:<report>[:<days>]
    AGGREGATE:<report>[:<days>]     totals of each metric
    ANALYZE:<report>[:<days>]       per-column statistics
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .google_oauth import GoogleOAuthConnector
from .tabular import (
    TABULAR_DATA_TYPES,
    Grid,
    TableData,
    TabularConnector,
    column_profile,
    find_table,
    parse_number,
)
from ..core.schema import Capabilities, ColumnType, Connection
from ..core.validation import QueryGrammar, VerbQuery

logger = logging.getLogger(__name__)

ANALYTICS_GRAMMAR = QueryGrammar(
    label="Google Analytics",
    verbs=("GET_REPORT", "AGGREGATE", "ANALYZE"),
    example="GET_REPORT:audience_overview",
    sample_verb="GET_REPORT",
)

ANALYTICS_CAPABILITIES = Capabilities(
    supports_sql=False,
    supported_operations=("READ", "ANALYZE", "REPORT", "EXTRACT", "AGGREGATE", "FILTER", "SEGMENT"),
    supported_data_types=TABULAR_DATA_TYPES,
    native_data_types=(
        "METRIC", "DIMENSION", "DATE", "STRING", "NUMBER", "BOOLEAN", "CURRENCY", "PERCENTAGE",
    ),
    max_query_size=100_000,
    max_result_size=1_000_000,
    max_connections=5,
)

DEFAULT_DAYS = 30
ROW_LIMIT = 10_000


@dataclass(frozen=True)
class Report:
    name: str
    description: str
    dimensions: Tuple[str, ...]
    metrics: Tuple[str, ...]


REPORTS = {
    r.name: r
    for r in (
        Report(
            "audience_overview",
            "Sessions and users by day and location",
            ("date", "country", "city"),
            ("sessions", "totalUsers", "screenPageViews", "bounceRate"),
        ),
        Report(
            "traffic_sources",
            "Sessions by source, medium and campaign",
            ("sessionSource", "sessionMedium", "sessionCampaignName"),
            ("sessions", "totalUsers", "screenPageViews", "averageSessionDuration"),
        ),
        Report(
            "page_views",
            "Views and engagement per page",
            ("pagePath", "pageTitle"),
            ("screenPageViews", "totalUsers", "averageSessionDuration", "bounceRate"),
        ),
        Report(
            "devices",
            "Sessions by device, operating system and browser",
            ("deviceCategory", "operatingSystem", "browser"),
            ("sessions", "totalUsers", "screenPageViews"),
        ),
        Report(
            "geography",
            "Users by country, region and city",
            ("country", "region", "city"),
            ("sessions", "totalUsers", "newUsers"),
        ),
    )
}

_METRIC_TYPES = {"TYPE_INTEGER": ColumnType.INTEGER}


def report_body(report: Report, days: int, limit: int = ROW_LIMIT) -> Dict[str, Any]:
    return {
        "dateRanges": [{"startDate": f"{days}daysAgo", "endDate": "today"}],
        "dimensions": [{"name": d} for d in report.dimensions],
        "metrics": [{"name": m} for m in report.metrics],
        "limit": limit,
    }


def report_table(report: Report, payload: Dict[str, Any]) -> TableData:
    """Turn a ``runReport`` response into a table."""
    dimension_names = [h["name"] for h in payload.get("dimensionHeaders") or []] or list(report.dimensions)
    metric_headers = payload.get("metricHeaders") or [{"name": m} for m in report.metrics]
    types = {name: ColumnType.STRING for name in dimension_names}
    for header in metric_headers:
        types[header["name"]] = _METRIC_TYPES.get(header.get("type"), ColumnType.FLOAT)

    rows = []
    for row in payload.get("rows") or []:
        values: List[Any] = [v.get("value") for v in row.get("dimensionValues") or []]
        for header, value in zip(metric_headers, row.get("metricValues") or []):
            values.append(_metric(value.get("value"), types[header["name"]]))
        rows.append(values)

    columns = dimension_names + [h["name"] for h in metric_headers]
    return TableData(name=report.name, columns=columns, rows=rows, description=report.description, types=types)


def _metric(raw: Optional[str], kind: ColumnType) -> Any:
    if raw is None or raw == "":
        return None
    try:
        return int(raw) if kind is ColumnType.INTEGER else float(raw)
    except ValueError:
        return raw


class GoogleAnalyticsConnector(TabularConnector, GoogleOAuthConnector):
    """Connector for a Google Analytics 4 property.

    Config: ``oauth_token`` (plus optional ``refresh_token``) and
    ``property_id`` (``123456`` or ``properties/123456``).
    """

    display_name = "Google Analytics"
    capabilities = ANALYTICS_CAPABILITIES
    grammar = ANALYTICS_GRAMMAR
    api_url = "https://analyticsdata.googleapis.com/v1beta"
    resource_key = "property_id"
    resource_aliases = ("property",)
    missing_resource_error = "Property ID is required for Google Analytics queries"

    @property
    def source_type(self) -> str:
        return "google-analytics"

    def normalize_resource(self, value: str) -> str:
        return str(value).strip().rsplit("/", 1)[-1]

    def _report_url(self, connection: Connection) -> str:
        return f"{connection.connection_string}/properties/{self.resource_id(connection)}:runReport"

    async def run_report(self, connection: Connection, report: Report, days: int) -> TableData:
        response = await self.google_request(
            connection, "POST", self._report_url(connection), json=report_body(report, days)
        )
        table = report_table(report, response.json())
        logger.debug("Report %s (%d days): %d rows", report.name, days, len(table.rows))
        return table

    async def probe_resource(self, connection: Connection) -> Dict[str, Any]:
        response = await self.google_request(
            connection,
            "POST",
            self._report_url(connection),
            json={
                "dateRanges": [{"startDate": "7daysAgo", "endDate": "today"}],
                "metrics": [{"name": "activeUsers"}],
                "limit": 1,
            },
        )
        payload = response.json()
        return {
            "api_version": "v1beta",
            "property_id": self.resource_id(connection),
            "row_count": payload.get("rowCount", 0),
        }

    # ──── Discovery ────

    async def document(self, connection: Connection) -> Dict[str, TableData]:
        self.ensure_open(connection)
        if "document" not in connection.state:
            days = int(connection.option("days", DEFAULT_DAYS))
            tables = await asyncio.gather(
                *(self.run_report(connection, report, days) for report in REPORTS.values())
            )
            connection.state["document"] = {t.name: t for t in tables}
        return connection.state["document"]

    def tables(self, document: Dict[str, TableData]) -> List[TableData]:
        return list(document.values())

    async def get_database_info(self, connection: Connection) -> Dict[str, Any]:
        return {
            "name": f"properties/{self.resource_id(connection)}",
            "version": "GA4 Data API v1beta",
            "type": self.source_type,
            "reports": list(REPORTS),
        }

    def plan_source(self, connection: Connection) -> str:
        return f"properties/{connection.option(self.resource_key) or '(unset)'}"

    def result_metadata(self, connection: Connection) -> Dict[str, Any]:
        return {"property_id": connection.option(self.resource_key)}

    # ──── Queries ────

    def _report(self, name: str) -> Report:
        report = REPORTS.get((name or "").strip().lower())
        if report is None:
            raise ValueError(f"Unknown report '{name}'. Available: {', '.join(REPORTS)}")
        return report

    async def dispatch(
        self, query: VerbQuery, connection: Connection, params: Optional[Sequence[Any]]
    ) -> Grid:
        self.resource_id(connection)
        report = self._report(query.target or "audience_overview")
        days = parse_number(query.extra, "Days") if query.extra else None

        if days is None and query.verb != "GET_REPORT":
            table = find_table(self.tables(await self.document(connection)), report.name)
        else:
            table = await self.run_report(connection, report, days or DEFAULT_DAYS)

        if query.verb == "GET_REPORT":
            return table.grid()
        if query.verb == "AGGREGATE":
            rows = []
            for metric in report.metrics:
                values = [v for v in table.values(metric) if isinstance(v, (int, float))]
                rows.append([metric, sum(values), round(sum(values) / len(values), 4) if values else None])
            return ["metric", "total", "average"], rows
        if query.verb == "ANALYZE":
            return column_profile(table)
        raise ValueError(f"Unsupported Google Analytics operation: {query.verb}")
