"""
dataconnect Connectors — One implementation of the connector contract per backend.

Driver libraries are imported lazily, so every connector can be imported
even when its backend's driver is not installed.
"""

from .api import APIConnector
from .base import BaseConnector
from .csv_file import CSVConnector
from .excel import ExcelConnector
from .files import FileConnector
from .google_analytics import GoogleAnalyticsConnector
from .google_docs import GoogleDocsConnector
from .gsheets import GoogleSheetsConnector
from .http import HTTPConnector
from .mysql import MySQLConnector
from .pdf import PDFConnector
from .postgres import PostgresConnector
from .powerpoint import PowerPointConnector
from .redshift import RedshiftConnector
from .sql import SQLConnector
from .sqlite import SQLiteConnector
from .text import TextConnector
from .web_url import WebURLConnector
from .word import WordConnector

# Connectors that talk to their backend through a driver or the filesystem.
DRIVER_CONNECTORS = (
    PostgresConnector,
    MySQLConnector,
    SQLiteConnector,
    RedshiftConnector,
    CSVConnector,
    ExcelConnector,
    PDFConnector,
    WordConnector,
    PowerPointConnector,
    TextConnector,
)

# Connectors built on httpx; they accept ``transport=``.
HTTP_CONNECTORS = (
    GoogleSheetsConnector,
    GoogleDocsConnector,
    APIConnector,
    WebURLConnector,
    GoogleAnalyticsConnector,
)

__all__ = [
    "APIConnector",
    "BaseConnector",
    "CSVConnector",
    "DRIVER_CONNECTORS",
    "ExcelConnector",
    "FileConnector",
    "GoogleAnalyticsConnector",
    "GoogleDocsConnector",
    "GoogleSheetsConnector",
    "HTTPConnector",
    "HTTP_CONNECTORS",
    "MySQLConnector",
    "PDFConnector",
    "PostgresConnector",
    "PowerPointConnector",
    "RedshiftConnector",
    "SQLConnector",
    "SQLiteConnector",
    "TextConnector",
    "WebURLConnector",
    "WordConnector",
]
