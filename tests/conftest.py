import csv
import sqlite3
from unittest.mock import MagicMock

import pytest


class FakeDriver:
    """A DB-API module stand-in that answers queries from a script.

    ``answer(fragment, columns, rows)`` registers the result returned for
    any statement containing ``fragment``; the first match wins.
    """

    def __init__(self):
        self.module = MagicMock()
        self.module.connect.side_effect = self._connect
        self.answers = []
        self.executed = []
        self.connect_args = None
        self.connect_kwargs = None
        self.connect_error = None

    def answer(self, fragment, columns=None, rows=(), error=None, rowcount=None):
        rows = [tuple(r) for r in rows]
        count = len(rows) if rowcount is None else rowcount
        self.answers.append((fragment, columns, rows, error, count))

    def _connect(self, *args, **kwargs):
        self.connect_args = args
        self.connect_kwargs = kwargs
        if self.connect_error is not None:
            raise self.connect_error
        conn = MagicMock()
        conn.cursor.side_effect = self._cursor
        return conn

    def _cursor(self):
        cursor = MagicMock()
        cursor.description = None
        cursor.rowcount = -1

        def execute(sql, params=None):
            self.executed.append((sql, params))
            for fragment, columns, rows, error, count in self.answers:
                if fragment in sql:
                    if error is not None:
                        raise error
                    cursor.description = [(c,) for c in columns] if columns else None
                    cursor.fetchall.return_value = list(rows)
                    cursor.fetchone.return_value = rows[0] if rows else None
                    cursor.rowcount = count
                    return
            cursor.description = None
            cursor.rowcount = 0

        cursor.execute.side_effect = execute
        return cursor


@pytest.fixture
def fake_driver():
    return FakeDriver()


@pytest.fixture
def sample_db(tmp_path):
    """Create a temporary SQLite database with sample data."""
    db_path = str(tmp_path / "shop.db")

    conn = sqlite3.connect(db_path)
    conn.execute("""
        CREATE TABLE users (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT UNIQUE,
            age INTEGER,
            active BOOLEAN DEFAULT 1
        )
    """)
    conn.execute("""
        CREATE TABLE posts (
            id INTEGER PRIMARY KEY,
            user_id INTEGER,
            title TEXT,
            content TEXT,
            created_at DATETIME,
            FOREIGN KEY (user_id) REFERENCES users(id)
        )
    """)
    conn.execute("CREATE INDEX idx_posts_user ON posts (user_id)")
    conn.execute("CREATE VIEW active_users AS SELECT id, name FROM users WHERE active = 1")
    conn.execute(
        "INSERT INTO users (name, email, age) VALUES (?, ?, ?)",
        ("Alice", "alice@example.com", 30),
    )
    conn.execute(
        "INSERT INTO users (name, email, age) VALUES (?, ?, ?)",
        ("Bob", "bob@example.com", 25),
    )
    conn.execute(
        "INSERT INTO users (name, email, age) VALUES (?, ?, ?)",
        ("Carol", "carol@example.com", 41),
    )
    conn.execute(
        "INSERT INTO posts (user_id, title, content) VALUES (?, ?, ?)",
        (1, "Hello World", "First post content"),
    )
    conn.commit()
    conn.close()

    return db_path


@pytest.fixture
def sqlite_config(sample_db):
    return {"file_path": sample_db, "file_name": "shop.db"}


@pytest.fixture
def sample_csv(tmp_path):
    """Create a CSV file of products."""
    csv_path = tmp_path / "products.csv"
    with open(csv_path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["id", "name", "price", "in_stock"])
        writer.writerow([1, "Widget", 9.99, "true"])
        writer.writerow([2, "Gadget", 24.99, "false"])
        writer.writerow([3, "Doohickey", 4.50, "true"])
    return str(csv_path)


@pytest.fixture
def csv_config(sample_csv):
    return {"file_path": sample_csv, "file_name": "products.csv"}


@pytest.fixture
def sample_text(tmp_path):
    """Create a Markdown file with two sections."""
    path = tmp_path / "notes.md"
    path.write_text(
        "# Overview\n"
        "The quarterly report covers revenue.\n"
        "\n"
        "Revenue grew in every region.\n"
        "\n"
        "# Risks\n"
        "Supply chain delays remain a concern.\n",
        encoding="utf-8",
    )
    return str(path)


@pytest.fixture
def sample_xlsx(tmp_path):
    """Create an Excel workbook with two sheets, one of them empty."""
    openpyxl = pytest.importorskip("openpyxl")

    path = str(tmp_path / "inventory.xlsx")
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Stock Items"
    ws.append(["SKU", "Product Name", "Quantity"])
    ws.append(["A-1", "Bolt", 120])
    ws.append(["A-2", "Nut", 300])
    ws.append(["B-7", "Washer", 45])
    wb.create_sheet("Empty")
    wb.save(path)
    wb.close()
    return path


@pytest.fixture
def sample_docx(tmp_path):
    """Create a Word document with a heading, paragraphs and a table."""
    docx = pytest.importorskip("docx")

    path = str(tmp_path / "proposal.docx")
    doc = docx.Document()
    doc.core_properties.title = "Project Proposal"
    doc.add_heading("Introduction", level=1)
    doc.add_paragraph("This proposal describes the migration plan.")
    doc.add_paragraph("The budget is approved for next quarter.")
    table = doc.add_table(rows=3, cols=2)
    for r, (phase, weeks) in enumerate([("Phase", "Weeks"), ("Design", "4"), ("Build", "10")]):
        table.cell(r, 0).text = phase
        table.cell(r, 1).text = weeks
    doc.save(path)
    return path


@pytest.fixture
def sample_pptx(tmp_path):
    """Create a two-slide presentation with speaker notes on the first."""
    pptx = pytest.importorskip("pptx")

    path = str(tmp_path / "deck.pptx")
    prs = pptx.Presentation()
    layout = prs.slide_layouts[1]  # Title and Content

    slide = prs.slides.add_slide(layout)
    slide.shapes.title.text = "Quarterly Results"
    slide.placeholders[1].text = "Revenue up 12 percent"
    slide.notes_slide.notes_text_frame.text = "Mention the new region"

    slide = prs.slides.add_slide(layout)
    slide.shapes.title.text = "Next Steps"
    slide.placeholders[1].text = "Hire two engineers"

    prs.save(path)
    return path


@pytest.fixture
def write_config(tmp_path):
    """Write a YAML connection config and return its path."""
    import yaml

    def _write(data, name="config.yaml"):
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data), encoding="utf-8")
        return str(path)

    return _write
