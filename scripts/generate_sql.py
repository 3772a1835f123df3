"""Generate PostgreSQL CREATE TABLE / CREATE INDEX statements for the chat tables.

Usage:
    python scripts/generate_sql.py > create_chat_tables.sql
"""

import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy.dialects import postgresql  # noqa: E402
from sqlalchemy.schema import CreateIndex, CreateTable  # noqa: E402

from app.chat.repository.sql_schema.chat import ThreadModel, MessageModel  # noqa: E402


def generate_sql():
    """Print DDL for the chat tables, parents first."""
    dialect = postgresql.dialect()

    print("-- ============================================")
    print("-- Chat tables")
    print("-- ============================================\n")

    for model in (ThreadModel, MessageModel):
        table = model.__table__
        print(f"-- Creating table: {table.name}")
        print(str(CreateTable(table).compile(dialect=dialect)).strip() + ";\n")
        for index in sorted(table.indexes, key=lambda i: i.name):
            print(str(CreateIndex(index).compile(dialect=dialect)).strip() + ";")
        print()


if __name__ == "__main__":
    generate_sql()
