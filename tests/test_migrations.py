from __future__ import annotations

import importlib.util
from pathlib import Path

import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations

VERSIONS = Path(__file__).resolve().parents[1] / "infra" / "alembic" / "versions"


def _load_initial_revision():
    path = VERSIONS / "20261017_000001_repair_desk_schema.py"
    spec = importlib.util.spec_from_file_location("repair_desk_schema", path)
    module = importlib.util.module_from_spec(spec)
    assert spec.loader is not None
    spec.loader.exec_module(module)
    return module


def test_initial_revision_creates_and_drops_tables():
    revision = _load_initial_revision()
    engine = sa.create_engine("sqlite://")

    with engine.begin() as connection:
        with Operations.context(MigrationContext.configure(connection)):
            revision.upgrade()
        inspector = sa.inspect(connection)
        assert set(inspector.get_table_names()) >= {"customers", "repair_tickets"}
        columns = {column["name"] for column in inspector.get_columns("repair_tickets")}
        assert {"ticket_number", "total_cost", "price_history", "updates", "version"} <= columns
        unique = inspector.get_unique_constraints("repair_tickets")
        assert any(item["column_names"] == ["ticket_number"] for item in unique)

        with Operations.context(MigrationContext.configure(connection)):
            revision.downgrade()
        assert sa.inspect(connection).get_table_names() == []

    assert revision.down_revision is None
