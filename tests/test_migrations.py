from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect
from sqlmodel import SQLModel

import stock_push.models  # noqa: F401

ROOT = Path(__file__).resolve().parent.parent


def _alembic_config(db_url: str) -> Config:
    config = Config(str(ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(ROOT / "migrations"))
    config.set_main_option("sqlalchemy.url", db_url)
    return config


class TestMigrations:
    """Тесты миграций схемы"""

    def test_upgrade_matches_models(self, tmp_path):
        """Тест: после upgrade head колонки совпадают с моделями"""
        db_url = f"sqlite:///{tmp_path / 'migrate.db'}"
        command.upgrade(_alembic_config(db_url), "head")

        engine = create_engine(db_url)
        inspector = inspect(engine)
        for table in SQLModel.metadata.sorted_tables:
            columns = {column["name"] for column in inspector.get_columns(table.name)}
            assert columns == {column.name for column in table.columns}, table.name
        engine.dispose()

    def test_downgrade_drops_tables(self, tmp_path):
        db_url = f"sqlite:///{tmp_path / 'migrate.db'}"
        config = _alembic_config(db_url)
        command.upgrade(config, "head")

        command.downgrade(config, "base")

        engine = create_engine(db_url)
        assert "inventory_movements_queue" not in inspect(engine).get_table_names()
        engine.dispose()
