from pathlib import Path

import pytest

tomllib = pytest.importorskip("tomllib")

PYPROJECT = Path(__file__).resolve().parent.parent / "pyproject.toml"


class TestPackaging:
    """Тесты метаданных пакета"""

    def test_sqlmodel_version_bounded(self):
        """Тест: sqlmodel ограничен сверху, столбцы времени хранятся без зоны"""
        with PYPROJECT.open("rb") as f:
            dependencies = tomllib.load(f)["project"]["dependencies"]

        sqlmodel = [dep for dep in dependencies if dep.startswith("sqlmodel")]
        assert sqlmodel == ["sqlmodel>=0.0.16,<0.0.40"]
