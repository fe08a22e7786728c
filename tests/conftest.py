import json
from pathlib import Path

import pytest

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def fixtures_dir():
    """Provide the directory holding sample pages and schemas."""
    return FIXTURES_DIR


@pytest.fixture
def load_fixture():
    """Read a fixture file; .json files are decoded."""
    def _load(name):
        content = (FIXTURES_DIR / name).read_text(encoding="utf-8")
        if name.endswith(".json"):
            return json.loads(content)
        return content
    return _load
