import pytest

from pdf_tag_normalizer.config import (
    GROUPING_ROLES_ENV,
    MARK_WARNINGS_ENV,
    MAX_PASSES_ENV,
    SINGLE_TITLE_HEADING_ENV,
    VERIFY_TREE_ENV,
)


@pytest.fixture(autouse=True)
def _isolate_normalizer_env(monkeypatch):
    # Keep a developer's TAG_NORMALIZER_* settings out of the suite.
    for name in (MAX_PASSES_ENV, VERIFY_TREE_ENV, MARK_WARNINGS_ENV, SINGLE_TITLE_HEADING_ENV, GROUPING_ROLES_ENV):
        monkeypatch.delenv(name, raising=False)
