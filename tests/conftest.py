"""
tests/conftest.py
-----------------
Shared fixtures: a dump-parsing helper, parsed sample models and an
in-memory verification accessor.
"""
from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from core.dialects import get_dialect
from core.mapper import map_conv
from models.profiles import SourceProfile
from models.schema import Conv
from samples import MYSQL_DUMP, PG_DUMP, FakeAccessor


@pytest.fixture
def parse_source(tmp_path: Path) -> Callable[..., Conv]:
    """Returns ``parse(dialect, text, **profile)`` which reads *text* as a dump file."""
    def _parse(dialect: str, text: str, name: str = "dump.sql", cancel=None,
               progress_cb=None, **profile) -> Conv:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        source = SourceProfile(dialect=dialect, file=path, **profile)
        return get_dialect(dialect).parse(source, cancel=cancel, progress_cb=progress_cb)

    return _parse


@pytest.fixture
def mysql_conv(parse_source) -> Conv:
    """The sample MySQL dump, parsed and mapped."""
    return map_conv(parse_source("mysql", MYSQL_DUMP))


@pytest.fixture
def pg_conv(parse_source) -> Conv:
    """The sample pg_dump, parsed and mapped."""
    return map_conv(parse_source("postgresql", PG_DUMP))


@pytest.fixture
def accessor() -> FakeAccessor:
    return FakeAccessor()
