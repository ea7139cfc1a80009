"""Tests for the table-reset guard in scripts/demo_invoice_matching.py."""

import importlib.util
import sys
from pathlib import Path

import pytest

SCRIPT = Path(__file__).resolve().parent.parent / "scripts" / "demo_invoice_matching.py"


@pytest.fixture(scope="module")
def demo():
    spec = importlib.util.spec_from_file_location("demo_invoice_matching", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestResetGuard:
    @pytest.mark.parametrize("url, reset, expected", [
        ("sqlite:///payables.db", False, True),
        ("sqlite://", False, True),
        ("postgresql://localhost/ap", False, False),
        ("postgresql+psycopg://ap:secret@db/ap", True, True),
    ])
    def test_should_drop_tables(self, demo, url, reset, expected):
        assert demo.should_drop_tables(url, reset) is expected

    def test_refuses_non_sqlite_without_reset(self, demo, monkeypatch, capsys):
        init_calls = []
        monkeypatch.setattr(demo, "init_engine_from_url", lambda *a, **kw: init_calls.append(a))
        monkeypatch.setattr(demo, "drop_tables", lambda: pytest.fail("tables dropped"))
        monkeypatch.setattr(
            sys, "argv", ["demo", "--db-url", "postgresql://localhost/ap", "--verbose"]
        )

        assert demo.main() == 2
        assert init_calls == []
        assert "--reset" in capsys.readouterr().err
