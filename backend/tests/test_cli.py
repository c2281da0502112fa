"""Management CLI listings."""

from collections import namedtuple
from datetime import datetime, timedelta

import pytest

from app import cli

Row = namedtuple("Row", "id invoice_number frequency next_invoice_date")


@pytest.fixture
def rows(monkeypatch):
    now = datetime.utcnow()
    data = [
        Row("tpl-1", "INV-0005", "monthly", now - timedelta(days=3)),
        Row("tpl-2", "SUB-0010", None, now + timedelta(days=10)),
    ]
    monkeypatch.setattr(cli, "get_recurring_invoices", lambda: data)
    return data


@pytest.mark.unit
class TestCli:
    def test_list_recurring(self, rows, capsys):
        cli.list_recurring()

        out = capsys.readouterr().out
        assert "INV-0005" in out
        assert "SUB-0010" in out
        assert "2 recurring invoice(s)" in out

    def test_list_due_only_shows_due(self, rows, capsys):
        cli.list_due()

        out = capsys.readouterr().out
        assert "INV-0005" in out
        assert "SUB-0010" not in out
        assert "1 invoice(s) due" in out

    def test_missing_frequency_shown_as_monthly(self, rows, capsys):
        cli.list_recurring()
        line = next(l for l in capsys.readouterr().out.splitlines() if "SUB-0010" in l)
        assert "monthly" in line

    def test_engine_disposed_after_query(self, monkeypatch):
        class FakeConnection:
            def __enter__(self):
                return self

            def __exit__(self, *exc):
                return False

            def execute(self, statement):
                return iter([Row("tpl-1", "INV-0005", "monthly", datetime(2024, 1, 1))])

        class FakeEngine:
            disposed = False

            def connect(self):
                return FakeConnection()

            def dispose(self):
                self.disposed = True

        engine = FakeEngine()
        monkeypatch.setattr(cli, "create_engine", lambda url: engine)

        rows = cli.get_recurring_invoices()

        assert [r.invoice_number for r in rows] == ["INV-0005"]
        assert engine.disposed is True
