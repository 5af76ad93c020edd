import io
from datetime import UTC, date, datetime
from decimal import Decimal

import pytest
from fnzo.csv_io import (
    export_filename,
    export_transactions,
    import_transactions,
    parse_amount,
    parse_date,
)
from fnzo.errors import ValidationError
from fnzo.models import Kind, Transaction
from fnzo.remote import Response

from tests.helpers.store import RecordingSleep


def _tx(category, amount, notes, day=1, kind=Kind.EXPENSE):
    return Transaction(
        date=datetime(2024, 3, day, 18, 30, tzinfo=UTC),
        kind=kind,
        category=category,
        amount=Decimal(amount),
        notes=notes,
    )


def test_export_format():
    out = io.StringIO()
    count = export_transactions(
        [
            _tx("Food", "120.50", 'said "hi"', day=2),
            _tx("Rent, flat", "15000", "", day=1),
        ],
        out,
    )
    assert count == 2
    assert out.getvalue() == (
        "Date,Type,Category,Amount,Notes\n"
        '2024-03-02,expense,Food,120.50,"said ""hi"""\n'
        '2024-03-01,expense,"Rent, flat",15000,""\n'
    )


def test_export_filename():
    assert export_filename("fnzo", date(2024, 5, 15)) == "fnzo-expenses-2024-05-15.csv"


def test_exported_file_imports_back(services):
    exported = [
        _tx("Food", "120.50", "lunch, with team"),
        _tx("Salary", "50000", 'bonus "Q1"', kind=Kind.INCOME),
    ]
    buf = io.StringIO()
    export_transactions(exported, buf)
    buf.seek(0)

    result = import_transactions(buf, services.transactions, row_delay=0)

    assert (result.total, result.imported, result.skipped) == (2, 2, 0)
    rows = {t.category: t for t in services.transactions.get_transactions()}
    assert rows["Food"].notes == "lunch, with team"
    assert rows["Salary"].notes == 'bonus "Q1"'
    assert rows["Salary"].amount == Decimal("50000")
    assert rows["Food"].date.date() == date(2024, 3, 1)


def test_invalid_rows_are_skipped_and_reported(services):
    source = io.StringIO(
        "Date,Type,Category,Amount,Notes\n"
        "2024-03-01,expense,Food,100,ok\n"
        "2024-03-01,transfer,Food,100,bad type\n"
        "2024-03-01,expense,,100,no category\n"
        "2024-03-01,expense,Food,-5,negative\n"
        "2024-03-01,expense,Food,abc,not a number\n"
        "not-a-date,expense,Food,10,bad date\n"
        "\n"
        "03/04/2024,Income,Freelance,\"₹1,200\",\n"
        "2024-03\n"
    )
    result = import_transactions(source, services.transactions, row_delay=0)

    assert result.total == 8
    assert result.imported == 2
    assert result.skipped == 6
    assert [s.line for s in result.skipped_rows] == [3, 4, 5, 6, 7, 10]
    assert "invalid type" in result.skipped_rows[0].reason
    amounts = sorted(t.amount for t in services.transactions.get_transactions())
    assert amounts == [Decimal("100"), Decimal("1200")]


def test_new_categories_are_reported_and_added_to_roster(services):
    source = io.StringIO(
        "Date,Type,Category,Amount\n"
        "2024-03-01,expense,Food,10\n"
        "2024-03-01,expense,Pets,10\n"
        "2024-03-02,expense,Pets,15\n"
        "2024-03-01,savings,Vacation,500\n"
    )
    result = import_transactions(source, services.transactions, row_delay=0)
    assert result.new_categories == {Kind.EXPENSE: ["Pets"], Kind.SAVINGS: ["Vacation"]}
    assert "Vacation" in services.transactions.get_category_names(Kind.SAVINGS)


def test_missing_required_header_inserts_nothing(services, store):
    source = io.StringIO("Date,Type,Amount\n2024-03-01,expense,10\n")
    with pytest.raises(ValidationError, match="Category"):
        import_transactions(source, services.transactions, row_delay=0)
    assert store.count("insert", "expenses") == 0


def test_rows_are_paced_and_remote_failures_skip_the_row(services, store):
    sleep = RecordingSleep()
    progress = []
    store.script("insert", "expenses", None, Response(error="boom", status=500))
    source = io.StringIO(
        "Date,Type,Category,Amount\n"
        "2024-03-01,expense,Food,10\n"
        "2024-03-02,expense,Food,20\n"
        "2024-03-03,expense,Food,30\n"
    )
    result = import_transactions(
        source,
        services.transactions,
        row_delay=0.1,
        sleep=sleep,
        on_progress=lambda done, total: progress.append((done, total)),
    )
    assert result.imported == 2
    assert [s.line for s in result.skipped_rows] == [3]
    assert sleep.calls == [0.1, 0.1]
    assert progress == [(1, 3), (2, 3), (3, 3)]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2024-03-01", datetime(2024, 3, 1, tzinfo=UTC)),
        ("03/01/2024", datetime(2024, 3, 1, tzinfo=UTC)),
        ("2024/03/01", datetime(2024, 3, 1, tzinfo=UTC)),
        ("2024-03-01T10:00:00+05:30", datetime(2024, 3, 1, 4, 30, tzinfo=UTC)),
        ("yesterday", None),
        ("", None),
    ],
)
def test_parse_date(raw, expected):
    assert parse_date(raw) == expected


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("100", Decimal("100")),
        ("₹1,23,456.50", Decimal("123456.50")),
        (" $12 ", Decimal("12")),
        ("0", None),
        ("-3", None),
        ("", None),
        ("1.2.3", None),
    ],
)
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == expected
