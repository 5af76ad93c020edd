from datetime import UTC, date, datetime
from decimal import Decimal

import pydantic
import pytest
from fnzo.models import CategoryUpdate, Kind, TemplateUpdate, Transaction, to_utc


def test_kind_parse_is_case_insensitive():
    assert Kind.parse(" Income ") is Kind.INCOME
    with pytest.raises(ValueError):
        Kind.parse("transfer")


def test_transaction_row_mapping():
    tx = Transaction.from_row(
        {
            "id": "t1",
            "user_id": "u1",
            "date": "2024-05-01T10:00:00",
            "type": "EXPENSE",
            "category": "Food",
            "amount": "12.50",
            "notes": None,
        }
    )
    assert tx.kind is Kind.EXPENSE
    assert tx.date == datetime(2024, 5, 1, 10, tzinfo=UTC)
    assert tx.notes == ""
    assert tx.to_row() == {
        "date": "2024-05-01T10:00:00+00:00",
        "type": "expense",
        "category": "Food",
        "amount": "12.50",
        "notes": "",
    }


def test_transaction_amount_must_be_positive():
    with pytest.raises(pydantic.ValidationError):
        Transaction(date=date(2024, 5, 1), kind="expense", category="Food", amount=Decimal("0"))


def test_partial_updates_only_send_set_fields():
    assert CategoryUpdate(name="Food").to_patch() == {"name": "Food"}
    assert CategoryUpdate(budget=Decimal("10"), kind="income").to_patch() == {
        "budget": "10",
        "type": "income",
    }
    assert TemplateUpdate(is_default=True).to_patch() == {"is_default": True}


def test_to_utc_normalizes_offsets_and_dates():
    assert to_utc("2024-05-01T05:30:00+05:30") == datetime(2024, 5, 1, tzinfo=UTC)
    assert to_utc(date(2024, 5, 1)) == datetime(2024, 5, 1, tzinfo=UTC)
    with pytest.raises(ValueError):
        to_utc(12)
