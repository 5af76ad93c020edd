from fnzo.remote import Order, eq, gte, in_
from fnzo.sql_store import SqlStore

from tests.conftest import USER_ID
from tests.helpers.db import seed_expense


def _expense(category="Food", amount="10", date="2024-05-01T00:00:00+00:00"):
    return {"date": date, "type": "expense", "category": category, "amount": amount, "notes": ""}


def test_insert_stamps_id_owner_and_timestamps(sql_store):
    resp = sql_store.insert("expenses", _expense())
    assert resp.ok and resp.status == 201
    [row] = resp.rows
    assert row["id"]
    assert row["user_id"] == USER_ID
    assert row["amount"] == "10.00"
    assert row["created_at"].endswith("+00:00")


def test_rows_are_scoped_to_the_store_user(sql_store, database_url):
    seed_expense(database_url, user_id="someone-else", category="Food", amount="99")
    sql_store.insert("expenses", _expense())

    assert len(sql_store.select("expenses").rows) == 1
    other = SqlStore(database_url, "someone-else")
    assert [r["amount"] for r in other.select("expenses").rows] == ["99.00"]

    # Writes cannot reach another user's rows either
    sql_store.delete("expenses", [eq("category", "Food")])
    assert len(other.select("expenses").rows) == 1


def test_insert_for_another_user_is_refused(sql_store):
    resp = sql_store.insert("expenses", {**_expense(), "user_id": "intruder"})
    assert resp.status == 403 and resp.code == "42501"


def test_filters_and_order(sql_store):
    sql_store.insert("expenses", _expense("A", date="2024-04-30T00:00:00+00:00"))
    sql_store.insert("expenses", _expense("B", date="2024-05-02T00:00:00+00:00"))
    sql_store.insert("expenses", _expense("C", date="2024-05-03T00:00:00+00:00"))

    newest_first = sql_store.select("expenses", order=Order("date", ascending=False))
    assert [r["category"] for r in newest_first.rows] == ["C", "B", "A"]

    may = sql_store.select("expenses", gte("date", "2024-05-01T00:00:00+00:00"))
    assert sorted(r["category"] for r in may.rows) == ["B", "C"]

    picked = sql_store.select("expenses", in_("category", ["A", "C"]))
    assert sorted(r["category"] for r in picked.rows) == ["A", "C"]


def test_update_returns_changed_rows(sql_store):
    sql_store.insert("expenses", _expense("Groceries"))
    sql_store.insert("expenses", _expense("Groceries"))
    resp = sql_store.update("expenses", [eq("category", "Groceries")], {"category": "Food"})
    assert [r["category"] for r in resp.rows] == ["Food", "Food"]
    assert sql_store.update("expenses", [eq("category", "Nope")], {"category": "X"}).rows == []


def test_unknown_table_and_column_map_to_postgres_codes(sql_store):
    missing = sql_store.select("budgets")
    assert (missing.status, missing.code) == (404, "42P01")
    bad_col = sql_store.select("expenses", eq("colour", "red"))
    assert (bad_col.status, bad_col.code) == (400, "42703")


def test_constraint_violation_is_reported(sql_store):
    resp = sql_store.insert("expenses", _expense(amount="-1"))
    assert not resp.ok
    assert resp.status == 409


def test_local_session_never_expires(sql_store):
    session = sql_store.get_session()
    assert session.user_id == USER_ID
    assert not session.is_expired(10**12)
    assert sql_store.refresh_session() == session


def test_bulk_insert_writes_every_row_in_one_call(sql_store):
    resp = sql_store.insert("expenses", [_expense("A"), _expense("B"), _expense("C")])
    assert resp.status == 201
    assert [r["category"] for r in resp.rows] == ["A", "B", "C"]
    assert all(r["user_id"] == USER_ID for r in resp.rows)
    assert len(sql_store.select("expenses").rows) == 3


def test_bulk_insert_is_all_or_nothing(sql_store):
    rows = [_expense("A"), _expense("B"), _expense("C"), _expense("D", amount="-1")]
    resp = sql_store.insert("expenses", rows)
    assert resp.status == 409
    assert sql_store.select("expenses").rows == []

    foreign = [_expense("E"), {**_expense("F"), "user_id": "intruder"}]
    assert sql_store.insert("expenses", foreign).code == "42501"
    assert sql_store.select("expenses").rows == []
