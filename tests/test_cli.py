import pytest
from fnzo import cli
from typer.testing import CliRunner

from tests.conftest import USER_ID
from tests.helpers.db import expense_categories, seed_category, seed_expense

runner = CliRunner()


@pytest.fixture(autouse=True)
def _wired(monkeypatch, services, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli, "build_services", lambda: services)
    monkeypatch.setattr(cli, "configure_logging", lambda: None)


def _run(*args):
    return runner.invoke(cli.app, list(args))


def test_add_and_list_transactions():
    result = _run(
        "transactions", "add", "--kind", "expense", "--category", "Pets",
        "--amount", "1250", "--date", "2024-05-02", "--notes", "vet",
    )
    assert result.exit_code == 0, result.output
    assert "Added" in result.output

    listed = _run("transactions", "list")
    assert listed.exit_code == 0
    assert "Pets" in listed.output
    assert "₹1,250" in listed.output


def test_invalid_input_prints_error_and_exits_1():
    result = _run(
        "transactions", "add", "--kind", "expense", "--category", "Food", "--amount", "lots",
    )
    assert result.exit_code == 1
    assert "Error:" in result.output
    assert "amount must be a number" in result.output


def test_category_rename_reports_old_and_new_name(database_url):
    cat_id = seed_category(database_url, user_id=USER_ID, name="Groceries")
    seed_expense(database_url, user_id=USER_ID, category="Groceries", amount="10")

    result = _run("categories", "update", cat_id, "--name", "Food")
    assert result.exit_code == 0, result.output
    assert "Renamed Groceries -> Food" in result.output
    assert expense_categories(database_url, user_id=USER_ID) == [("Food", "expense")]


def test_delete_with_spending_needs_replacement_when_not_interactive(database_url):
    cat_id = seed_category(database_url, user_id=USER_ID, name="Groceries")
    seed_expense(database_url, user_id=USER_ID, category="Groceries", amount="10")

    result = _run("categories", "delete", cat_id)
    assert result.exit_code == 1
    assert "replacement category required" in result.output


def test_delete_prompts_for_replacement_when_interactive(monkeypatch, database_url):
    cat_id = seed_category(database_url, user_id=USER_ID, name="Groceries")
    seed_category(database_url, user_id=USER_ID, name="Food")
    seed_category(database_url, user_id=USER_ID, name="Salary", kind="income")
    seed_expense(database_url, user_id=USER_ID, category="Groceries", amount="10")

    offered = []

    def _pick(choices, **_kwargs):
        offered.extend(choices)
        return "Food"

    monkeypatch.setattr(cli, "_interactive", lambda: True)
    monkeypatch.setattr(cli, "select_replacement_category", _pick)

    result = _run("categories", "delete", cat_id)
    assert result.exit_code == 0, result.output
    assert offered == ["Food"]
    assert expense_categories(database_url, user_id=USER_ID) == [("Food", "expense")]


def test_merge_with_yes_skips_confirmation(database_url):
    source = seed_category(database_url, user_id=USER_ID, name="Snacks")
    target = seed_category(database_url, user_id=USER_ID, name="Food")
    seed_expense(database_url, user_id=USER_ID, category="Snacks", amount="3")

    result = _run("categories", "merge", source, target, "--yes")
    assert result.exit_code == 0, result.output
    assert "Merged" in result.output


def test_template_apply_records_transaction(services):
    added = _run(
        "templates", "add", "Coffee", "--kind", "expense", "--category", "Food", "--amount", "120",
    )
    assert added.exit_code == 0, added.output
    [template] = services.templates.get_templates()

    applied = _run("templates", "apply", template.id, "--date", "2024-05-03")
    assert applied.exit_code == 0, applied.output
    [tx] = services.transactions.get_transactions()
    assert (tx.category, tx.notes) == ("Food", "")


def test_csv_export_then_import(services, tmp_path):
    assert "No data to export" in _run("csv", "export").output

    _run("transactions", "add", "--kind", "income", "--category", "Salary", "--amount", "500")
    out = tmp_path / "out.csv"
    exported = _run("csv", "export", "--output", str(out))
    assert exported.exit_code == 0, exported.output
    assert out.read_text(encoding="utf-8").startswith("Date,Type,Category,Amount,Notes\n")

    imported = _run("csv", "import", str(out))
    assert imported.exit_code == 0, imported.output
    assert "Imported 1 transactions. 0 were skipped. 0 new categories added." in imported.output
    assert len(services.transactions.get_transactions()) == 2


def test_login_is_a_no_op_for_the_local_store():
    result = _run("login", "--email", "me@example.com", "--password", "pw")
    assert result.exit_code == 0
    assert "no sign-in needed" in result.output


def test_csv_import_accepts_excel_byte_order_mark(services, tmp_path):
    path = tmp_path / "excel.csv"
    path.write_text(
        "Date,Type,Category,Amount,Notes\n2024-05-01,expense,Food,120,lunch\n",
        encoding="utf-8-sig",
    )
    result = _run("csv", "import", str(path))
    assert result.exit_code == 0, result.output
    assert "Imported 1 transactions. 0 were skipped." in result.output
    assert [t.category for t in services.transactions.get_transactions()] == ["Food"]
