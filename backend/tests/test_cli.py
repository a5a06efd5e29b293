from decimal import Decimal

from poscore.extensions import db
from poscore.models import BusinessSettings, Currency, Product, User
from poscore.services import cash_drawer_service


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "init", "--demo-products"])
    assert result.exit_code == 0, result.output
    assert "DONE" in result.output

    assert db_session.query(Currency).count() == 5
    assert db_session.get(BusinessSettings, 1).currency == "USD"
    assert {u.username for u in db_session.query(User).all()} == {"admin", "cashier"}
    assert db_session.query(Product).count() == 3

    again = runner.invoke(args=["system", "init", "--demo-products"])
    assert again.exit_code == 0, again.output
    assert "already exists" in again.output
    assert db_session.query(User).count() == 2
    assert db_session.query(Product).count() == 3


def test_currencies_set_rate(app, db_session, currencies):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["currencies", "set-rate", "EUR", "0.97"])
    assert result.exit_code == 0, result.output

    db.session.expire_all()
    assert db.session.get(Currency, "EUR").rate == Decimal("0.97")

    missing = runner.invoke(args=["currencies", "set-rate", "XYZ", "1"])
    assert missing.exit_code != 0

    invalid = runner.invoke(args=["currencies", "set-rate", "EUR", "-2"])
    assert invalid.exit_code != 0


def test_currencies_list(app, db_session, currencies):
    result = app.test_cli_runner().invoke(args=["currencies", "list"])
    assert result.exit_code == 0
    assert "CLP" in result.output


def test_sessions_list(app, db_session, cashier):
    runner = app.test_cli_runner()
    assert "No sessions found" in runner.invoke(args=["sessions", "list"]).output

    cash_drawer_service.open_session(cashier, "25")
    result = runner.invoke(args=["sessions", "list", "--status", "open"])
    assert result.exit_code == 0
    assert "cashier" in result.output
