from backoffice.models import Client, CompanySetting, InventoryRecord, Product


def test_seed_demo_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "seed-demo"])
    second = runner.invoke(args=["system", "seed-demo"])

    assert first.exit_code == 0, first.output
    assert second.exit_code == 0, second.output
    assert "SKIP DEMO-001" in second.output
    assert db_session.query(Product).count() == 3
    assert db_session.query(Client).count() == 1
    assert db_session.query(CompanySetting).count() == 1
    assert db_session.query(InventoryRecord).count() == 4


def test_stock_and_movements_commands(app, db_session, make_product):
    product = make_product(stock={"A-1": 4, "B-1": 1})
    runner = app.test_cli_runner()

    result = runner.invoke(args=["inventory", "stock", "--product-id", product.id])
    assert result.exit_code == 0
    assert "TOTAL" in result.output and "5" in result.output

    result = runner.invoke(args=["inventory", "movements", "--product-id", product.id])
    assert "No movements found." in result.output

    missing = runner.invoke(args=["inventory", "stock", "--product-id", "nope"])
    assert missing.exit_code != 0
