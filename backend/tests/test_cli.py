"""
Flask CLI tests (flask items / stock / reports / settings / backups).
"""

from storekeeper.services import inventory_service, ledger_service, settings_service


def test_init_db_is_idempotent(runner):
    result = runner.invoke(args=["system", "init-db"])
    assert result.exit_code == 0
    assert "PASS" in result.output
    assert runner.invoke(args=["system", "init-db"]).exit_code == 0


def test_create_and_list_items(runner):
    result = runner.invoke(args=[
        "items", "create",
        "--sku", "BP-100", "--name", "Brake Pad",
        "--price-cents", "45000", "--cost-cents", "30000",
        "--opening-stock", "10",
    ])
    assert result.exit_code == 0, result.output
    assert "PASS Created item BP-100" in result.output

    listing = runner.invoke(args=["items", "list"])
    assert "Brake Pad" in listing.output
    assert "450.00" in listing.output


def test_create_duplicate_fails_cleanly(runner, make_item):
    make_item(sku="DUP")
    result = runner.invoke(args=[
        "items", "create", "--sku", "DUP", "--name", "Again",
        "--price-cents", "1", "--cost-cents", "1",
    ])
    assert result.exit_code != 0
    assert "already exists" in result.output


def test_stock_adjust_history_and_reconcile(runner, make_item):
    item = make_item(opening_stock=5)

    result = runner.invoke(args=["stock", "adjust", "--note", "Cracked", "--", str(item.id), "damage_write_off", "-2"])
    assert result.exit_code == 0, result.output
    assert inventory_service.current_quantity(item.id) == 3
    assert ledger_service.list_entries(item_id=item.id)[0].created_by == "cli"

    too_many = runner.invoke(args=["stock", "adjust", "--", str(item.id), "manual_deduction", "-10"])
    assert too_many.exit_code != 0
    assert "Insufficient stock" in too_many.output

    history = runner.invoke(args=["stock", "history", "--item-id", str(item.id)])
    assert "damage_write_off" in history.output

    assert "PASS" in runner.invoke(args=["stock", "reconcile"]).output
    assert "Nothing to correct" in runner.invoke(args=["stock", "rebuild"]).output


def test_fsn_and_reports(runner, make_item, sell):
    item = make_item()
    sell(item, 1)

    fsn = runner.invoke(args=["stock", "fsn", "--threshold-days", "90"])
    assert fsn.exit_code == 0
    assert "FSN @ 90d" in fsn.output

    for args in (
        ["reports", "daily-sales"],
        ["reports", "product-sales"],
        ["reports", "current-stock", "--low-only"],
        ["reports", "non-moving"],
        ["reports", "profit"],
        ["reports", "dashboard"],
    ):
        result = runner.invoke(args=args)
        assert result.exit_code == 0, (args, result.output)


def test_settings_commands(runner):
    result = runner.invoke(args=["settings", "set", "low_stock_method", "days_supply"])
    assert result.exit_code == 0
    assert settings_service.get_setting("low_stock_method") == "days_supply"

    assert "days_supply" in runner.invoke(args=["settings", "show"]).output
    assert "reorder_level" in runner.invoke(args=["settings", "defaults"]).output

    bad = runner.invoke(args=["settings", "set", "low_stock_percentage", "500"])
    assert bad.exit_code != 0


def test_backup_create_fails_without_file_database(runner):
    result = runner.invoke(args=["backups", "create"])
    assert result.exit_code != 0
    assert "Error" in result.output
    assert "No backups found." in runner.invoke(args=["backups", "list"]).output
