# tests/test_init_db.py
from redeem_guard import init_db


def test_init_db_creates_tables(mocker) -> None:
    create = mocker.patch.object(init_db, "create_tables")
    drop = mocker.patch.object(init_db, "drop_tables")

    init_db.init_db()

    create.assert_called_once_with()
    drop.assert_not_called()


def test_init_db_reset_drops_first(mocker) -> None:
    calls = []
    mocker.patch.object(init_db, "drop_tables", side_effect=lambda: calls.append("drop"))
    mocker.patch.object(init_db, "create_tables", side_effect=lambda: calls.append("create"))

    init_db.init_db(reset=True)

    assert calls == ["drop", "create"]
