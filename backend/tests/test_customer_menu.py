import models


def _items(burger, cola):
    return [
        {"menu_item_id": burger.id, "quantity": 1, "unit_price": 10.0},
        {"menu_item_id": cola.id, "quantity": 2, "unit_price": 2.5},
    ]


def test_customer_menu_for_table(client, db_session, tables, menu_items):
    tables[2].status = "occupied"
    db_session.commit()

    response = client.get("/customer-menu/2")
    assert response.status_code == 200
    data = response.json()
    assert data["table_number"] == "2"
    assert data["table_id"] == tables[1].id
    assert [t["table_number"] for t in data["available_tables"]] == ["1", "2"]
    assert [i["name"] for i in data["items"]] == ["Burger", "Cola"]
    assert sorted(data["categories"]) == ["Drinks", "Mains"]


def test_customer_menu_for_unknown_table_still_lists_menu(client, tables, menu_items):
    data = client.get("/customer-menu/42").json()
    assert data["table_number"] == "42"
    assert data["table_id"] is None
    assert len(data["items"]) == 2


def test_customer_order_needs_no_login(client, db_session, tables, menu_items):
    response = client.post("/customer-menu/orders", json={"table_number": "1", "items": _items(*menu_items)})

    assert response.status_code == 200
    data = response.json()
    assert data["total_amount"] == 15.0
    assert data["status"] == "pending"
    assert data["order_reference"] == str(data["order_id"])[:8]

    order = db_session.query(models.Order).filter(models.Order.id == data["order_id"]).first()
    assert order.waiter_id is None
    assert order.table_id == tables[0].id
    assert len(order.items) == 2

    db_session.refresh(tables[0])
    assert tables[0].status == "occupied"


def test_customer_order_ignores_submitted_subtotals(client, db_session, tables, menu_items):
    burger, _ = menu_items
    response = client.post("/customer-menu/orders", json={
        "table_number": "1",
        "items": [{"menu_item_id": burger.id, "quantity": 2, "unit_price": 10.0, "subtotal": 1.0}],
    })
    assert response.json()["total_amount"] == 20.0

    item = db_session.query(models.OrderItem).filter(
        models.OrderItem.order_id == response.json()["order_id"]
    ).one()
    assert item.subtotal == 20.0


def test_customer_order_on_occupied_table_conflicts(client, db_session, tables, menu_items):
    tables[0].status = "occupied"
    db_session.commit()

    response = client.post("/customer-menu/orders", json={"table_number": "1", "items": _items(*menu_items)})
    assert response.status_code == 409
    assert db_session.query(models.Order).count() == 0


def test_customer_order_on_unknown_table_conflicts(client, tables, menu_items):
    response = client.post("/customer-menu/orders", json={"table_number": "99", "items": _items(*menu_items)})
    assert response.status_code == 409


def test_customer_order_needs_items_and_table(client, tables, menu_items):
    assert client.post("/customer-menu/orders", json={"table_number": "1", "items": []}).status_code == 400
    assert client.post("/customer-menu/orders", json={"items": _items(*menu_items)}).status_code == 400


def test_second_customer_order_for_same_table_conflicts(client, tables, menu_items):
    first = client.post("/customer-menu/orders", json={"table_number": "3", "items": _items(*menu_items)})
    second = client.post("/customer-menu/orders", json={"table_number": "3", "items": _items(*menu_items)})
    assert first.status_code == 200
    assert second.status_code == 409
