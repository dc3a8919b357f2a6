import models
from config import PUBLIC_BASE_URL


def test_create_and_list_halls(client, admin_headers):
    response = client.post("/halls", json={"name": "Terrace", "description": "Outside"}, headers=admin_headers)
    assert response.status_code == 200
    hall_id = response.json()["id"]

    halls = client.get("/halls").json()
    assert [h["id"] for h in halls] == [hall_id]

    renamed = client.put(f"/halls/{hall_id}", json={"name": "Garden"}, headers=admin_headers)
    assert renamed.json()["name"] == "Garden"


def test_hall_management_requires_manager_role(client, waiter_headers):
    response = client.post("/halls", json={"name": "Terrace"}, headers=waiter_headers)
    assert response.status_code == 403


def test_deleting_hall_detaches_its_tables(client, db_session, admin_headers, hall, tables):
    response = client.delete(f"/halls/{hall.id}", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["detached_tables"] == 3

    db_session.expire_all()
    assert db_session.query(models.Table).count() == 3
    assert all(t.hall_id is None for t in db_session.query(models.Table).all())


def test_create_table_generates_qr_code(client, admin_headers, hall):
    response = client.post("/tables", json={"table_number": "12", "hall_id": hall.id}, headers=admin_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "available"
    assert data["capacity"] == 4
    assert data["hall_name"] == "Main Hall"
    assert data["qr_code"].startswith("TABLE-12-")


def test_create_table_rejects_duplicate_number(client, admin_headers, tables):
    response = client.post("/tables", json={"table_number": "1"}, headers=admin_headers)
    assert response.status_code == 400


def test_create_table_rejects_unknown_hall(client, admin_headers):
    response = client.post("/tables", json={"table_number": "7", "hall_id": 999}, headers=admin_headers)
    assert response.status_code == 404


def test_create_table_validates_input(client, admin_headers):
    assert client.post("/tables", json={"table_number": "  "}, headers=admin_headers).status_code == 422
    assert client.post("/tables", json={"table_number": "8", "capacity": 0}, headers=admin_headers).status_code == 422
    assert client.post("/tables", json={"table_number": "8", "status": "broken"},
                       headers=admin_headers).status_code == 422


def test_available_tables_lists_only_available(client, db_session, tables):
    tables[0].status = "occupied"
    tables[1].status = "reserved"
    db_session.commit()

    available = client.get("/tables/available").json()
    assert [t["table_number"] for t in available] == ["3"]


def test_update_table_status(client, waiter_headers, tables):
    response = client.put(f"/tables/{tables[0].id}/status", json={"status": "reserved"}, headers=waiter_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "reserved"

    bad = client.put(f"/tables/{tables[0].id}/status", json={"status": "dirty"}, headers=waiter_headers)
    assert bad.status_code == 422


def test_table_qr_points_at_customer_menu(client, tables):
    response = client.get(f"/tables/{tables[1].id}/qr")
    assert response.status_code == 200
    assert response.json()["url"] == f"{PUBLIC_BASE_URL}/customer-menu/2"


def test_unknown_table_is_404(client):
    assert client.get("/tables/999").status_code == 404


def test_deleting_table_keeps_its_orders(client, db_session, admin_headers, tables):
    order = models.Order(table_id=tables[0].id, status="completed", total_amount=10)
    db_session.add(order)
    db_session.commit()

    response = client.delete(f"/tables/{tables[0].id}", headers=admin_headers)
    assert response.status_code == 200

    db_session.expire_all()
    kept = db_session.query(models.Order).filter(models.Order.id == order.id).first()
    assert kept.table_id == tables[0].id
    assert kept.table is None


def test_create_menu_item_generates_barcode(client, admin_headers):
    response = client.post("/menu-items", json={
        "name": "Soup",
        "price": 6.5,
        "cost": 2.0,
        "category": "Starters",
        "stock_quantity": 20,
    }, headers=admin_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["barcode"].startswith("ITEM-")
    assert data["is_available"] is True


def test_menu_item_price_must_not_be_negative(client, admin_headers):
    response = client.post("/menu-items", json={"name": "Soup", "price": -1}, headers=admin_headers)
    assert response.status_code == 422


def test_update_menu_item_is_partial(client, admin_headers, menu_items):
    burger, _ = menu_items
    response = client.put(f"/menu-items/{burger.id}", json={"price": 12}, headers=admin_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["price"] == 12
    assert data["cost"] == 4.0
    assert data["name"] == "Burger"


def test_available_menu_items_need_stock(client, db_session, menu_items):
    burger, cola = menu_items
    cola.stock_quantity = 0
    db_session.commit()

    names = [i["name"] for i in client.get("/menu-items/available").json()]
    assert names == ["Burger"]


def test_low_stock_menu_items(client, menu_items):
    names = [i["name"] for i in client.get("/menu-items/low-stock").json()]
    assert names == ["Cola"]


def test_featured_menu_items_skip_unavailable(client, db_session, menu_items):
    burger, _ = menu_items
    burger.is_available = False
    db_session.commit()

    names = [i["name"] for i in client.get("/menu-items/featured").json()]
    assert names == ["Cola"]


def test_delete_menu_item(client, admin_headers, menu_items):
    burger, _ = menu_items
    assert client.delete(f"/menu-items/{burger.id}", headers=admin_headers).status_code == 200
    assert client.get(f"/menu-items/{burger.id}").status_code == 404
