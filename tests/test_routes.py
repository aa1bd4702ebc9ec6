"""HTTP-level tests against the FastAPI app with the mock backend."""

from fastapi.testclient import TestClient


def add(client, item_id):
    return client.post("/api/cart/items", json={"item_id": item_id})


# =============================================================================
# CUSTOMER
# =============================================================================

def test_root_redirects_to_menu(client):
    response = client.get("/", follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"] == "/menu"


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["provider"] == "mock"


def test_menu_page_renders_and_sets_session_cookie(client, settings):
    response = client.get("/menu")

    assert response.status_code == 200
    assert "Classic Burger" in response.text
    assert settings.session_cookie_name in response.cookies


def test_menu_page_filters(client):
    response = client.get("/menu", params={"q": "naan"})
    assert "Garlic Naan" in response.text
    assert "Classic Burger" not in response.text


def test_menu_api_filters_by_category(client):
    response = client.get("/api/menu", params={"category": "Beverages"})

    body = response.json()
    assert {item["name"] for item in body["items"]} == {"Mango Lassi", "Masala Chai"}
    assert "Starters" in body["categories"]


def test_cart_api_add_increment_and_update(client, menu):
    burger = menu["Classic Burger"].id

    add(client, burger)
    body = add(client, burger).json()
    assert body["item_count"] == 2
    assert body["total"] == 300.0

    body = client.put(f"/api/cart/items/{burger}", json={"quantity": 0}).json()
    assert body["items"] == []


def test_add_unknown_item_returns_404(client):
    response = add(client, "nope")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Menu item not found or unavailable", "detail": None}


def test_order_api_places_order_and_clears_cart(client, menu, backend):
    add(client, menu["Classic Burger"].id)
    add(client, menu["Mango Lassi"].id)

    response = client.post("/api/orders", json={"table_number": "5", "customer_notes": "No ice"})

    assert response.status_code == 201
    order = response.json()["order"]
    assert order["table_number"] == 5
    assert order["total"] == 260.0
    assert order["status"] == "pending"
    assert client.get("/api/cart").json()["item_count"] == 0


def test_order_api_rejects_empty_cart_and_bad_table(client, menu):
    assert client.post("/api/orders", json={"table_number": 3}).json()["error"] == "Your cart is empty."

    add(client, menu["Masala Chai"].id)
    response = client.post("/api/orders", json={"table_number": "zero"})
    assert response.status_code == 400
    assert response.json()["error"] == "Please enter a valid table number."

    response = client.post("/api/orders", json={"table_number": "9" * 5000})
    assert response.status_code == 400
    assert response.json()["error"] == "Please enter a valid table number."
    assert client.get("/api/cart").json()["item_count"] == 1


def test_form_checkout_redirects_to_success(client, menu):
    client.post("/menu/cart/add", data={"item_id": menu["Paneer Tikka"].id})

    response = client.post("/menu/checkout", data={"table_number": "7"}, follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/menu/success"
    assert "Order Placed Successfully!" in client.get("/menu/success").text


def test_form_checkout_error_is_rendered_inline(client, menu):
    client.post("/menu/cart/add", data={"item_id": menu["Paneer Tikka"].id})

    response = client.post("/menu/checkout", data={"table_number": ""})

    assert response.status_code == 400
    assert "Please enter a valid table number." in response.text


def test_carts_are_per_browser(app, client, menu):
    add(client, menu["Classic Burger"].id)
    other = TestClient(app)
    assert other.get("/api/cart").json()["item_count"] == 0


# =============================================================================
# STAFF
# =============================================================================

def test_admin_pages_redirect_to_login(client):
    response = client.get("/admin/dashboard", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"].startswith("/admin/login")


def test_admin_api_requires_login(client):
    response = client.get("/admin/api/dashboard")
    assert response.status_code == 401
    assert response.json()["success"] is False


def test_bad_login_is_rendered_inline(client, settings):
    response = client.post("/admin/login", data={"email": settings.admin_email, "password": "wrong"})
    assert response.status_code == 400
    assert "Invalid login credentials" in response.text


def test_dashboard_status_flow(admin_client, menu):
    add(admin_client, menu["Classic Burger"].id)
    order_id = admin_client.post("/api/orders", json={"table_number": 2}).json()["order"]["id"]

    assert "Dashboard" in admin_client.get("/admin/dashboard").text
    snapshot = admin_client.get("/admin/api/dashboard").json()
    assert snapshot["stats"]["pending_orders"] == 1

    response = admin_client.post(f"/admin/api/orders/{order_id}/status", json={"status": "accepted"})
    body = response.json()
    assert response.status_code == 200
    assert body["outcome"] == "applied"
    assert body["dashboard"]["stats"]["in_progress_orders"] == 1

    response = admin_client.post(f"/admin/api/orders/{order_id}/status", json={"status": "pending"})
    assert response.status_code == 400
    assert response.json()["outcome"] == "rejected"

    response = admin_client.post(f"/admin/api/orders/{order_id}/status", json={"status": "completed"})
    assert response.json()["dashboard"]["orders"] == []


def test_status_update_validates_status_value(admin_client):
    response = admin_client.post("/admin/api/orders/abc/status", json={"status": "shipped"})
    assert response.status_code == 422


def test_reset_requires_confirmation(admin_client, menu):
    add(admin_client, menu["Classic Burger"].id)
    admin_client.post("/api/orders", json={"table_number": 2})

    assert admin_client.post("/admin/api/reset", json={}).status_code == 400

    response = admin_client.post("/admin/api/reset", json={"confirm": True})
    assert response.status_code == 200
    assert response.json()["deleted"] == 1
    assert admin_client.get("/admin/api/dashboard").json()["stats"]["total_orders"] == 0


def test_logout_ends_staff_session(admin_client):
    admin_client.post("/admin/logout")
    assert admin_client.get("/admin/api/dashboard").status_code == 401


def test_menu_management_create_and_validate(admin_client):
    response = admin_client.post(
        "/admin/menu",
        data={"name": "Idli", "description": "Steamed rice cakes", "category": "Breakfast", "price": "-3"},
    )
    assert response.status_code == 400
    assert "Price cannot be negative" in response.text

    response = admin_client.post(
        "/admin/menu",
        data={"name": "Idli", "description": "Steamed rice cakes", "category": "Breakfast", "price": "1e30"},
    )
    assert response.status_code == 400
    assert "Price is too large" in response.text

    response = admin_client.post(
        "/admin/menu",
        data={"name": "Idli", "description": "Steamed rice cakes", "category": "Breakfast", "price": "80", "available": "true"},
    )
    assert response.status_code == 200
    assert "Saved Idli" in response.text
    assert "Idli" in admin_client.get("/api/menu", params={"category": "Breakfast"}).text


def test_image_upload_endpoint(admin_client, settings):
    response = admin_client.post(
        "/admin/menu/image",
        files={"file": ("dosa.png", b"\x89PNG fake", "image/png")},
    )
    body = response.json()
    assert response.status_code == 200
    assert body["success"]

    served = admin_client.get(body["image_url"].replace("http://testserver", ""))
    assert served.status_code == 200
    assert served.content == b"\x89PNG fake"


def test_image_upload_rejects_non_images(admin_client):
    response = admin_client.post(
        "/admin/menu/image",
        files={"file": ("notes.txt", b"hello", "text/plain")},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Please select an image file"


def test_item_image_can_be_removed(admin_client, menu):
    chai = menu["Masala Chai"]
    form = {
        "name": chai.name,
        "description": chai.description,
        "category": chai.category,
        "price": str(chai.price),
        "available": "true",
    }
    admin_client.post(f"/admin/menu/{chai.id}", data={**form, "image_url": "http://testserver/chai.png"})

    page = admin_client.get(f"/admin/menu/{chai.id}/edit")
    assert 'id="remove-image" >Remove image' in page.text

    admin_client.post(f"/admin/menu/{chai.id}", data={**form, "image_url": ""})

    items = admin_client.get("/api/menu").json()["items"]
    assert next(item for item in items if item["id"] == chai.id)["image_url"] is None
    page = admin_client.get(f"/admin/menu/{chai.id}/edit")
    assert 'id="remove-image" hidden>Remove image' in page.text
