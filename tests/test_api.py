"""
HTTP-level tests: routing, auth, wire format and error envelopes.
"""
from tests.conftest import ADMIN_HEADERS, CUSTOMER_HEADERS, OTHER_CUSTOMER_HEADERS, stock_of


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestAuth:
    """Authentication and authorization failures."""

    def test_missing_token(self, client):
        response = client.get("/cart")

        assert response.status_code == 401
        assert response.json()["kind"] == "Unauthorized"

    def test_unknown_token(self, client):
        response = client.get("/cart", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401

    def test_customer_cannot_create_products(self, client, category):
        response = client.post(
            "/products",
            json={"name": "Lamp", "price": 10, "stock": 1, "categoryId": category.id},
            headers=CUSTOMER_HEADERS,
        )

        assert response.status_code == 403
        assert response.json()["kind"] == "Forbidden"

    def test_customer_cannot_list_all_orders(self, client):
        assert client.get("/orders/all", headers=CUSTOMER_HEADERS).status_code == 403


class TestCartRoutes:
    """Tests for /cart."""

    def test_add_to_cart(self, client, make_product):
        product = make_product(name="Lamp", price="10.00", stock=5)

        response = client.post(
            "/cart", json={"productId": product.id, "quantity": 2}, headers=CUSTOMER_HEADERS
        )

        assert response.status_code == 201
        body = response.json()
        assert body["productId"] == product.id
        assert body["quantity"] == 2
        assert body["priceAtAdd"] == 10.0
        assert body["subtotal"] == 20.0
        assert body["product"] == {"id": product.id, "name": "Lamp", "imageUrl": None}

    def test_get_cart(self, client, make_product):
        a = make_product(name="A", price="10.00")
        b = make_product(name="B", price="5.00")
        client.post("/cart", json={"productId": a.id, "quantity": 2}, headers=CUSTOMER_HEADERS)
        client.post("/cart", json={"productId": b.id, "quantity": 3}, headers=CUSTOMER_HEADERS)

        body = client.get("/cart", headers=CUSTOMER_HEADERS).json()

        assert body["total"] == 35.0
        assert body["itemCount"] == 5
        assert [item["product"]["name"] for item in body["items"]] == ["A", "B"]

    def test_insufficient_stock(self, client, make_product):
        product = make_product(stock=1)

        response = client.post(
            "/cart", json={"productId": product.id, "quantity": 2}, headers=CUSTOMER_HEADERS
        )

        assert response.status_code == 400
        assert response.json()["kind"] == "InsufficientStock"
        assert response.json()["details"] == {"productId": product.id}

    def test_unknown_product(self, client):
        response = client.post("/cart", json={"productId": 999, "quantity": 1}, headers=CUSTOMER_HEADERS)

        assert response.status_code == 404
        assert response.json()["kind"] == "ProductNotFound"

    def test_zero_quantity(self, client, make_product):
        product = make_product()

        response = client.post(
            "/cart", json={"productId": product.id, "quantity": 0}, headers=CUSTOMER_HEADERS
        )

        assert response.status_code == 400
        assert response.json()["kind"] == "ValidationError"

    def test_update_foreign_line(self, client, make_product):
        product = make_product()
        line = client.post(
            "/cart", json={"productId": product.id, "quantity": 1}, headers=CUSTOMER_HEADERS
        ).json()

        response = client.patch(f"/cart/{line['id']}", json={"quantity": 2}, headers=OTHER_CUSTOMER_HEADERS)

        assert response.status_code == 404
        assert response.json() == {"kind": "NotFound", "message": "Cart item not found"}

    def test_update_line(self, client, make_product):
        product = make_product(price="4.50")
        line = client.post(
            "/cart", json={"productId": product.id, "quantity": 1}, headers=CUSTOMER_HEADERS
        ).json()

        response = client.patch(f"/cart/{line['id']}", json={"quantity": 4}, headers=CUSTOMER_HEADERS)

        assert response.status_code == 200
        assert response.json()["subtotal"] == 18.0

    def test_remove_line_twice(self, client, make_product):
        product = make_product()
        line = client.post(
            "/cart", json={"productId": product.id, "quantity": 1}, headers=CUSTOMER_HEADERS
        ).json()

        assert client.delete(f"/cart/{line['id']}", headers=CUSTOMER_HEADERS).status_code == 204
        assert client.delete(f"/cart/{line['id']}", headers=CUSTOMER_HEADERS).status_code == 404

    def test_clear_empty_cart(self, client):
        assert client.delete("/cart", headers=CUSTOMER_HEADERS).status_code == 204


class TestOrderRoutes:
    """Tests for /orders."""

    def test_checkout(self, client, db, make_product):
        product = make_product(name="Lamp", price="99.99", stock=3)
        client.post("/cart", json={"productId": product.id, "quantity": 2}, headers=CUSTOMER_HEADERS)

        response = client.post("/orders", headers=CUSTOMER_HEADERS)

        assert response.status_code == 201
        body = response.json()
        assert body["userId"] == "user-123"
        assert body["status"] == "pending"
        assert body["total"] == 199.98
        assert body["items"][0]["priceAtTime"] == 99.99
        assert body["items"][0]["productId"] == product.id
        assert "createdAt" in body
        assert stock_of(db, product.id) == 1
        assert client.get("/cart", headers=CUSTOMER_HEADERS).json()["items"] == []

    def test_empty_cart(self, client):
        response = client.post("/orders", headers=CUSTOMER_HEADERS)

        assert response.status_code == 400
        assert response.json() == {"kind": "EmptyCart", "message": "Cart is empty"}

    def test_order_price_survives_catalog_edit(self, client, make_product):
        product = make_product(price="99.99", stock=3)
        client.post("/cart", json={"productId": product.id, "quantity": 1}, headers=CUSTOMER_HEADERS)
        order = client.post("/orders", headers=CUSTOMER_HEADERS).json()

        patched = client.patch(f"/products/{product.id}", json={"price": 120}, headers=ADMIN_HEADERS)
        fetched = client.get(f"/orders/{order['id']}", headers=CUSTOMER_HEADERS)

        assert patched.json()["price"] == 120.0
        assert fetched.json()["items"][0]["priceAtTime"] == 99.99

    def test_foreign_order(self, client, make_product):
        product = make_product()
        client.post("/cart", json={"productId": product.id, "quantity": 1}, headers=CUSTOMER_HEADERS)
        order = client.post("/orders", headers=CUSTOMER_HEADERS).json()

        response = client.get(f"/orders/{order['id']}", headers=OTHER_CUSTOMER_HEADERS)

        assert response.status_code == 404
        assert response.json() == {"kind": "NotFound", "message": "Order not found"}

    def test_list_orders(self, client, make_product):
        product = make_product(stock=5)
        for _ in range(2):
            client.post("/cart", json={"productId": product.id, "quantity": 1}, headers=CUSTOMER_HEADERS)
            client.post("/orders", headers=CUSTOMER_HEADERS)

        body = client.get("/orders", params={"pageSize": 1}, headers=CUSTOMER_HEADERS).json()
        everyone = client.get("/orders/all", headers=ADMIN_HEADERS).json()

        assert len(body["data"]) == 1
        assert body["meta"] == {"totalItems": 2, "page": 1, "pageSize": 1, "totalPages": 2}
        assert everyone["meta"]["totalItems"] == 2


class TestProductRoutes:
    """Tests for /products and /categories."""

    def test_list_products(self, client, make_product):
        make_product(name="Laptop", price="999.99")
        make_product(name="Mouse", price="29.99")

        body = client.get("/products", params={"maxPrice": 100}).json()

        assert [p["name"] for p in body["data"]] == ["Mouse"]
        assert body["data"][0]["categoryId"] is not None
        assert body["meta"]["totalItems"] == 1

    def test_get_missing_product(self, client):
        response = client.get("/products/12345")

        assert response.status_code == 404
        assert response.json()["kind"] == "ProductNotFound"

    def test_admin_creates_category_and_product(self, client):
        category = client.post("/categories", json={"name": "Books"}, headers=ADMIN_HEADERS)
        duplicate = client.post("/categories", json={"name": "books"}, headers=ADMIN_HEADERS)
        product = client.post(
            "/products",
            json={"name": "Novel", "price": 12.5, "stock": 4, "categoryId": category.json()["id"]},
            headers=ADMIN_HEADERS,
        )

        assert category.status_code == 201
        assert duplicate.status_code == 409
        assert product.status_code == 201
        assert product.json()["category"] == {"id": category.json()["id"], "name": "Books"}

    def test_delete_ordered_product(self, client, make_product):
        product = make_product()
        client.post("/cart", json={"productId": product.id, "quantity": 1}, headers=CUSTOMER_HEADERS)
        client.post("/orders", headers=CUSTOMER_HEADERS)

        response = client.delete(f"/products/{product.id}", headers=ADMIN_HEADERS)

        assert response.status_code == 409
        assert response.json()["kind"] == "Conflict"


class TestCategoryRoutes:
    """Tests for /categories."""

    def test_list_categories_paged(self, client, category):
        client.post("/categories", json={"name": "Books"}, headers=ADMIN_HEADERS)

        body = client.get("/categories", params={"pageSize": 1}).json()

        assert [c["name"] for c in body["data"]] == ["Books"]
        assert body["meta"] == {"totalItems": 2, "page": 1, "pageSize": 1, "totalPages": 2}
        assert "updatedAt" in body["data"][0]

    def test_update_category(self, client, category):
        response = client.put(
            f"/categories/{category.id}", json={"name": "Gadgets", "description": None}, headers=ADMIN_HEADERS
        )

        assert response.status_code == 200
        assert response.json()["name"] == "Gadgets"
        assert response.json()["description"] is None

    def test_rename_to_existing_name(self, client, category):
        books = client.post("/categories", json={"name": "Books"}, headers=ADMIN_HEADERS).json()

        response = client.put(f"/categories/{books['id']}", json={"name": "ELECTRONICS"}, headers=ADMIN_HEADERS)

        assert response.status_code == 409
        assert response.json()["kind"] == "Conflict"

    def test_customer_cannot_update_category(self, client, category):
        response = client.put(f"/categories/{category.id}", json={"name": "X"}, headers=CUSTOMER_HEADERS)

        assert response.status_code == 403

    def test_delete_category(self, client, category):
        assert client.delete(f"/categories/{category.id}", headers=ADMIN_HEADERS).status_code == 204

        response = client.delete(f"/categories/{category.id}", headers=ADMIN_HEADERS)
        assert response.status_code == 404
        assert response.json()["kind"] == "CategoryNotFound"

    def test_delete_category_in_use(self, client, category, make_product):
        make_product()

        response = client.delete(f"/categories/{category.id}", headers=ADMIN_HEADERS)

        assert response.status_code == 409
        assert response.json()["details"]["categoryId"] == category.id
