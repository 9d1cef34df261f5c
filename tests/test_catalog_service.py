"""
Tests for catalog access and maintenance.
"""
from decimal import Decimal

import pytest

from errors import CategoryNotFoundError, ConflictError, ProductNotFoundError
from services.catalog_service import CatalogService, page_meta
from tests.conftest import CUSTOMER_ID, stock_of


@pytest.fixture
def catalog_service(db):
    return CatalogService(db)


class TestSqlCatalog:
    """Tests for the accessor used by cart and checkout."""

    def test_get_product(self, catalog, make_product):
        product = make_product(name="Lamp", price="19.90", stock=3)

        view = catalog.get_product(product.id)

        assert view.name == "Lamp"
        assert view.price == Decimal("19.90")
        assert view.stock == 3

    def test_get_missing_product(self, catalog):
        assert catalog.get_product(404) is None

    def test_decrement_stock(self, db, catalog, make_product):
        product = make_product(stock=5)

        assert catalog.decrement_stock(product.id, 5) is True
        db.commit()

        assert stock_of(db, product.id) == 0

    def test_decrement_beyond_stock_changes_nothing(self, db, catalog, make_product):
        product = make_product(stock=2)

        assert catalog.decrement_stock(product.id, 3) is False
        db.commit()

        assert stock_of(db, product.id) == 2

    def test_get_category(self, catalog, category):
        assert catalog.get_category(category.id).name == "Electronics"
        assert catalog.get_category(category.id + 1) is None


class TestCategories:
    def test_duplicate_name_ignores_case(self, catalog_service, category):
        with pytest.raises(ConflictError):
            catalog_service.create_category("electronics")

    def test_list_paged_newest_first(self, catalog_service, category):
        catalog_service.create_category("Books", "Paper and ink")
        catalog_service.create_category("Garden")

        first = catalog_service.list_categories(page=1, page_size=2)
        second = catalog_service.list_categories(page=2, page_size=2)

        assert [c["name"] for c in first["data"]] == ["Garden", "Books"]
        assert [c["name"] for c in second["data"]] == ["Electronics"]
        assert first["meta"] == {"total_items": 3, "page": 1, "page_size": 2, "total_pages": 2}

    def test_missing_category(self, catalog_service):
        with pytest.raises(CategoryNotFoundError):
            catalog_service.get_category(1)

    def test_update_category(self, catalog_service, category):
        updated = catalog_service.update_category(
            category.id, {"name": " Gadgets ", "description": "Small electronics"}
        )

        assert updated["name"] == "Gadgets"
        assert updated["description"] == "Small electronics"
        assert catalog_service.update_category(category.id, {"description": None})["description"] is None

    def test_update_category_keeps_own_name_in_other_case(self, catalog_service, category):
        assert catalog_service.update_category(category.id, {"name": "ELECTRONICS"})["name"] == "ELECTRONICS"

    def test_rename_to_existing_name_conflicts(self, catalog_service, category):
        books = catalog_service.create_category("Books")

        with pytest.raises(ConflictError):
            catalog_service.update_category(books["id"], {"name": "electronics"})

        assert catalog_service.get_category(books["id"])["name"] == "Books"

    def test_update_missing_category(self, catalog_service):
        with pytest.raises(CategoryNotFoundError):
            catalog_service.update_category(5, {"name": "Toys"})

    def test_delete_category(self, catalog_service, category):
        catalog_service.delete_category(category.id)

        with pytest.raises(CategoryNotFoundError):
            catalog_service.get_category(category.id)
        with pytest.raises(CategoryNotFoundError):
            catalog_service.delete_category(category.id)

    def test_delete_category_in_use_conflicts(self, catalog_service, category, make_product):
        make_product()

        with pytest.raises(ConflictError):
            catalog_service.delete_category(category.id)

        assert catalog_service.get_category(category.id)["name"] == "Electronics"

    def test_product_added_after_in_use_check_conflicts(self, catalog_service, category, make_product, monkeypatch):
        make_product()
        monkeypatch.setattr(catalog_service, "count_products_in", lambda category_id: 0)

        with pytest.raises(ConflictError):
            catalog_service.delete_category(category.id)

        assert catalog_service.get_category(category.id)["id"] == category.id


class TestProducts:
    """Tests for product browsing and admin maintenance."""

    def test_filters(self, catalog_service, category, make_product):
        make_product(name="Laptop", price="999.99")
        make_product(name="Mouse", price="29.99")
        make_product(name="Laptop Stand", price="49.99")
        other = catalog_service.create_category("Furniture")
        catalog_service.create_product("Desk", Decimal("199.99"), 5, other["id"])

        by_search = catalog_service.list_products(search="laptop")
        by_price = catalog_service.list_products(min_price=Decimal("30"), max_price=Decimal("200"))
        by_category = catalog_service.list_products(category_id=other["id"])

        assert sorted(p["name"] for p in by_search["data"]) == ["Laptop", "Laptop Stand"]
        assert sorted(p["name"] for p in by_price["data"]) == ["Desk", "Laptop Stand"]
        assert [p["name"] for p in by_category["data"]] == ["Desk"]

    def test_pagination(self, catalog_service, make_product):
        for i in range(5):
            make_product(name=f"Item {i}")

        result = catalog_service.list_products(page=3, page_size=2)

        assert [p["name"] for p in result["data"]] == ["Item 0"]
        assert result["meta"] == {"total_items": 5, "page": 3, "page_size": 2, "total_pages": 3}

    def test_page_meta_for_empty_result(self):
        assert page_meta(0, 1, 10)["total_pages"] == 1

    def test_create_product_in_missing_category(self, catalog_service):
        with pytest.raises(CategoryNotFoundError):
            catalog_service.create_product("Desk", Decimal("10.00"), 1, 42)

    def test_update_product(self, catalog_service, make_product):
        product = make_product(price="10.00")

        updated = catalog_service.update_product(product.id, {"price": Decimal("12.50"), "image_url": None})

        assert updated["price"] == Decimal("12.50")
        assert updated["image_url"] is None

    def test_update_missing_product(self, catalog_service):
        with pytest.raises(ProductNotFoundError):
            catalog_service.update_product(7, {"stock": 1})

    def test_delete_removes_cart_lines(self, catalog_service, cart_service, make_product):
        product = make_product()
        cart_service.add_line(CUSTOMER_ID, product.id, 1)

        catalog_service.delete_product(product.id)

        assert cart_service.get_cart(CUSTOMER_ID)["items"] == []
        with pytest.raises(ProductNotFoundError):
            catalog_service.get_product(product.id)

    def test_delete_ordered_product_conflicts(self, catalog_service, cart_service, order_service, make_product):
        product = make_product()
        cart_service.add_line(CUSTOMER_ID, product.id, 1)
        order_service.create_order(CUSTOMER_ID)

        with pytest.raises(ConflictError):
            catalog_service.delete_product(product.id)

        assert catalog_service.get_product(product.id)["id"] == product.id

    def test_order_placed_after_reference_check_conflicts(
        self, catalog_service, cart_service, order_service, make_product, monkeypatch
    ):
        product = make_product()
        cart_service.add_line(CUSTOMER_ID, product.id, 1)
        order_service.create_order(CUSTOMER_ID)
        monkeypatch.setattr(catalog_service, "count_order_references", lambda product_id: 0)

        with pytest.raises(ConflictError):
            catalog_service.delete_product(product.id)

        assert catalog_service.get_product(product.id)["id"] == product.id
