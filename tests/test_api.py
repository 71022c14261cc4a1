import json
from decimal import Decimal

import main
from tests.conftest import FakeUploader
from database import USERS_KEY
from stores import ArchiveStore, CatalogStore

FIVE_MB = 5 * 1024 * 1024


def create_product(client, name="Bolt", unit_price="0.50", **extra):
    response = client.post("/products", json={"name": name, "unit_price": unit_price, **extra})
    assert response.status_code == 200, response.text
    return response.json()


class TestAuthGate:
    def test_routes_require_login(self, client):
        assert client.get("/products").status_code == 401
        assert client.get("/health").status_code == 200

    def test_login_logout(self, client):
        assert client.post("/auth/login", json={"username": "admin3", "password": "nope"}).status_code == 401
        response = client.post("/auth/login", json={"username": "admin3", "password": "admin3"})
        assert response.json() == {"authenticated": True, "username": "admin3"}
        assert client.get("/auth/session").json()["username"] == "admin3"
        client.post("/auth/logout")
        assert client.get("/categories").status_code == 401

    def test_stored_users(self, client, storage):
        storage.set(USERS_KEY, json.dumps([{"user": "maria", "pass": "s3cret"}]))
        assert client.post("/auth/login", json={"username": "admin1", "password": "admin1"}).status_code == 401
        assert client.post("/auth/login", json={"username": "maria", "password": "s3cret"}).status_code == 200


class TestProducts:
    def test_crud(self, auth_client):
        bolt = create_product(auth_client, unit_type="box", category="Hardware")
        assert bolt["unit_type"] == "box"
        assert Decimal(bolt["unit_price"]) == Decimal("0.50")

        response = auth_client.patch(f"/products/{bolt['id']}", json={"name": "Hex bolt"})
        assert response.status_code == 200
        assert response.json()["name"] == "Hex bolt"
        assert response.json()["category"] == "Hardware"
        assert response.json()["created_at"] == bolt["created_at"]

        assert auth_client.get(f"/products/{bolt['id']}").json()["name"] == "Hex bolt"
        assert auth_client.delete(f"/products/{bolt['id']}").status_code == 200
        assert auth_client.get(f"/products/{bolt['id']}").status_code == 404
        assert auth_client.patch(f"/products/{bolt['id']}", json={"name": "x"}).status_code == 404

    def test_validation(self, auth_client):
        assert auth_client.post("/products", json={"name": "  ", "unit_price": "1"}).status_code == 422
        assert auth_client.post("/products", json={"name": "Bolt", "unit_price": "-1"}).status_code == 422
        assert auth_client.post("/products", json={"name": "Bolt", "unit_price": "abc"}).status_code == 422
        assert auth_client.post("/products", json={"name": "Bolt", "unit_price": "1", "unit_type": "crate"}).status_code == 422
        bolt = create_product(auth_client)
        assert auth_client.patch(f"/products/{bolt['id']}", json={"name": None}).status_code == 422

    def test_search(self, auth_client):
        create_product(auth_client, "Hex Bolt", category="Hardware")
        create_product(auth_client, "Wall paint", category="Finishes")
        assert [p["name"] for p in auth_client.get("/products", params={"q": "bolt"}).json()] == ["Hex Bolt"]
        assert len(auth_client.get("/products", params={"category": "Finishes"}).json()) == 1

    def test_image_upload(self, auth_client, uploader):
        bolt = create_product(auth_client)
        response = auth_client.post(
            f"/products/{bolt['id']}/image",
            files={"file": ("bolt.png", b"\x89PNG fake", "image/png")},
        )
        assert response.status_code == 200
        assert response.json()["image_url"].startswith("https://cdn.example.com/")

        auth_client.delete(f"/products/{bolt['id']}")
        assert uploader.deleted == [response.json()["image_url"]]

    def test_image_upload_rejections(self, auth_client, uploader):
        bolt = create_product(auth_client)
        url = f"/products/{bolt['id']}/image"
        assert auth_client.post(url, files={"file": ("a.txt", b"hello", "text/plain")}).status_code == 400
        big = b"0" * (FIVE_MB + 1)
        assert auth_client.post(url, files={"file": ("a.png", big, "image/png")}).status_code == 413
        assert uploader.uploaded == []
        assert auth_client.get(f"/products/{bolt['id']}").json()["image_url"] is None

    def test_upload_failure_changes_nothing(self, auth_client):
        main.app.dependency_overrides[main.get_uploader] = lambda: FakeUploader(fail=True)
        bolt = create_product(auth_client)
        response = auth_client.post(
            f"/products/{bolt['id']}/image", files={"file": ("a.png", b"x", "image/png")}
        )
        assert response.status_code == 502
        assert auth_client.get(f"/products/{bolt['id']}").json()["image_url"] is None

    def test_upload_without_storage_configured(self, auth_client):
        main.app.dependency_overrides[main.get_uploader] = lambda: None
        response = auth_client.post("/company/logo", files={"file": ("a.png", b"x", "image/png")})
        assert response.status_code == 503


class TestCategories:
    def test_add_duplicate(self, auth_client):
        assert auth_client.post("/categories", json={"name": " Tools "}).json() == {"name": "Tools"}
        assert auth_client.post("/categories", json={"name": "Tools"}).status_code == 400
        assert auth_client.post("/categories", json={"name": "  "}).status_code == 422
        assert auth_client.get("/categories").json() == ["Tools"]

    def test_delete_clears_products(self, auth_client):
        auth_client.post("/categories", json={"name": "Tools"})
        for name in ("Hammer", "Saw"):
            create_product(auth_client, name, category="Tools")
        create_product(auth_client, "Primer")

        response = auth_client.delete("/categories/Tools")
        assert response.json() == {"removed": "Tools", "products_cleared": 2}
        products = auth_client.get("/products").json()
        assert len(products) == 3
        assert all(p["category"] is None for p in products)
        assert auth_client.get("/categories").json() == []

    def test_delete_label_with_slash(self, auth_client):
        auth_client.post("/categories", json={"name": "Nuts/Bolts"})
        create_product(auth_client, category="Nuts/Bolts")

        response = auth_client.delete("/categories/Nuts/Bolts")
        assert response.status_code == 200
        assert response.json() == {"removed": "Nuts/Bolts", "products_cleared": 1}
        assert auth_client.get("/categories").json() == []
        assert auth_client.get("/products").json()[0]["category"] is None


class TestSettings:
    def test_company_partial_update(self, auth_client):
        response = auth_client.patch("/company", json={"name": "Bolts & Co"})
        assert response.json()["name"] == "Bolts & Co"
        assert response.json()["email"] == "contact@yourcompany.com"

    def test_company_logo(self, auth_client):
        response = auth_client.post("/company/logo", files={"file": ("logo.jpg", b"x" * (FIVE_MB + 10), "image/jpeg")})
        assert response.status_code == 200
        assert response.json()["logo"].startswith("https://cdn.example.com/")

    def test_currency(self, auth_client):
        assert auth_client.get("/settings/currency").json() == {"code": "USD"}
        assert auth_client.put("/settings/currency", json={"code": "EGP"}).json() == {"code": "EGP"}
        assert auth_client.put("/settings/currency", json={"code": "BTC"}).status_code == 400
        assert len(auth_client.get("/currencies").json()) == 13

    def test_unit_types(self, auth_client):
        units = auth_client.get("/unit-types").json()
        assert {"value": "sqm", "label": "Square Meter"} in units
        assert len(units) == 9


class TestQuotationFlow:
    def test_bolt_scenario(self, auth_client, storage):
        bolt = create_product(auth_client)
        items = []
        for _ in range(3):
            response = auth_client.post("/quotations/items/add", json={"items": items, "product_ids": [bolt["id"]]})
            items = response.json()
        assert len(items) == 1
        assert items[0]["quantity"] == 3

        totals = auth_client.post("/quotations/pricing", json={"items": items, "discount": 0}).json()
        assert Decimal(totals["subtotal"]) == Decimal("1.50")

        totals = auth_client.post("/quotations/pricing", json={"items": items, "discount": 10}).json()
        assert Decimal(totals["discount_amount"]) == Decimal("0.15")
        assert Decimal(totals["total"]) == Decimal("1.35")

        saved = auth_client.post(
            "/quotations", json={"customer_name": "ACME", "items": items, "discount": 10}
        ).json()
        assert Decimal(saved["total"]) == Decimal("1.35")
        assert saved["currency"] == "USD"
        assert saved["company_info"]["name"] == "Your Company Name"

        auth_client.delete(f"/products/{bolt['id']}")
        stored = auth_client.get(f"/quotations/{saved['id']}").json()
        assert stored["items"][0]["product"]["name"] == "Bolt"
        assert Decimal(stored["total"]) == Decimal("1.35")
        assert len(ArchiveStore(storage).list()) == 1
        assert CatalogStore(storage).list() == []

    def test_pricing_clamps_discount(self, auth_client):
        bolt = create_product(auth_client, unit_price="10")
        items = [{"product": bolt, "quantity": 2}]
        totals = auth_client.post("/quotations/pricing", json={"items": items, "discount": 250}).json()
        assert Decimal(totals["total"]) == 0
        totals = auth_client.post("/quotations/pricing", json={"items": items, "discount": -5}).json()
        assert Decimal(totals["total"]) == Decimal(20)

    def test_add_unknown_product(self, auth_client):
        response = auth_client.post("/quotations/items/add", json={"product_ids": ["missing"]})
        assert response.status_code == 400

    def test_line_editing(self, auth_client):
        bolt = create_product(auth_client)
        nut = create_product(auth_client, "Nut", "0.10")
        items = auth_client.post(
            "/quotations/items/add", json={"product_ids": [bolt["id"], nut["id"]]}
        ).json()

        items = auth_client.post(
            "/quotations/items/adjust", json={"items": items, "product_id": bolt["id"], "delta": 4}
        ).json()
        assert [i["quantity"] for i in items] == [5, 1]

        items = auth_client.post(
            "/quotations/items/adjust", json={"items": items, "product_id": nut["id"], "delta": -3}
        ).json()
        assert [i["quantity"] for i in items] == [5, 1]

        items = auth_client.post(
            "/quotations/items/quantity", json={"items": items, "product_id": nut["id"], "quantity": 12}
        ).json()
        assert [i["quantity"] for i in items] == [5, 12]

        unchanged = auth_client.post(
            "/quotations/items/quantity", json={"items": items, "product_id": nut["id"], "quantity": 0}
        ).json()
        assert [i["quantity"] for i in unchanged] == [5, 12]

        items = auth_client.post(
            "/quotations/items/remove", json={"items": items, "product_id": bolt["id"]}
        ).json()
        assert [i["product"]["name"] for i in items] == ["Nut"]

    def test_save_takes_prices_from_catalog(self, auth_client):
        bolt = create_product(auth_client)
        forged = {**bolt, "unit_price": "0.01", "name": "Cheap bolt"}
        saved = auth_client.post(
            "/quotations", json={"customer_name": "ACME", "items": [{"product": forged, "quantity": 10}]}
        ).json()
        assert saved["items"][0]["product"]["name"] == "Bolt"
        assert Decimal(saved["subtotal"]) == Decimal("5.00")

        unknown = {**bolt, "id": "0" * 24}
        response = auth_client.post(
            "/quotations", json={"customer_name": "ACME", "items": [{"product": unknown, "quantity": 1}]}
        )
        assert response.status_code == 400
        assert auth_client.post(
            "/quotations/export", json={"customer_name": "ACME", "items": [{"product": unknown, "quantity": 1}]}
        ).status_code == 400

    def test_archive_paging(self, auth_client):
        bolt = create_product(auth_client)
        items = [{"product": bolt, "quantity": 1}]
        for name in ("First", "Second", "Third"):
            auth_client.post("/quotations", json={"customer_name": name, "items": items})

        page = auth_client.get("/quotations", params={"limit": 1, "offset": 1}).json()
        assert [q["customer_name"] for q in page] == ["Second"]
        assert auth_client.get("/quotations", params={"limit": -1}).status_code == 422
        assert auth_client.get("/quotations", params={"offset": -2}).status_code == 422

    def test_rejects_quantity_below_one(self, auth_client):
        bolt = create_product(auth_client)
        response = auth_client.post("/quotations/pricing", json={"items": [{"product": bolt, "quantity": 0}]})
        assert response.status_code == 422

    def test_save_requires_customer_and_items(self, auth_client):
        bolt = create_product(auth_client)
        items = [{"product": bolt, "quantity": 1}]
        assert auth_client.post("/quotations", json={"customer_name": " ", "items": items}).status_code == 400
        assert auth_client.post("/quotations", json={"customer_name": "ACME", "items": []}).status_code == 400

    def test_archive_newest_first_and_delete(self, auth_client):
        bolt = create_product(auth_client)
        items = [{"product": bolt, "quantity": 1}]
        first = auth_client.post("/quotations", json={"customer_name": "First", "items": items}).json()
        second = auth_client.post("/quotations", json={"customer_name": "Second", "items": items}).json()
        assert [q["id"] for q in auth_client.get("/quotations").json()] == [second["id"], first["id"]]

        assert auth_client.delete(f"/quotations/{first['id']}").status_code == 200
        assert auth_client.delete(f"/quotations/{first['id']}").status_code == 404
        assert [q["id"] for q in auth_client.get("/quotations").json()] == [second["id"]]

    def test_pdf_exports(self, auth_client):
        bolt = create_product(auth_client)
        payload = {"customer_name": "John Smith", "items": [{"product": bolt, "quantity": 2}], "discount": 5}

        response = auth_client.post("/quotations/export", json=payload)
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert "quotation-john-smith-" in response.headers["content-disposition"]
        assert response.content.startswith(b"%PDF")

        saved = auth_client.post("/quotations", json=payload).json()
        response = auth_client.get(f"/quotations/{saved['id']}/pdf")
        assert response.status_code == 200
        assert response.content.startswith(b"%PDF")


class TestTemplates:
    def test_load_drops_deleted_products(self, auth_client):
        bolt = create_product(auth_client)
        nut = create_product(auth_client, "Nut", "0.10")
        washer = create_product(auth_client, "Washer", "0.05")
        template = auth_client.post("/templates", json={
            "name": "Fixings",
            "discount": 15,
            "items": [
                {"product_id": bolt["id"], "quantity": 4},
                {"product_id": nut["id"], "quantity": 8},
                {"product_id": washer["id"], "quantity": 16},
            ],
        }).json()

        auth_client.delete(f"/products/{nut['id']}")
        loaded = auth_client.get(f"/templates/{template['id']}/items").json()
        assert Decimal(loaded["discount"]) == Decimal(15)
        assert [(i["product"]["name"], i["quantity"]) for i in loaded["items"]] == [("Bolt", 4), ("Washer", 16)]

    def test_crud(self, auth_client):
        template = auth_client.post("/templates", json={"name": "Empty"}).json()
        assert auth_client.get(f"/templates/{template['id']}").json()["name"] == "Empty"
        assert len(auth_client.get("/templates").json()) == 1
        assert auth_client.delete(f"/templates/{template['id']}").status_code == 200
        assert auth_client.get(f"/templates/{template['id']}").status_code == 404
        assert auth_client.post("/templates", json={"name": "Bad", "discount": 101}).status_code == 422
