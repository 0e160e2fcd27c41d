# Overview: HTTP-level tests for the API blueprints (status codes and JSON shapes).

"""
API Route Tests

Covers the wiring between blueprints and services:
1. Actor header enforcement on mutating routes
2. WorkflowError -> JSON {error, code, details} with the mapped status
3. End-to-end quote -> sale -> payments flow over HTTP
"""

from datetime import timedelta

from clinicpos.time_utils import today

from conftest import actor_headers, q1_payload, APPROVER_ID


class TestHealth:

    def test_health_ok(self, client, db_session):
        response = client.get("/api/health")

        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "healthy"
        assert body["timestamp"].endswith("Z")


class TestActorHeader:

    def test_missing_header_is_401(self, client, db_session, patient, product):
        response = client.post("/api/quotes", json=q1_payload(patient.id, product.id))

        assert response.status_code == 401
        assert "X-User-Id" in response.get_json()["error"]

    def test_non_numeric_header_is_401(self, client, db_session, patient, product):
        response = client.post("/api/quotes", json=q1_payload(patient.id, product.id), headers={"X-User-Id": "alice"})
        assert response.status_code == 401

    def test_reads_do_not_need_actor(self, client, db_session):
        assert client.get("/api/quotes").status_code == 200


class TestQuoteRoutes:

    def test_create_and_convert(self, client, db_session, headers, patient, product):
        created = client.post("/api/quotes", json=q1_payload(patient.id, product.id), headers=headers)
        assert created.status_code == 201
        quote = created.get_json()
        assert quote["total"] == "109.00"
        assert len(quote["items"]) == 1

        converted = client.post(f"/api/quotes/{quote['id']}/convert", headers=headers)
        assert converted.status_code == 201
        sale = converted.get_json()
        assert sale["total"] == "109.00"
        assert sale["amount_paid"] == "0.00"
        assert sale["balance"] == "109.00"
        assert sale["payment_status"] == "pending"

        again = client.post(f"/api/quotes/{quote['id']}/convert", headers=headers)
        assert again.status_code == 409
        assert again.get_json()["code"] == "ALREADY_CONVERTED"

        listed = client.get("/api/quotes", query_string={"status": "converted"}).get_json()
        assert listed["total"] == 1

    def test_convert_to_order(self, client, db_session, headers, patient, product, laboratory):
        quote = client.post("/api/quotes", json=q1_payload(patient.id, product.id), headers=headers).get_json()

        response = client.post(
            f"/api/quotes/{quote['id']}/order", json={"laboratory_id": laboratory.id}, headers=headers
        )

        assert response.status_code == 201
        order = response.get_json()
        assert order["quote_id"] == quote["id"]
        assert order["laboratory_id"] == laboratory.id
        assert order["total"] == "109.00"
        assert len(order["items"]) == 1

        to_sale = client.post(f"/api/quotes/{quote['id']}/convert", headers=headers)
        assert to_sale.status_code == 409
        assert to_sale.get_json()["code"] == "ALREADY_CONVERTED"

    def test_convert_to_order_needs_actor(self, client, db_session, patient, product, headers):
        quote = client.post("/api/quotes", json=q1_payload(patient.id, product.id), headers=headers).get_json()
        assert client.post(f"/api/quotes/{quote['id']}/order").status_code == 401

    def test_validation_error_shape(self, client, db_session, headers, patient, product):
        payload = q1_payload(patient.id, product.id)
        payload["total"] = "999.00"

        response = client.post("/api/quotes", json=payload, headers=headers)

        assert response.status_code == 400
        body = response.get_json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["details"]["field"] == "total"
        assert "error" in body

    def test_expired_quote_is_409(self, client, db_session, headers, patient, product):
        payload = q1_payload(patient.id, product.id)
        payload["expiration_date"] = (today() + timedelta(days=1)).isoformat()
        quote = client.post("/api/quotes", json=payload, headers=headers).get_json()
        client.post(f"/api/quotes/{quote['id']}/status", json={"status": "expired"}, headers=headers)

        response = client.post(f"/api/quotes/{quote['id']}/convert", headers=headers)

        assert response.status_code == 409
        assert response.get_json()["code"] == "INVALID_STATE_TRANSITION"

    def test_unknown_quote_is_404(self, client, db_session, headers):
        response = client.post("/api/quotes/4040/convert", headers=headers)
        assert response.status_code == 404
        assert response.get_json()["code"] == "NOT_FOUND"

    def test_items_cannot_be_patched(self, client, db_session, headers, patient, product):
        quote = client.post("/api/quotes", json=q1_payload(patient.id, product.id), headers=headers).get_json()

        response = client.patch(f"/api/quotes/{quote['id']}", json={"items": []}, headers=headers)
        assert response.status_code == 400


class TestPaymentRoutes:

    def test_partial_then_settle(self, client, db_session, headers, patient, product):
        quote = client.post("/api/quotes", json=q1_payload(patient.id, product.id), headers=headers).get_json()
        sale = client.post(f"/api/quotes/{quote['id']}/convert", headers=headers).get_json()

        first = client.post(
            f"/api/payments/sales/{sale['id']}",
            json={"amount": "50.00", "payment_method": "cash"},
            headers=headers,
        )
        assert first.status_code == 201
        assert first.get_json()["sale"]["balance"] == "59.00"
        assert first.get_json()["sale"]["payment_status"] == "partial"

        second = client.post(
            f"/api/payments/sales/{sale['id']}/partial",
            json={"amount": "59.00", "payment_method": "credit_card", "reference_number": "AUTH-1"},
            headers=headers,
        )
        assert second.status_code == 201
        assert second.get_json()["sale"]["payment_status"] == "paid"

        history = client.get(f"/api/payments/sales/{sale['id']}").get_json()
        assert history["amount_paid"] == "109.00"
        assert len(history["payments"]) == 2

    def test_card_without_reference_is_400(self, client, db_session, headers, patient, product):
        quote = client.post("/api/quotes", json=q1_payload(patient.id, product.id), headers=headers).get_json()
        sale = client.post(f"/api/quotes/{quote['id']}/convert", headers=headers).get_json()

        response = client.post(
            f"/api/payments/sales/{sale['id']}",
            json={"amount": "10.00", "payment_method": "credit_card"},
            headers=headers,
        )
        assert response.status_code == 400
        assert response.get_json()["details"]["field"] == "reference_number"


class TestDiscountRoutes:

    def test_request_and_approve(self, client, db_session, headers, patient, product):
        created = client.post(
            "/api/discounts",
            json={
                "item_type": "product",
                "item_id": product.id,
                "discount_percentage": "20",
                "patient_id": patient.id,
            },
            headers=headers,
        )
        assert created.status_code == 201
        discount = created.get_json()
        assert discount["discounted_price"] == "40.00"
        assert discount["is_valid"] is False

        approved = client.post(
            f"/api/discounts/{discount['id']}/approve", json={}, headers=actor_headers(APPROVER_ID)
        )
        assert approved.status_code == 200
        assert approved.get_json()["is_valid"] is True

        again = client.post(f"/api/discounts/{discount['id']}/approve", json={}, headers=actor_headers(APPROVER_ID))
        assert again.status_code == 409


class TestInventoryRoutes:

    def test_overcommitted_transfer_is_409(self, client, db_session, headers, product, locations):
        loc_a, loc_b = locations
        received = client.post(
            "/api/inventory/receive",
            json={"item_type": "product", "item_id": product.id, "location_id": loc_a.id, "quantity": 5},
            headers=headers,
        )
        assert received.status_code == 201

        transfer = client.post(
            "/api/inventory/transfers",
            json={
                "item_type": "product",
                "item_id": product.id,
                "source_location_id": loc_a.id,
                "destination_location_id": loc_b.id,
                "quantity": 10,
            },
            headers=headers,
        ).get_json()

        response = client.post(f"/api/inventory/transfers/{transfer['id']}/complete", headers=headers)

        assert response.status_code == 409
        assert response.get_json()["code"] == "INSUFFICIENT_STOCK"
        assert client.get(f"/api/inventory/transfers/{transfer['id']}").get_json()["status"] == "pending"


class TestLaboratoryRoutes:

    def test_create_move_and_history(self, client, db_session, headers, laboratory, patient):
        created = client.post(
            "/api/laboratory-orders",
            json={"laboratory_id": laboratory.id, "patient_id": patient.id, "priority": "high"},
            headers=headers,
        )
        assert created.status_code == 201
        lab_order = created.get_json()

        moved = client.post(
            f"/api/laboratory-orders/{lab_order['id']}/status",
            json={"status": "in_process"},
            headers=headers,
        )
        assert moved.status_code == 200

        history = client.get(f"/api/laboratory-orders/{lab_order['id']}/history").get_json()
        statuses = [row["status"] for row in history["history"]]
        assert statuses == ["pending", "in_process"]


class TestOrderRoutes:

    def test_order_to_sale_with_payment_and_lab(self, client, db_session, headers, patient, lens, laboratory):
        order = client.post(
            "/api/orders",
            json={
                "patient_id": patient.id,
                "laboratory_id": laboratory.id,
                "items": [{"item_type": "lens", "item_id": lens.id, "quantity": 1}],
            },
            headers=headers,
        )
        assert order.status_code == 201
        order = order.get_json()
        assert order["order_number"].startswith("ORD-")

        response = client.post(
            f"/api/orders/{order['id']}/sale",
            json={"payments": [{"amount": "100.00", "payment_method": "cash"}]},
            headers=headers,
        )

        assert response.status_code == 201
        summary = response.get_json()
        assert summary["amount_paid"] == "100.00"
        assert summary["payment_status"] == "partial"
        assert len(summary["laboratory_orders"]) == 1

        again = client.post(f"/api/orders/{order['id']}/sale", json={}, headers=headers)
        assert again.status_code == 409


class TestCatalogRoutes:

    def test_create_and_reprice(self, client, db_session, headers):
        created = client.post(
            "/api/catalog/lenses",
            json={"code": "LNS-SV-01", "name": "Single vision 1.5", "price": "45.00"},
            headers=headers,
        )
        assert created.status_code == 201
        lens = created.get_json()

        fetched = client.get(f"/api/catalog/lens/{lens['id']}").get_json()
        assert fetched["has_active_discount"] is False

        bad = client.put(f"/api/catalog/lens/{lens['id']}/price", json={"price": "0"}, headers=headers)
        assert bad.status_code == 400
        assert bad.get_json()["details"]["field"] == "price"

        ok = client.put(f"/api/catalog/lens/{lens['id']}/price", json={"price": "55.00"}, headers=headers)
        assert ok.status_code == 200
