"""Tests for the review / confirm API."""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import upload_pdf
from models import ExtractedEntry, UploadRecord


def _first_entry_id(invoice: dict) -> str:
    return invoice["transactions"][0]["id"]


class TestListing:
    def test_list_invoices_with_status_filter(self, client, processed_invoice) -> None:
        pending = upload_pdf(client, filename="abril.pdf")

        everything = client.get("/invoices").json()
        assert everything["total"] == 2
        # Newest first
        assert [i["id"] for i in everything["items"]] == [pending["id"], processed_invoice["id"]]

        done = client.get("/invoices", params={"status": "done"}).json()
        assert done["total"] == 1
        assert done["items"][0]["id"] == processed_invoice["id"]
        assert done["items"][0]["entry_count"] == 3

    def test_list_pagination(self, client) -> None:
        for n in range(3):
            upload_pdf(client, filename=f"f{n}.pdf")

        page = client.get("/invoices", params={"limit": 2, "offset": 2}).json()
        assert page["total"] == 3
        assert page["limit"] == 2
        assert page["offset"] == 2
        assert len(page["items"]) == 1

    def test_invalid_status_filter_is_rejected(self, client) -> None:
        assert client.get("/invoices", params={"status": "archived"}).status_code == 422

    def test_get_invoice_includes_entries_in_document_order(self, client, processed_invoice) -> None:
        resp = client.get(f"/invoices/{processed_invoice['id']}")

        assert resp.status_code == 200
        payload = resp.json()
        assert [t["line_number"] for t in payload["transactions"]] == [1, 2, 3]
        assert Decimal(payload["transactions"][1]["amount"]) == Decimal("-23.90")

    def test_transactions_endpoint(self, client, processed_invoice) -> None:
        resp = client.get(f"/invoices/{processed_invoice['id']}/transactions")

        assert resp.status_code == 200
        assert [t["description"] for t in resp.json()] == [
            "SUPERMERCADO BOM PRECO",
            "UBER *TRIP",
            "PAGAMENTO RECEBIDO",
        ]

    def test_unknown_invoice(self, client) -> None:
        missing = uuid.uuid4()
        assert client.get(f"/invoices/{missing}").status_code == 404
        assert client.get(f"/invoices/{missing}/transactions").status_code == 404


class TestEditing:
    def test_edit_sets_edited_flag_and_keeps_others_untouched(self, client, processed_invoice) -> None:
        entry_id = _first_entry_id(processed_invoice)

        resp = client.put(
            f"/transactions/{entry_id}",
            json={"description": "  Supermercado   Bom Preço ", "amount": "-150.00", "category": "restaurants"},
        )

        assert resp.status_code == 200, resp.text
        entry = resp.json()
        assert entry["edited"] is True
        assert entry["description"] == "Supermercado Bom Preço"
        assert Decimal(entry["amount"]) == Decimal("-150.00")
        assert entry["category"] == "Restaurants"
        assert entry["date"] == "2024-03-02"

        others = client.get(f"/invoices/{processed_invoice['id']}/transactions").json()[1:]
        assert all(t["edited"] is False for t in others)

    def test_category_can_be_cleared(self, client, processed_invoice) -> None:
        entry_id = _first_entry_id(processed_invoice)
        resp = client.put(f"/transactions/{entry_id}", json={"category": None})
        assert resp.status_code == 200
        assert resp.json()["category"] is None

    def test_date_edit(self, client, processed_invoice) -> None:
        entry_id = _first_entry_id(processed_invoice)
        resp = client.put(f"/transactions/{entry_id}", json={"date": "2024-02-28"})
        assert resp.json()["date"] == date(2024, 2, 28).isoformat()

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"amount": None},
            {"description": "   "},
            {"category": "Crypto"},
        ],
    )
    def test_invalid_edits_are_rejected(self, client, processed_invoice, payload) -> None:
        entry_id = _first_entry_id(processed_invoice)

        resp = client.put(f"/transactions/{entry_id}", json=payload)

        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "invalid_edit"

    @pytest.mark.parametrize(
        "payload",
        [
            {"notes": "unknown field"},
            {"amount": "twelve"},
            {"date": "31/02/2024"},
        ],
    )
    def test_malformed_payloads_are_rejected(self, client, processed_invoice, payload) -> None:
        entry_id = _first_entry_id(processed_invoice)
        assert client.put(f"/transactions/{entry_id}", json=payload).status_code == 422

    def test_delete_entry(self, client, processed_invoice) -> None:
        entry_id = _first_entry_id(processed_invoice)

        assert client.delete(f"/transactions/{entry_id}").status_code == 204

        remaining = client.get(f"/invoices/{processed_invoice['id']}/transactions").json()
        assert entry_id not in [t["id"] for t in remaining]
        assert len(remaining) == 2

    def test_unknown_entry(self, client) -> None:
        missing = uuid.uuid4()
        assert client.put(f"/transactions/{missing}", json={"category": None}).status_code == 404
        assert client.delete(f"/transactions/{missing}").status_code == 404


class TestConfirm:
    def test_confirm_makes_entries_immutable(self, client, processed_invoice) -> None:
        invoice_id = processed_invoice["id"]
        entry_id = _first_entry_id(processed_invoice)

        resp = client.post(f"/invoices/{invoice_id}/confirm")
        assert resp.status_code == 200
        assert resp.json()["confirmed_at"] is not None

        edit = client.put(f"/transactions/{entry_id}", json={"description": "changed"})
        assert edit.status_code == 409
        assert edit.json()["error"]["code"] == "invoice_confirmed"

        delete = client.delete(f"/transactions/{entry_id}")
        assert delete.status_code == 409

        entries = client.get(f"/invoices/{invoice_id}/transactions").json()
        assert entries[0]["description"] == "SUPERMERCADO BOM PRECO"
        assert len(entries) == 3

    def test_confirm_twice_is_refused(self, client, processed_invoice) -> None:
        invoice_id = processed_invoice["id"]
        assert client.post(f"/invoices/{invoice_id}/confirm").status_code == 200

        again = client.post(f"/invoices/{invoice_id}/confirm")
        assert again.status_code == 409
        assert again.json()["error"]["code"] == "invoice_confirmed"

    def test_pending_invoice_cannot_be_confirmed(self, client) -> None:
        invoice = upload_pdf(client)

        resp = client.post(f"/invoices/{invoice['id']}/confirm")

        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "invalid_status"


class TestDeleteInvoice:
    def test_delete_cascades_entries_and_file(self, client, processed_invoice, db_session, upload_dir) -> None:
        invoice_id = processed_invoice["id"]
        assert (upload_dir / f"{invoice_id}.pdf").exists()

        assert client.delete(f"/invoices/{invoice_id}").status_code == 204

        db_session.expire_all()
        assert db_session.get(UploadRecord, uuid.UUID(invoice_id)) is None
        assert db_session.query(ExtractedEntry).count() == 0
        assert not (upload_dir / f"{invoice_id}.pdf").exists()
        assert client.get(f"/invoices/{invoice_id}").status_code == 404

    def test_processing_invoice_cannot_be_deleted(self, client, db_session) -> None:
        invoice = upload_pdf(client)
        record = db_session.get(UploadRecord, uuid.UUID(invoice["id"]))
        record.status = "processing"
        db_session.commit()

        resp = client.delete(f"/invoices/{invoice['id']}")

        assert resp.status_code == 409


    def test_confirmed_invoice_cannot_be_deleted(self, client, processed_invoice, db_session, upload_dir) -> None:
        invoice_id = processed_invoice["id"]
        assert client.post(f"/invoices/{invoice_id}/confirm").status_code == 200

        resp = client.delete(f"/invoices/{invoice_id}")

        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "invoice_confirmed"
        assert len(client.get(f"/invoices/{invoice_id}/transactions").json()) == 3
        assert (upload_dir / f"{invoice_id}.pdf").exists()


class TestReferentialIntegrity:
    def test_entry_must_reference_existing_invoice(self, db_session) -> None:
        db_session.add(
            ExtractedEntry(
                invoice_id=uuid.uuid4(),
                line_number=1,
                date=date(2024, 3, 1),
                description="orphan",
                amount=Decimal("-1.00"),
            )
        )
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()


class TestReferenceEndpoints:
    def test_categories_are_seeded_and_sorted(self, client) -> None:
        resp = client.get("/categories")

        assert resp.status_code == 200
        names = [c["name"] for c in resp.json()]
        assert names == sorted(names)
        assert {"Groceries", "Transport", "Other"} <= set(names)
        assert all(c["color"].startswith("#") for c in resp.json())

    def test_health(self, client) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert resp.json()["service"] == "budgetly"
