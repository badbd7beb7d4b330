from fastapi.testclient import TestClient

from carbon_ledger.certificate.models import Certificate
from carbon_ledger.organisation.models import Organisation


class TestCertificateRoutes:
    def test_create_certificate(
        self,
        api_client: TestClient,
        admin_token: str,
        fake_db_manufacturer: Organisation,
    ):
        response = api_client.post(
            "certificate/create",
            json={
                "organisation_id": fake_db_manufacturer.id,
                "intervention_id": "INT-777",
                "total_amount": "12.5",
                "vintage": 2024,
                "attributes": {"project_type": "biochar"},
            },
            headers={"Authorization": f"Bearer {admin_token}"},
        )

        assert response.status_code == 201
        certificate = response.json()
        assert certificate["organisation_id"] == fake_db_manufacturer.id
        assert float(certificate["remaining_amount"]) == 12.5
        assert certificate["status"] == "active"
        assert certificate["attributes"] == {"project_type": "biochar"}

    def test_create_certificate_requires_admin(
        self,
        api_client: TestClient,
        supplier_token: str,
        fake_db_supplier: Organisation,
    ):
        response = api_client.post(
            "certificate/create",
            json={
                "organisation_id": fake_db_supplier.id,
                "intervention_id": "INT-777",
                "total_amount": "12.5",
                "vintage": 2024,
            },
            headers={"Authorization": f"Bearer {supplier_token}"},
        )

        assert response.status_code == 403

    def test_create_certificate_rejects_negative_amount(
        self, api_client: TestClient, admin_token: str, fake_db_supplier: Organisation
    ):
        response = api_client.post(
            "certificate/create",
            json={
                "organisation_id": fake_db_supplier.id,
                "intervention_id": "INT-777",
                "total_amount": "-5",
                "vintage": 2024,
            },
            headers={"Authorization": f"Bearer {admin_token}"},
        )

        assert response.status_code == 422
        assert response.json()["error_type"] == "validation_error"
        assert response.json()["details"]["errors"][0]["field"] == "total_amount"

    def test_list_certificates_for_caller(
        self,
        api_client: TestClient,
        manufacturer_token: str,
        certificate_factory,
        fake_db_certificate: Certificate,
        fake_db_manufacturer: Organisation,
    ):
        own_certificate = certificate_factory(fake_db_manufacturer, "5")

        response = api_client.get(
            "certificate/", headers={"Authorization": f"Bearer {manufacturer_token}"}
        )

        assert response.status_code == 200
        assert [c["id"] for c in response.json()] == [own_certificate.id]

    def test_read_certificate_balance(
        self,
        api_client: TestClient,
        supplier_token: str,
        claim_factory,
        fake_db_certificate: Certificate,
        fake_db_supplier: Organisation,
    ):
        claim_factory(fake_db_certificate, fake_db_supplier, "30")

        response = api_client.get(
            f"certificate/{fake_db_certificate.id}/balance",
            headers={"Authorization": f"Bearer {supplier_token}"},
        )

        assert response.status_code == 200
        balance = response.json()
        assert float(balance["total_amount"]) == 100
        assert float(balance["remaining_amount"]) == 100
        assert float(balance["active_claimed_amount"]) == 30
        assert float(balance["available_to_claim"]) == 70
        assert float(balance["available_to_transfer"]) == 30

    def test_read_unknown_certificate(self, api_client: TestClient, supplier_token: str):
        response = api_client.get(
            "certificate/999", headers={"Authorization": f"Bearer {supplier_token}"}
        )

        assert response.status_code == 404
        assert response.json()["details"]["path"] == "/certificate/999"
