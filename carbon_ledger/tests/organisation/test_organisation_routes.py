from fastapi.testclient import TestClient

from carbon_ledger.organisation.models import Organisation, Partnership


class TestOrganisationRoutes:
    def test_create_organisation_requires_token(self, api_client: TestClient):
        response = api_client.post(
            "organisation/create", json={"name": "fake_org", "supply_chain_level": 1}
        )

        assert response.status_code == 401
        assert response.json()["error_type"] == "http_error"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_create_organisation_requires_admin(
        self, api_client: TestClient, supplier_token: str
    ):
        response = api_client.post(
            "organisation/create",
            json={"name": "fake_org", "supply_chain_level": 1},
            headers={"Authorization": f"Bearer {supplier_token}"},
        )

        assert response.status_code == 403
        assert response.json()["error_type"] == "unauthorized"

    def test_create_and_read_organisation(self, api_client: TestClient, admin_token: str):
        response = api_client.post(
            "organisation/create",
            json={"name": "fake_brand", "supply_chain_level": 4},
            headers={"Authorization": f"Bearer {admin_token}"},
        )
        assert response.status_code == 201
        organisation_id = response.json()["id"]

        response = api_client.get(
            f"organisation/{organisation_id}",
            headers={"Authorization": f"Bearer {admin_token}"},
        )
        assert response.status_code == 200
        assert response.json()["name"] == "fake_brand"
        assert response.json()["supply_chain_level"] == 4

    def test_create_organisation_rejects_level_zero(
        self, api_client: TestClient, admin_token: str
    ):
        response = api_client.post(
            "organisation/create",
            json={"name": "fake_org", "supply_chain_level": 0},
            headers={"Authorization": f"Bearer {admin_token}"},
        )

        assert response.status_code == 422
        errors = response.json()["details"]["errors"]
        assert errors[0]["field"] == "supply_chain_level"
        assert errors[0]["invalid_value"] == 0

    def test_read_unknown_organisation(self, api_client: TestClient, supplier_token: str):
        response = api_client.get(
            "organisation/999", headers={"Authorization": f"Bearer {supplier_token}"}
        )

        assert response.status_code == 404
        assert response.json()["error_type"] == "not_found"
        assert response.json()["details"]["retryable"] is False

    def test_update_supply_chain_level(
        self,
        api_client: TestClient,
        admin_token: str,
        fake_db_manufacturer: Organisation,
    ):
        response = api_client.patch(
            f"organisation/{fake_db_manufacturer.id}/supply_chain_level",
            json={"supply_chain_level": 3},
            headers={"Authorization": f"Bearer {admin_token}"},
        )

        assert response.status_code == 200
        assert response.json()["supply_chain_level"] == 3


class TestPartnershipRoutes:
    def test_partnership_request_and_accept(
        self,
        api_client: TestClient,
        supplier_token: str,
        manufacturer_token: str,
        fake_db_supplier: Organisation,
        fake_db_manufacturer: Organisation,
    ):
        response = api_client.post(
            "organisation/partnerships",
            json={"partner_organisation_id": fake_db_manufacturer.id},
            headers={"Authorization": f"Bearer {supplier_token}"},
        )
        assert response.status_code == 201
        partnership = response.json()
        assert partnership["status"] == "pending"

        response = api_client.patch(
            f"organisation/partnerships/{partnership['id']}",
            json={"status": "active"},
            headers={"Authorization": f"Bearer {manufacturer_token}"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "active"

        response = api_client.get(
            "organisation/partners",
            headers={"Authorization": f"Bearer {supplier_token}"},
        )
        assert [p["id"] for p in response.json()] == [fake_db_manufacturer.id]

    def test_partnership_decision_cannot_be_pending(
        self,
        api_client: TestClient,
        manufacturer_token: str,
        fake_db_supplier_partnership: Partnership,
    ):
        response = api_client.patch(
            f"organisation/partnerships/{fake_db_supplier_partnership.id}",
            json={"status": "pending"},
            headers={"Authorization": f"Bearer {manufacturer_token}"},
        )

        assert response.status_code == 422

    def test_list_partnerships(
        self,
        api_client: TestClient,
        manufacturer_token: str,
        fake_db_supplier_partnership: Partnership,
        fake_db_manufacturer_partnership: Partnership,
    ):
        response = api_client.get(
            "organisation/partnerships",
            headers={"Authorization": f"Bearer {manufacturer_token}"},
        )

        assert response.status_code == 200
        assert {p["id"] for p in response.json()} == {
            fake_db_supplier_partnership.id,
            fake_db_manufacturer_partnership.id,
        }

    def test_supply_chain_level_descriptions(
        self, api_client: TestClient, admin_token: str, supplier_token: str
    ):
        response = api_client.put(
            "organisation/supply_chain_levels",
            json={"level": 1, "description": "Raw material suppliers"},
            headers={"Authorization": f"Bearer {admin_token}"},
        )
        assert response.status_code == 200

        response = api_client.put(
            "organisation/supply_chain_levels",
            json={"level": 2, "description": "Manufacturers"},
            headers={"Authorization": f"Bearer {supplier_token}"},
        )
        assert response.status_code == 403

        response = api_client.get(
            "organisation/supply_chain_levels",
            headers={"Authorization": f"Bearer {supplier_token}"},
        )
        assert [level["level"] for level in response.json()] == [1]
