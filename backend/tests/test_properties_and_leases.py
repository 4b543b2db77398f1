"""Tests for properties, units, lease templates, leases and application intake."""

from datetime import date, timedelta

from sqlalchemy import select

from propertyflow.models import JobsOutbox, Lease, Notification
from propertyflow.models.enums import LeaseStatus, UserRole

from conftest import (
    create_application,
    create_landlord,
    create_template,
    create_unit,
    create_user,
)

PROPERTY_PAYLOAD = {
    "name": "Maple Court",
    "property_type": "apartment",
    "address_line1": "12 Maple Ct",
    "city": "Sacramento",
    "state": "CA",
    "zip_code": "95814",
}


async def _active_lease(db, unit, status=LeaseStatus.ACTIVE):
    tenant = await create_user(db, UserRole.TENANT)
    lease = Lease(
        unit_id=unit.id,
        tenant_id=tenant.id,
        start_date=date.today() - timedelta(days=30),
        rent_amount_cents=unit.rent_amount_cents,
        billing_day_of_month=1,
        status=status,
    )
    db.add(lease)
    await db.flush()
    return tenant, lease


class TestProperties:
    """Property CRUD is scoped to the landlord."""

    async def test_create_and_list(self, client, db_session, login, auth_headers):
        owner, _ = await create_landlord(db_session)
        await db_session.commit()
        login(owner)

        created = await client.post("/v1/properties", json=PROPERTY_PAYLOAD, headers=auth_headers)
        again = await client.post("/v1/properties", json=PROPERTY_PAYLOAD, headers=auth_headers)

        assert created.status_code == 201
        assert created.json()["slug"] == "maple-court"
        assert again.json()["slug"] == "maple-court-2"

        listed = (await client.get("/v1/properties", headers=auth_headers)).json()
        assert len(listed) == 2
        assert listed[0]["unit_count"] == 0

    async def test_short_zip_rejected(self, client, db_session, login, auth_headers):
        owner, _ = await create_landlord(db_session)
        await db_session.commit()
        login(owner)

        response = await client.post(
            "/v1/properties", json={**PROPERTY_PAYLOAD, "zip_code": "958"}, headers=auth_headers,
        )
        assert response.status_code == 422

    async def test_unit_counts_and_update(self, client, db_session, login, auth_headers):
        owner, landlord = await create_landlord(db_session)
        prop, _ = await create_unit(db_session, landlord)
        await db_session.commit()
        property_id = prop.id
        login(owner)

        updated = await client.patch(
            f"/v1/properties/{property_id}", json={"description": "Quiet street"}, headers=auth_headers,
        )

        assert updated.status_code == 200
        assert updated.json()["description"] == "Quiet street"
        assert updated.json()["unit_count"] == 1
        assert updated.json()["available_unit_count"] == 1

    async def test_other_landlords_property_is_hidden(self, client, db_session, login, auth_headers):
        owner, _ = await create_landlord(db_session)
        _, other = await create_landlord(db_session, name="Elm Holdings")
        prop, _ = await create_unit(db_session, other)
        await db_session.commit()
        login(owner)

        response = await client.get(f"/v1/properties/{prop.id}", headers=auth_headers)
        assert response.status_code == 404

    async def test_delete_blocked_by_open_lease(self, client, db_session, login, auth_headers):
        owner, landlord = await create_landlord(db_session)
        prop, unit = await create_unit(db_session, landlord, is_available=False)
        await _active_lease(db_session, unit, LeaseStatus.PENDING_SIGNATURE)
        await db_session.commit()
        login(owner)

        response = await client.delete(f"/v1/properties/{prop.id}", headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "Property has active or pending leases"

    async def test_delete_empty_property(self, client, db_session, login, auth_headers):
        owner, _ = await create_landlord(db_session)
        await db_session.commit()
        login(owner)
        property_id = (await client.post("/v1/properties", json=PROPERTY_PAYLOAD, headers=auth_headers)).json()["id"]

        deleted = await client.delete(f"/v1/properties/{property_id}", headers=auth_headers)

        assert deleted.status_code == 204
        assert (await client.get(f"/v1/properties/{property_id}", headers=auth_headers)).status_code == 404


class TestUnits:

    async def test_create_and_list_units(self, client, db_session, login, auth_headers):
        owner, landlord = await create_landlord(db_session)
        prop, _ = await create_unit(db_session, landlord)
        await db_session.commit()
        property_id = prop.id
        login(owner)

        created = await client.post(
            f"/v1/properties/{property_id}/units",
            json={"name": "2B", "bedrooms": 1, "rent_amount_cents": 120000},
            headers=auth_headers,
        )
        assert created.status_code == 201

        units = (await client.get(f"/v1/properties/{property_id}/units", headers=auth_headers)).json()
        assert [u["name"] for u in units] == ["1A", "2B"]

    async def test_duplicate_unit_name(self, client, db_session, login, auth_headers):
        owner, landlord = await create_landlord(db_session)
        prop, _ = await create_unit(db_session, landlord)
        await db_session.commit()
        property_id = prop.id
        login(owner)

        response = await client.post(
            f"/v1/properties/{property_id}/units",
            json={"name": "1A", "rent_amount_cents": 120000},
            headers=auth_headers,
        )

        assert response.status_code == 409
        assert response.json()["detail"] == "Unit '1A' already exists in this property"

    async def test_rent_must_be_positive(self, client, db_session, login, auth_headers):
        owner, landlord = await create_landlord(db_session)
        prop, _ = await create_unit(db_session, landlord)
        await db_session.commit()
        property_id = prop.id
        login(owner)

        response = await client.post(
            f"/v1/properties/{property_id}/units",
            json={"name": "3C", "rent_amount_cents": 0},
            headers=auth_headers,
        )
        assert response.status_code == 422

    async def test_update_unit(self, client, db_session, login, auth_headers):
        owner, landlord = await create_landlord(db_session)
        prop, unit = await create_unit(db_session, landlord)
        await db_session.commit()
        property_id, unit_id = prop.id, unit.id
        login(owner)

        response = await client.patch(
            f"/v1/properties/{property_id}/units/{unit_id}",
            json={"rent_amount_cents": 165000, "is_available": False},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["rent_amount_cents"] == 165000
        assert response.json()["is_available"] is False


class TestLeaseTemplates:

    async def test_new_default_replaces_previous(self, client, db_session, login, auth_headers):
        owner, landlord = await create_landlord(db_session)
        first = await create_template(db_session, landlord)
        await db_session.commit()
        first_id = str(first.id)
        login(owner)

        created = await client.post(
            "/v1/leases/templates",
            json={"name": "Updated Lease", "body": "Lease between {{ landlord_name }} and {{ tenant_name }}.", "is_default": True},
            headers=auth_headers,
        )
        assert created.status_code == 201

        templates = (await client.get("/v1/leases/templates", headers=auth_headers)).json()
        defaults = {t["id"]: t["is_default"] for t in templates}
        assert defaults[first_id] is False
        assert defaults[created.json()["id"]] is True

    async def test_template_for_foreign_property(self, client, db_session, login, auth_headers):
        owner, _ = await create_landlord(db_session)
        _, other = await create_landlord(db_session, name="Elm Holdings")
        prop, _ = await create_unit(db_session, other)
        await db_session.commit()
        login(owner)

        response = await client.post(
            "/v1/leases/templates",
            json={"name": "Sneaky", "body": "Lease body text here.", "property_id": str(prop.id)},
            headers=auth_headers,
        )
        assert response.status_code == 404


class TestLeases:

    async def test_landlord_and_tenant_views(self, client, db_session, login, auth_headers):
        owner, landlord = await create_landlord(db_session)
        _, unit = await create_unit(db_session, landlord, is_available=False)
        tenant, lease = await _active_lease(db_session, unit)
        stranger = await create_user(db_session, UserRole.TENANT)
        await db_session.commit()
        lease_id = lease.id

        login(owner)
        listed = (await client.get("/v1/leases", headers=auth_headers)).json()
        assert listed["total"] == 1
        assert listed["leases"][0]["unit_name"] == "1A"

        login(tenant)
        assert (await client.get(f"/v1/leases/{lease_id}", headers=auth_headers)).status_code == 200

        login(stranger)
        assert (await client.get(f"/v1/leases/{lease_id}", headers=auth_headers)).status_code == 404

    async def test_terminate_frees_unit(self, client, db_session, login, auth_headers):
        owner, landlord = await create_landlord(db_session)
        prop, unit = await create_unit(db_session, landlord, is_available=False)
        _, lease = await _active_lease(db_session, unit)
        await db_session.commit()
        lease_id, property_id = lease.id, prop.id
        login(owner)

        response = await client.post(
            f"/v1/leases/{lease_id}/terminate", json={"notes": "Tenant moved out"}, headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["status"] == "terminated"
        assert response.json()["terminated_at"] is not None

        units = (await client.get(f"/v1/properties/{property_id}/units", headers=auth_headers)).json()
        assert units[0]["is_available"] is True

        again = await client.post(f"/v1/leases/{lease_id}/terminate", headers=auth_headers)
        assert again.status_code == 400


class TestApplicationIntake:
    """Submitting applications and uploading screening documents."""

    async def test_submit_notifies_landlord(self, client, db_session, login, auth_headers):
        owner, landlord = await create_landlord(db_session)
        _, unit = await create_unit(db_session, landlord)
        applicant = await create_user(db_session, UserRole.TENANT, full_name="Jane Doe")
        await db_session.commit()
        unit_id, owner_id = unit.id, owner.id
        login(applicant)

        payload = {"unit_id": str(unit_id), "full_name": "Jane Doe", "email": "jane@example.com"}
        response = await client.post("/v1/applications", json=payload, headers=auth_headers)

        assert response.status_code == 201
        assert response.json()["status"] == "pending"
        assert response.json()["unit_name"] == "1A"

        notification = (await db_session.execute(
            select(Notification).where(Notification.user_id == owner_id)
        )).scalar_one()
        assert notification.title == "New Rental Application"

        duplicate = await client.post("/v1/applications", json=payload, headers=auth_headers)
        assert duplicate.status_code == 409

    async def test_unavailable_unit(self, client, db_session, login, auth_headers):
        _, landlord = await create_landlord(db_session)
        _, unit = await create_unit(db_session, landlord, is_available=False)
        applicant = await create_user(db_session, UserRole.TENANT)
        await db_session.commit()
        login(applicant)

        response = await client.post(
            "/v1/applications",
            json={"unit_id": str(unit.id), "full_name": "Jane Doe", "email": "jane@example.com"},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Unit is not available for rent"

    async def test_document_upload_flow(self, client, db_session, login, auth_headers, storage_provider):
        _, landlord = await create_landlord(db_session)
        _, unit = await create_unit(db_session, landlord)
        applicant = await create_user(db_session, UserRole.TENANT)
        application = await create_application(db_session, unit, applicant)
        await db_session.commit()
        application_id = application.id
        login(applicant)

        upload = await client.post(
            f"/v1/applications/{application_id}/documents/upload-url",
            json={
                "category": "identity",
                "doc_type": "drivers_license",
                "file_name": "license.jpg",
                "mime_type": "image/jpeg",
                "file_size_bytes": 2048,
            },
            headers=auth_headers,
        )
        assert upload.status_code == 200
        object_path = upload.json()["object_path"]
        assert object_path.startswith(f"landlords/{landlord.id}/applications/{application_id}/verification/")

        confirm_payload = {
            "category": "identity",
            "doc_type": "drivers_license",
            "object_path": object_path,
            "file_name": "license.jpg",
            "mime_type": "image/jpeg",
            "file_size_bytes": 2048,
        }
        missing = await client.post(
            f"/v1/applications/{application_id}/documents", json=confirm_payload, headers=auth_headers,
        )
        assert missing.status_code == 400

        storage_provider.objects[object_path] = (b"fake-image", "image/jpeg")
        confirmed = await client.post(
            f"/v1/applications/{application_id}/documents", json=confirm_payload, headers=auth_headers,
        )
        assert confirmed.status_code == 201
        assert confirmed.json()["status"] == "pending"

        job = (await db_session.execute(select(JobsOutbox))).scalar_one()
        assert job.type == "process_verification_document"

        status = (await client.get(
            f"/v1/applications/{application_id}/verification", headers=auth_headers,
        )).json()
        assert status["overall_status"] == "in_progress"
        assert status["required_documents"]["identity"]["uploaded"] is True
        assert status["can_submit"] is False

    async def test_unsupported_mime_type(self, client, db_session, login, auth_headers):
        _, landlord = await create_landlord(db_session)
        _, unit = await create_unit(db_session, landlord)
        applicant = await create_user(db_session, UserRole.TENANT)
        application = await create_application(db_session, unit, applicant)
        await db_session.commit()
        login(applicant)

        response = await client.post(
            f"/v1/applications/{application.id}/documents/upload-url",
            json={
                "category": "employment",
                "doc_type": "pay_stub",
                "file_name": "stub.docx",
                "mime_type": "application/msword",
                "file_size_bytes": 2048,
            },
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Unsupported mime type: application/msword"

    async def test_identity_category_needs_identity_document(self, client, db_session, login, auth_headers):
        _, landlord = await create_landlord(db_session)
        _, unit = await create_unit(db_session, landlord)
        applicant = await create_user(db_session, UserRole.TENANT)
        application = await create_application(db_session, unit, applicant)
        await db_session.commit()
        login(applicant)

        response = await client.post(
            f"/v1/applications/{application.id}/documents/upload-url",
            json={
                "category": "identity",
                "doc_type": "pay_stub",
                "file_name": "stub.pdf",
                "mime_type": "application/pdf",
                "file_size_bytes": 2048,
            },
            headers=auth_headers,
        )
        assert response.status_code == 422

    async def test_landlord_report(self, client, db_session, login, auth_headers):
        owner, landlord = await create_landlord(db_session)
        _, unit = await create_unit(db_session, landlord, rent_amount_cents=200000)
        applicant = await create_user(db_session, UserRole.TENANT)
        application = await create_application(db_session, unit, applicant)
        await db_session.commit()
        login(owner)

        report = await client.get(
            f"/v1/applications/{application.id}/verification/report", headers=auth_headers,
        )

        assert report.status_code == 200
        income = report.json()["income"]
        assert income["rent_amount_cents"] == 200000
        assert income["required_income_cents"] == 600000
        assert income["monthly_income_cents"] is None
