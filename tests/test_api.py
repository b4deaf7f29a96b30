import asyncio
from contextlib import asynccontextmanager
from io import BytesIO

import pandas as pd
import pytest
from httpx import ASGITransport, AsyncClient

from fbar_intake.api import create_app
from fbar_intake.export import EXCEL_MEDIA_TYPE

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "initial-pass"


def _client(config):
    app = create_app(config)

    @asynccontextmanager
    async def _manager():
        async with app.router.lifespan_context(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                yield client

    return _manager


def _account(**overrides):
    account = {
        "type": "bank",
        "currency": "EUR",
        "accountNumber": "DE89370400440532013000",
        "maxValue": 9240,
        "institutionName": "Deutsche Bank",
        "mailingAddress": "Taunusanlage 12, Frankfurt",
    }
    account.update(overrides)
    return account


async def _login(api_client, password=ADMIN_PASSWORD):
    response = await api_client.post("/admin/login", json={"email": ADMIN_EMAIL, "password": password})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['accessToken']}"}


def test_health_and_reference(app_config):
    async def _scenario():
        async with _client(app_config)() as api_client:
            health = await api_client.get("/health")
            assert health.json() == {"status": "ok"}

            reference = (await api_client.get("/reference")).json()
            assert {"code": "TRY", "name": "Turkish Lira", "rate": 32.867} in reference["currencies"]
            assert [t["value"] for t in reference["accountTypes"]] == ["bank", "securities"]

    asyncio.run(_scenario())


def test_places_lookup_degrades_without_key(app_config):
    async def _scenario():
        async with _client(app_config)() as api_client:
            response = await api_client.get("/places/lookup", params={"q": "Garanti"})
            assert response.status_code == 200
            payload = response.json()
            assert payload["available"] is False
            assert "manually" in payload["message"]

    asyncio.run(_scenario())


def test_draft_resume_and_submit_flow(app_config):
    async def _scenario():
        async with _client(app_config)() as api_client:
            form = {
                "companyName": "Örnek Şirket",
                "accounts": [_account(currency="TRY", maxValue=65734, institutionName="Yapı Kredi", usdValue=1)],
            }
            saved = await api_client.post("/drafts", json=form)
            assert saved.status_code == 201
            code = saved.json()["resumeCode"]
            assert len(code) == 4 and code.isdigit()

            resumed = await api_client.get(f"/drafts/{code}")
            assert resumed.status_code == 200
            draft = resumed.json()
            assert draft["companyName"] == "Örnek Şirket"
            assert draft["accounts"][0]["institutionName"] == "Yapı Kredi"
            assert draft["accounts"][0]["usdValue"] == pytest.approx(2000.0)

            submitted = await api_client.post(
                "/submissions",
                json={"companyName": draft["companyName"], "accounts": draft["accounts"], "draftId": draft["draftId"]},
            )
            assert submitted.status_code == 201
            submission_id = submitted.json()["id"]

            gone = await api_client.get(f"/drafts/{code}")
            assert gone.status_code == 404
            assert gone.json()["code"] == "not-found"

            headers = await _login(api_client)
            listing = (await api_client.get("/admin/submissions", headers=headers)).json()
            assert [item["id"] for item in listing] == [submission_id]
            assert listing[0]["status"] == "pending"
            assert listing[0]["companyName"] == "Ornek Sirket"
            assert listing[0]["accounts"][0]["institutionName"] == "Yapi Kredi"

    asyncio.run(_scenario())


def test_blank_company_name_is_rejected(app_config):
    async def _scenario():
        async with _client(app_config)() as api_client:
            response = await api_client.post("/submissions", json={"companyName": "   ", "accounts": [_account()]})
            assert response.status_code == 422
            assert response.json()["field"] == "companyName"

            headers = await _login(api_client)
            listing = await api_client.get("/admin/submissions", headers=headers)
            assert listing.json() == []

    asyncio.run(_scenario())


def test_invalid_payloads(app_config):
    async def _scenario():
        async with _client(app_config)() as api_client:
            no_accounts = await api_client.post("/drafts", json={"companyName": "Acme", "accounts": []})
            assert no_accounts.status_code == 422

            bad_currency = await api_client.post("/drafts", json={"companyName": "Acme", "accounts": [_account(currency="XYZ")]})
            assert bad_currency.status_code == 422

            negative = await api_client.post("/drafts", json={"companyName": "Acme", "accounts": [_account(maxValue=-5)]})
            assert negative.status_code == 422

            malformed_code = await api_client.get("/drafts/12ab")
            assert malformed_code.status_code == 422

    asyncio.run(_scenario())


def test_admin_requires_session(app_config):
    async def _scenario():
        async with _client(app_config)() as api_client:
            missing = await api_client.get("/admin/submissions")
            assert missing.status_code == 401

            bogus = await api_client.get("/admin/submissions", headers={"Authorization": "Bearer nope"})
            assert bogus.status_code == 401
            assert bogus.json()["code"] == "session-expired"

            headers = await _login(api_client)
            assert (await api_client.post("/admin/logout", headers=headers)).status_code == 204
            after = await api_client.get("/admin/submissions", headers=headers)
            assert after.status_code == 401

    asyncio.run(_scenario())


def test_login_error_causes(app_config):
    async def _scenario():
        async with _client(app_config)() as api_client:
            wrong = await api_client.post("/admin/login", json={"email": ADMIN_EMAIL, "password": "wrong-pass"})
            assert wrong.status_code == 401
            assert wrong.json()["code"] == "invalid-credential"

            unknown = await api_client.post("/admin/login", json={"email": "who@example.com", "password": "x"})
            assert unknown.json()["code"] == "user-not-found"

            invalid = await api_client.post("/admin/login", json={"email": "not an email", "password": "x"})
            assert invalid.json()["code"] == "invalid-email"

    asyncio.run(_scenario())


def test_search_status_delete_and_export(app_config):
    async def _scenario():
        async with _client(app_config)() as api_client:
            first = await api_client.post(
                "/submissions",
                json={"companyName": "Acme Holdings", "accounts": [_account(institutionName="HSBC UK")]},
            )
            second = await api_client.post(
                "/submissions",
                json={
                    "companyName": "Bosphorus Trading",
                    "accounts": [
                        _account(institutionName="Garanti BBVA", currency="TRY", accountNumber="TR33"),
                        _account(institutionName="Banorte", currency="MXN", accountNumber="MX-7781"),
                    ],
                },
            )
            first_id, second_id = first.json()["id"], second.json()["id"]
            headers = await _login(api_client)

            listing = (await api_client.get("/admin/submissions", headers=headers)).json()
            assert [item["id"] for item in listing] == [second_id, first_id]

            search = (await api_client.get("/admin/submissions", params={"q": "garanti"}, headers=headers)).json()
            assert [item["id"] for item in search] == [second_id]

            for new_status in ("completed", "pending", "in_progress"):
                updated = await api_client.patch(
                    f"/admin/submissions/{first_id}/status", json={"status": new_status}, headers=headers
                )
                assert updated.status_code == 200
                assert updated.json()["status"] == new_status

            invalid_status = await api_client.patch(
                f"/admin/submissions/{first_id}/status", json={"status": "archived"}, headers=headers
            )
            assert invalid_status.status_code == 422

            exported = await api_client.post("/admin/export", json={"ids": [first_id, second_id]}, headers=headers)
            assert exported.status_code == 200
            assert exported.headers["content-type"] == EXCEL_MEDIA_TYPE
            assert "fbar_submissions.xlsx" in exported.headers["content-disposition"]
            dataframe = pd.read_excel(BytesIO(exported.content))
            assert len(dataframe) == 3

            empty = await api_client.post("/admin/export", json={"ids": []}, headers=headers)
            assert empty.status_code == 422
            assert "at least one submission" in empty.json()["detail"]

            unconfirmed = await api_client.delete(f"/admin/submissions/{first_id}", headers=headers)
            assert unconfirmed.status_code == 422

            deleted = await api_client.delete(
                f"/admin/submissions/{first_id}", params={"confirm": "true"}, headers=headers
            )
            assert deleted.status_code == 204

            again = await api_client.delete(
                f"/admin/submissions/{first_id}", params={"confirm": "true"}, headers=headers
            )
            assert again.status_code == 404

            missing_status = await api_client.patch(
                f"/admin/submissions/{first_id}/status", json={"status": "completed"}, headers=headers
            )
            assert missing_status.status_code == 404

    asyncio.run(_scenario())


def test_password_change(app_config):
    async def _scenario():
        async with _client(app_config)() as api_client:
            headers = await _login(api_client)

            mismatch = await api_client.post(
                "/admin/password",
                json={"currentPassword": ADMIN_PASSWORD, "newPassword": "abcdef1", "confirmPassword": "abcdef2"},
                headers=headers,
            )
            assert mismatch.status_code == 422

            wrong_current = await api_client.post(
                "/admin/password",
                json={"currentPassword": "not-it", "newPassword": "abcdef1", "confirmPassword": "abcdef1"},
                headers=headers,
            )
            assert wrong_current.status_code == 400
            assert wrong_current.json()["detail"] == "Current password is incorrect"

            changed = await api_client.post(
                "/admin/password",
                json={"currentPassword": ADMIN_PASSWORD, "newPassword": "abcdef1", "confirmPassword": "abcdef1"},
                headers=headers,
            )
            assert changed.status_code == 204

            await _login(api_client, password="abcdef1")

    asyncio.run(_scenario())
