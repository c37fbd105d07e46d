"""End-to-end API tests against an in-memory SQLite database.

Flow covered: signup -> login -> design a template -> look it up by code ->
conduct a survey -> stats -> PDF report -> delete rules.
"""
import random
import re
from datetime import datetime, timezone

import pytest

from carbonsurvey.api import templates as templates_api
from carbonsurvey.services.code_service import TemplateCodeService

CODE_RE = re.compile(r"^CS-\d{4}-[A-Z0-9]{6}$")


async def _signup(client, email="ana@example.com", password="s3cret-pass", **extra):
    body = {"name": "Ana Analyst", "email": email, "password": password, **extra}
    return await client.post("/api/auth/signup", json=body)


async def _create_template(client, headers, questions):
    return await client.post(
        "/api/survey-templates",
        json={"name": "Household Energy", "description": "Monthly", "questions": questions},
        headers=headers,
    )


class TestHealth:

    @pytest.mark.asyncio
    async def test_liveness(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy"}


class TestAuth:

    @pytest.mark.asyncio
    async def test_signup_returns_token_and_user(self, client):
        resp = await _signup(client, email="Ana@Example.com")
        assert resp.status_code == 201
        body = resp.json()
        assert body["token"]
        assert body["user"]["username"] == "ana@example.com"
        assert body["user"]["email"] == "ana@example.com"
        assert "password" not in body["user"]

    @pytest.mark.asyncio
    async def test_signup_duplicate_email(self, client):
        assert (await _signup(client)).status_code == 201
        resp = await _signup(client)
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_signup_phone_only(self, client):
        resp = await client.post(
            "/api/auth/signup",
            json={"name": "Pat", "phone": "+254700000001", "password": "s3cret-pass"},
        )
        assert resp.status_code == 201
        assert resp.json()["user"]["username"] == "+254700000001"

        login = await client.post(
            "/api/auth/login", json={"identifier": "+254700000001", "password": "s3cret-pass"}
        )
        assert login.status_code == 200

    @pytest.mark.asyncio
    async def test_signup_requires_email_or_phone(self, client):
        resp = await client.post("/api/auth/signup", json={"name": "X", "password": "s3cret-pass"})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_login_and_me(self, client):
        await _signup(client)
        resp = await client.post(
            "/api/auth/login", json={"identifier": "ANA@example.com", "password": "s3cret-pass"}
        )
        assert resp.status_code == 200
        token = resp.json()["token"]

        me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["name"] == "Ana Analyst"

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, client):
        await _signup(client)
        resp = await client.post(
            "/api/auth/login", json={"identifier": "ana@example.com", "password": "nope-nope"}
        )
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid credentials"

    @pytest.mark.asyncio
    async def test_protected_routes_need_token(self, client):
        assert (await client.get("/api/survey-templates")).status_code == 401
        assert (await client.get("/api/surveys/1")).status_code == 401
        bad = {"Authorization": "Bearer not-a-token"}
        assert (await client.get("/api/users/1/stats", headers=bad)).status_code == 401


class TestSurveyTemplates:

    @pytest.mark.asyncio
    async def test_create_assigns_code(self, client, auth_headers, designer, sample_questions):
        resp = await _create_template(client, auth_headers, sample_questions)
        assert resp.status_code == 201
        body = resp.json()
        assert CODE_RE.match(body["code"])
        assert body["createdBy"] == designer.id
        assert body["questions"] == sample_questions
        assert "createdAt" in body and "updatedAt" in body

    @pytest.mark.asyncio
    async def test_codes_are_distinct(self, client, auth_headers, sample_questions):
        codes = set()
        for _ in range(5):
            resp = await _create_template(client, auth_headers, sample_questions)
            codes.add(resp.json()["code"])
        assert len(codes) == 5

    @pytest.mark.asyncio
    async def test_get_by_code_case_insensitive(self, client, auth_headers, stored_template):
        resp = await client.get("/api/survey-templates/code/cs-2024-abc123", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["id"] == stored_template.id

    @pytest.mark.asyncio
    async def test_unknown_code_404(self, client, auth_headers):
        resp = await client.get("/api/survey-templates/code/CS-2024-ZZZZZZ", headers=auth_headers)
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_list_and_get(self, client, auth_headers, stored_template):
        listed = await client.get("/api/survey-templates", headers=auth_headers)
        assert [t["code"] for t in listed.json()] == ["CS-2024-ABC123"]

        one = await client.get(f"/api/survey-templates/{stored_template.id}", headers=auth_headers)
        assert one.json()["name"] == "Household Energy"
        missing = await client.get("/api/survey-templates/9999", headers=auth_headers)
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_update_keeps_code(self, client, auth_headers, stored_template):
        resp = await client.put(
            f"/api/survey-templates/{stored_template.id}",
            json={"name": "Renamed", "code": "CS-1999-AAAAAA"},
            headers=auth_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["name"] == "Renamed"
        assert resp.json()["code"] == "CS-2024-ABC123"

    @pytest.mark.asyncio
    async def test_code_space_exhausted_returns_503(
        self, client, auth_headers, stored_template, sample_questions, monkeypatch
    ):
        """Every draw lands on the stored template's code -> 503, retryable."""

        class _AlwaysTaken(random.Random):
            def choices(self, population, k=1, **kwargs):
                return list("ABC123")

        service = TemplateCodeService(
            max_attempts=3,
            clock=lambda: datetime(2024, 3, 1, tzinfo=timezone.utc),
            rng=_AlwaysTaken(),
        )
        monkeypatch.setattr(templates_api, "_code_service", service)

        resp = await _create_template(client, auth_headers, sample_questions)

        assert resp.status_code == 503
        assert resp.headers["retry-after"] == "1"
        assert "3 attempts" in resp.json()["detail"]
        listed = await client.get("/api/survey-templates", headers=auth_headers)
        assert [t["code"] for t in listed.json()] == ["CS-2024-ABC123"]

    @pytest.mark.asyncio
    async def test_rejects_duplicate_question_ids(self, client, auth_headers, sample_questions):
        resp = await _create_template(client, auth_headers, sample_questions * 2)
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_delete_unused_template(self, client, auth_headers, stored_template):
        resp = await client.delete(f"/api/survey-templates/{stored_template.id}", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json() == {"message": "Survey template deleted successfully"}
        gone = await client.get(f"/api/survey-templates/{stored_template.id}", headers=auth_headers)
        assert gone.status_code == 404


class TestSurveys:

    @pytest.mark.asyncio
    async def test_create_computes_equivalents_and_total(
        self, client, auth_headers, designer, stored_template, sample_survey_payload
    ):
        payload = {**sample_survey_payload, "templateId": stored_template.id}
        resp = await client.post("/api/surveys", json=payload, headers=auth_headers)

        assert resp.status_code == 201
        body = resp.json()
        assert [r["carbonEquivalent"] for r in body["responses"]] == pytest.approx([45.0, 24.0])
        assert body["totalCarbonFootprint"] == pytest.approx(69.0)
        assert body["conductedBy"] == designer.id
        assert body["area"] == pytest.approx(85.5)

    @pytest.mark.asyncio
    async def test_client_supplied_equivalents_ignored(
        self, client, auth_headers, stored_template, sample_survey_payload
    ):
        payload = {**sample_survey_payload, "templateId": stored_template.id}
        payload["responses"] = [{"questionId": "electricity", "value": 10, "carbonEquivalent": 9999}]
        payload["totalCarbonFootprint"] = 9999
        body = (await client.post("/api/surveys", json=payload, headers=auth_headers)).json()
        assert body["responses"][0]["carbonEquivalent"] == pytest.approx(4.5)
        assert body["totalCarbonFootprint"] == pytest.approx(4.5)

    @pytest.mark.asyncio
    async def test_empty_responses_total_zero(
        self, client, auth_headers, stored_template, sample_survey_payload
    ):
        payload = {**sample_survey_payload, "templateId": stored_template.id, "responses": []}
        resp = await client.post("/api/surveys", json=payload, headers=auth_headers)
        assert resp.status_code == 201
        assert resp.json()["totalCarbonFootprint"] == 0

    @pytest.mark.asyncio
    async def test_unknown_question_422(
        self, client, auth_headers, stored_template, sample_survey_payload
    ):
        payload = {**sample_survey_payload, "templateId": stored_template.id}
        payload["responses"] = [{"questionId": "flights", "value": 2}]
        resp = await client.post("/api/surveys", json=payload, headers=auth_headers)
        assert resp.status_code == 422
        assert "flights" in resp.json()["detail"]

    @pytest.mark.asyncio
    async def test_negative_value_422(
        self, client, auth_headers, stored_template, sample_survey_payload
    ):
        payload = {**sample_survey_payload, "templateId": stored_template.id}
        payload["responses"] = [{"questionId": "electricity", "value": -5}]
        resp = await client.post("/api/surveys", json=payload, headers=auth_headers)
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_missing_template_404(self, client, auth_headers, designer, sample_survey_payload):
        payload = {**sample_survey_payload, "templateId": 4242}
        resp = await client.post("/api/surveys", json=payload, headers=auth_headers)
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_template_locked_once_surveyed(
        self, client, auth_headers, stored_template, sample_survey_payload, sample_questions
    ):
        payload = {**sample_survey_payload, "templateId": stored_template.id}
        survey = (await client.post("/api/surveys", json=payload, headers=auth_headers)).json()
        url = f"/api/survey-templates/{stored_template.id}"

        assert (await client.delete(url, headers=auth_headers)).status_code == 409
        changed = [{**sample_questions[0], "coefficient": 0.9}]
        put = await client.put(url, json={"questions": changed}, headers=auth_headers)
        assert put.status_code == 409
        rename = await client.put(url, json={"description": "Still editable"}, headers=auth_headers)
        assert rename.status_code == 200

        listed = await client.get(f"{url}/surveys", headers=auth_headers)
        assert [s["id"] for s in listed.json()] == [survey["id"]]

        deleted = await client.delete(f"/api/surveys/{survey['id']}", headers=auth_headers)
        assert deleted.json() == {"message": "Survey deleted successfully"}
        assert (await client.get(f"/api/surveys/{survey['id']}", headers=auth_headers)).status_code == 404
        assert (await client.delete(url, headers=auth_headers)).status_code == 200

    @pytest.mark.asyncio
    async def test_pdf_report(self, client, auth_headers, stored_template, sample_survey_payload):
        payload = {**sample_survey_payload, "templateId": stored_template.id}
        survey = (await client.post("/api/surveys", json=payload, headers=auth_headers)).json()

        resp = await client.get(f"/api/surveys/{survey['id']}/report.pdf", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/pdf"
        assert f"carbon-report-HH-0042-{survey['id']}.pdf" in resp.headers["content-disposition"]
        assert resp.content.startswith(b"%PDF")


class TestUsers:

    @pytest.mark.asyncio
    async def test_stats_and_listings(
        self, client, auth_headers, designer, stored_template, sample_survey_payload
    ):
        payload = {**sample_survey_payload, "templateId": stored_template.id}
        for household in ("HH-1", "HH-2"):
            await client.post(
                "/api/surveys", json={**payload, "householdId": household}, headers=auth_headers
            )

        stats = await client.get(f"/api/users/{designer.id}/stats", headers=auth_headers)
        assert stats.json() == {"templatesCount": 1, "surveysCount": 2}

        templates = await client.get(f"/api/users/{designer.id}/survey-templates", headers=auth_headers)
        assert [t["id"] for t in templates.json()] == [stored_template.id]

        surveys = await client.get(f"/api/users/{designer.id}/surveys", headers=auth_headers)
        assert [s["householdId"] for s in surveys.json()] == ["HH-2", "HH-1"]

    @pytest.mark.asyncio
    async def test_unknown_user_404(self, client, auth_headers):
        resp = await client.get("/api/users/9999/stats", headers=auth_headers)
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_singular_stats_path(self, client, auth_headers, designer, stored_template):
        """``/api/user/{id}/stats`` stays available for older clients."""
        resp = await client.get(f"/api/user/{designer.id}/stats", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json() == {"templatesCount": 1, "surveysCount": 0}
        assert (await client.get(f"/api/user/{designer.id}/stats")).status_code == 401
