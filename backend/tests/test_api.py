"""API tests for assessment and report endpoints."""

import uuid

from jose import jwt

from fixtures import A1_RESPONSES, create_assessment, create_child, seed_started_assessment
from pha.core.config import settings
from pha.models import AssessmentStatus

API = settings.API_V1_STR


def auth_headers(user_id: uuid.UUID) -> dict:
    token = jwt.encode({"sub": str(user_id)}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


def submit_body(score=75, responses=None) -> dict:
    return {
        "responses": [
            {
                "questionId": r["question_id"],
                "responseValue": r["response_value"],
                "responseText": r["response_text"],
            }
            for r in (responses or A1_RESPONSES)
        ],
        "brainOMeterScore": score,
    }


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


async def test_start_assessment(client, db_session):
    child = await create_child(db_session)
    await db_session.commit()

    response = await client.post(
        f"{API}/assessments/start",
        json={"childId": str(child.id)},
        headers=auth_headers(child.parent_id),
    )

    assert response.status_code == 201
    data = response.json()
    assert data["childId"] == str(child.id)
    assert data["status"] == AssessmentStatus.STARTED.value

    fetched = await client.get(f"{API}/assessments/{data['assessmentId']}")
    assert fetched.status_code == 200
    assert fetched.json()["responsesCount"] == 0


async def test_start_assessment_for_unknown_child(client):
    response = await client.post(f"{API}/assessments/start", json={"childId": str(uuid.uuid4())})

    assert response.status_code == 404


async def test_submit_returns_camel_case_result(client, db_session):
    _, _, assessment = await seed_started_assessment(db_session)

    response = await client.post(f"{API}/assessments/{assessment.id}/submit", json=submit_body())

    assert response.status_code == 200
    data = response.json()
    assert data["assessmentId"] == str(assessment.id)
    assert data["status"] == "completed"
    assert data["brainOMeterScore"] == 75
    assert data["responsesCount"] == 2
    assert data["reportGenerationFailed"] is False
    assert data["shareUrl"].endswith(f"/reports/view/{data['shareToken']}")

    responses = await client.get(f"{API}/assessments/{assessment.id}/responses")
    assert [r["questionId"] for r in responses.json()] == ["q1", "q2"]

    state = await client.get(f"{API}/assessments/{assessment.id}")
    assert state.json()["responsesCount"] == 2
    assert state.json()["brainOMeterScore"] == 75


async def test_second_submit_is_a_conflict(client, db_session):
    _, _, assessment = await seed_started_assessment(db_session)
    url = f"{API}/assessments/{assessment.id}/submit"

    first = await client.post(url, json=submit_body())
    second = await client.post(url, json=submit_body(score=10))

    assert first.status_code == 200
    assert second.status_code == 409


async def test_submit_rejects_bad_input(client, db_session):
    _, _, assessment = await seed_started_assessment(db_session)
    url = f"{API}/assessments/{assessment.id}/submit"

    bad_score = await client.post(url, json=submit_body(score="seventy"))
    no_responses = await client.post(url, json={"responses": [], "brainOMeterScore": 50})
    malformed = await client.post(url, json={"responses": "q1", "brainOMeterScore": 50})

    assert bad_score.status_code == 400
    assert no_responses.status_code == 400
    assert malformed.status_code == 400
    assert "errors" in malformed.json()

    state = await client.get(f"{API}/assessments/{assessment.id}")
    assert state.json()["status"] == "started"


async def test_submit_with_unknown_practice_is_bad_request(client, db_session):
    _, _, assessment = await seed_started_assessment(db_session)
    body = {**submit_body(), "practiceId": str(uuid.uuid4())}

    response = await client.post(f"{API}/assessments/{assessment.id}/submit", json=body)

    assert response.status_code == 400
    state = await client.get(f"{API}/assessments/{assessment.id}")
    assert state.json()["status"] == "started"
    assert state.json()["responsesCount"] == 0


async def test_submit_unknown_assessment(client):
    response = await client.post(f"{API}/assessments/{uuid.uuid4()}/submit", json=submit_body())

    assert response.status_code == 404


async def test_submit_by_other_parent_is_forbidden(client, db_session):
    _, _, assessment = await seed_started_assessment(db_session)

    response = await client.post(
        f"{API}/assessments/{assessment.id}/submit",
        json=submit_body(),
        headers=auth_headers(uuid.uuid4()),
    )

    assert response.status_code == 403


async def test_invalid_token_is_unauthorized(client, db_session):
    _, _, assessment = await seed_started_assessment(db_session)

    response = await client.post(
        f"{API}/assessments/{assessment.id}/submit",
        json=submit_body(),
        headers={"Authorization": "Bearer not-a-jwt"},
    )

    assert response.status_code == 401


async def test_report_endpoints(client, db_session):
    _, child, assessment = await seed_started_assessment(db_session)
    submitted = (
        await client.post(f"{API}/assessments/{assessment.id}/submit", json=submit_body())
    ).json()
    headers = auth_headers(child.parent_id)

    by_assessment = await client.get(f"{API}/assessments/{assessment.id}/report", headers=headers)
    assert by_assessment.status_code == 200
    report = by_assessment.json()
    assert report["id"] == submitted["reportId"]
    assert report["reportType"] == "standard"
    assert report["content"]["overall_statistics"]["strength_areas"] == ["cognitive"]

    detailed = await client.get(
        f"{API}/assessments/{assessment.id}/report", params={"reportType": "detailed"}
    )
    assert detailed.status_code == 200
    assert "raw_responses" in detailed.json()["content"]

    refreshed = await client.get(f"{API}/reports/{report['id']}", params={"refresh": "true"})
    assert refreshed.status_code == 200
    assert refreshed.json()["content"] == report["content"]

    shared = await client.get(f"{API}/reports/view/{submitted['shareToken']}")
    assert shared.status_code == 200
    assert shared.json()["id"] == report["id"]

    forbidden = await client.get(f"{API}/reports/{report['id']}", headers=auth_headers(uuid.uuid4()))
    assert forbidden.status_code == 403


async def test_report_of_open_assessment_is_a_conflict(client, db_session):
    _, _, assessment = await seed_started_assessment(db_session)

    response = await client.get(f"{API}/assessments/{assessment.id}/report")

    assert response.status_code == 409


async def test_report_type_must_be_known(client, db_session):
    child = await create_child(db_session)
    done = await create_assessment(db_session, child, status=AssessmentStatus.COMPLETED.value)
    await db_session.commit()

    response = await client.get(f"{API}/assessments/{done.id}/report", params={"reportType": "weekly"})

    assert response.status_code == 400


async def test_unknown_share_token(client):
    response = await client.get(f"{API}/reports/view/{'0' * 64}")

    assert response.status_code == 404


async def test_download_pdf(client, db_session):
    _, _, assessment = await seed_started_assessment(db_session)
    submitted = (
        await client.post(f"{API}/assessments/{assessment.id}/submit", json=submit_body())
    ).json()

    response = await client.get(f"{API}/reports/{submitted['reportId']}/download")

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert "attachment" in response.headers["content-disposition"]
    assert response.content.startswith(b"%PDF")
