import asyncio

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.api.errors import domain_error, internal_error
from app.config import settings
from app.database import Database
from app.errors import ReviewAlreadyApproved
from app.main import create_app
from app.websocket.manager import WebSocketManager


@pytest.fixture
def client():
    app = create_app(Database("sqlite://"))
    with TestClient(app) as client:
        yield client


def _login(client, email, password):
    response = client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def admin_headers(client):
    return _login(client, settings.admin_email, settings.admin_password)


@pytest.fixture
def student(client):
    response = client.post("/auth/register", json={
        "email": "learner@lms.org", "password": "learner-pass", "full_name": "Lee Learner"
    })
    assert response.status_code == 201, response.text
    return response.json()["id"], _login(client, "learner@lms.org", "learner-pass")


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy", "database": "open"}


def test_me_lists_capabilities(client, student):
    _, headers = student
    me = client.get("/auth/me", headers=headers).json()

    assert me["role_name"] == "trainee"
    assert "start_taking_assessment" in me["capabilities"]
    assert "approve_submission_review" not in me["capabilities"]


def test_requests_without_capability_are_forbidden(client, student):
    _, headers = student
    response = client.get("/assessments/admin/pending-grading", headers=headers)
    assert response.status_code == 403
    assert client.get("/courses").status_code == 401


def test_bad_login(client):
    response = client.post("/auth/login", json={"email": "nobody@lms.org", "password": "nope"})
    assert response.status_code == 401


def test_full_assessment_lifecycle(client, admin_headers, student):
    student_id, student_headers = student

    course = client.post("/courses", json={"title": "Python"}, headers=admin_headers).json()["data"]
    enrolled = client.post(
        f"/courses/{course['id']}/enroll", json={"trainee_user_id": student_id}, headers=admin_headers
    )
    assert enrolled.status_code == 201

    created = client.post("/assessments/admin/assessments", headers=admin_headers, json={
        "title": "Recursion check",
        "course_id": course["id"],
        "total_marks": 10,
        "passing_marks": 5,
        "questions": [
            {
                "question_text": "Base case needed?",
                "question_type": "SINGLE_CHOICE",
                "marks": 5,
                "options": [
                    {"option_text": "Yes", "is_correct": True},
                    {"option_text": "No", "is_correct": False},
                ],
            },
            {"question_text": "Explain recursion", "question_type": "LONG_ANSWER", "marks": 5},
        ],
    })
    assert created.status_code == 201, created.text
    assessment = created.json()["data"]
    choice, essay = assessment["questions"]
    correct_option = next(o for o in choice["options"] if o["is_correct"])

    started = client.post(
        f"/assessments/student/assessments/{assessment['id']}/start", headers=student_headers
    )
    assert started.status_code == 200, started.text
    attempt = started.json()["data"]
    assert "is_correct" not in attempt["questions"][0]["options"][0]
    submission_id = attempt["submission_id"]

    for body in (
        {"submission_id": submission_id, "question_id": choice["id"], "selected_option_id": correct_option["id"]},
        {"submission_id": submission_id, "question_id": essay["id"], "text_answer": "It calls itself"},
    ):
        saved = client.post("/assessments/student/save-answer", json=body, headers=student_headers)
        assert saved.status_code == 200, saved.text

    submitted = client.post(
        f"/assessments/student/assessments/{assessment['id']}/submit",
        json={"submission_id": submission_id},
        headers=student_headers
    )
    receipt = submitted.json()["data"]
    assert receipt["status"] == "PENDING_REVIEW"
    assert receipt["percentage"] == 50.0

    [pending] = client.get("/assessments/student/my-results", headers=student_headers).json()["data"]
    assert pending["percentage"] is None
    review = client.get(f"/assessments/student/submissions/{submission_id}/review", headers=student_headers)
    assert review.status_code == 403

    early = client.post(f"/assessments/admin/submissions/{submission_id}/approve-review", headers=admin_headers)
    assert early.status_code == 400

    details = client.get(f"/assessments/admin/submissions/{submission_id}/details", headers=admin_headers).json()
    essay_answer = next(a for a in details["data"]["answers"] if a["needs_grading"])

    too_many = client.post(
        f"/assessments/admin/answers/{essay_answer['answer_id']}/grade",
        json={"marks_obtained": 6}, headers=admin_headers
    )
    assert too_many.status_code == 400

    graded = client.post(
        f"/assessments/admin/answers/{essay_answer['answer_id']}/grade",
        json={"marks_obtained": 5}, headers=admin_headers
    ).json()["data"]
    assert graded["new_total_score"] == 10
    assert graded["new_percentage"] == 100.0

    approved = client.post(f"/assessments/admin/submissions/{submission_id}/approve-review", headers=admin_headers)
    assert approved.status_code == 200
    again = client.post(f"/assessments/admin/submissions/{submission_id}/approve-review", headers=admin_headers)
    assert again.status_code == 409

    [result] = client.get("/assessments/student/my-results", headers=student_headers).json()["data"]
    assert result["percentage"] == 100.0
    assert result["is_passed"] is True
    review = client.get(f"/assessments/student/submissions/{submission_id}/review", headers=student_headers)
    assert review.status_code == 200

    retry = client.post(f"/assessments/student/assessments/{assessment['id']}/start", headers=student_headers)
    assert retry.status_code == 400

    analytics = client.get(
        f"/assessments/admin/assessments/{assessment['id']}/analytics", headers=admin_headers
    ).json()["data"]
    assert analytics["overview"]["passed_count"] == 1


def test_not_enrolled_student_cannot_start(client, admin_headers, student):
    _, student_headers = student
    course = client.post("/courses", json={"title": "Closed"}, headers=admin_headers).json()["data"]
    created = client.post("/assessments/admin/assessments", headers=admin_headers, json={
        "title": "Locked", "course_id": course["id"]
    }).json()["data"]

    response = client.post(f"/assessments/student/assessments/{created['id']}/start", headers=student_headers)
    assert response.status_code == 403


def test_websocket_rejects_bad_token(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/notifications?token=not-a-jwt") as ws:
            ws.receive_text()


def test_websocket_ping(client, student):
    _, headers = student
    token = headers["Authorization"].split()[1]
    with client.websocket_connect(f"/ws/notifications?token={token}") as ws:
        ws.send_text("ping")
        assert ws.receive_text() == "pong"


class FakeSocket:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    async def accept(self):
        pass

    async def send_text(self, text):
        if self.fail:
            raise RuntimeError("connection reset")
        self.sent.append(text)


def test_broadcast_drops_only_dead_connections():
    manager = WebSocketManager()
    alive, dead = FakeSocket(), FakeSocket(fail=True)

    async def scenario():
        await manager.connect(alive, 1)
        await manager.connect(dead, 2)
        return await manager.broadcast({"type": "new_assessment"})

    delivered = asyncio.run(scenario())

    assert delivered == 1
    assert list(manager.active_connections) == [1]
    assert len(alive.sent) == 1


def test_own_profile(client, student):
    _, headers = student
    updated = client.put("/users/me/profile", json={"designation": "Analyst"}, headers=headers)
    assert updated.status_code == 200, updated.text

    profile = client.get("/users/me/profile", headers=headers).json()["data"]
    assert profile["designation"] == "Analyst"
    assert profile["full_name"] == "Lee Learner"


def test_user_administration(client, admin_headers, student):
    created = client.post("/users", json={
        "email": "coach@lms.org", "password": "coach-pass", "full_name": "Cora Coach"
    }, headers=admin_headers)
    assert created.status_code == 201, created.text
    user_id = created.json()["data"]["id"]

    duplicate = client.post("/users", json={"email": "coach@lms.org", "password": "coach-pass"}, headers=admin_headers)
    assert duplicate.status_code == 409

    [found] = client.get("/users/search/COACH", headers=admin_headers).json()["data"]
    assert found["id"] == user_id

    client.put(f"/users/{user_id}", json={"designation": "Mentor"}, headers=admin_headers)
    assert client.get(f"/users/{user_id}", headers=admin_headers).json()["data"]["designation"] == "Mentor"

    assert client.delete(f"/users/{user_id}", headers=admin_headers).status_code == 200
    assert client.get(f"/users/{user_id}", headers=admin_headers).status_code == 404

    _, student_headers = student
    assert client.get("/users", headers=student_headers).status_code == 403


def test_module_completion_through_api(client, admin_headers, student):
    student_id, student_headers = student
    category = client.post("/categories", json={"name": "Data"}, headers=admin_headers).json()["data"]
    course = client.post(
        "/courses", json={"title": "Pandas", "category_ids": [category["id"]]}, headers=admin_headers
    ).json()["data"]
    assert course["categories"] == [{"id": category["id"], "name": "Data"}]

    module = client.post(
        f"/courses/{course['id']}/modules", json={"title": "DataFrames"}, headers=admin_headers
    ).json()["data"]

    not_enrolled = client.patch(f"/modules/{module['id']}/status", json={"completed": True}, headers=student_headers)
    assert not_enrolled.status_code == 403

    client.post(f"/courses/{course['id']}/enroll", json={}, headers=student_headers)
    done = client.patch(f"/modules/{module['id']}/status", json={"completed": True}, headers=student_headers)
    assert done.status_code == 200, done.text
    assert done.json()["data"]["completed"] is True

    [entry] = client.get(f"/users/{student_id}/enrolled-courses", headers=admin_headers).json()["data"]
    assert entry["course"]["modules"][0]["status"] == "Completed"
    assert entry["course"]["categories"] == [{"id": category["id"], "name": "Data"}]


def test_error_helpers_map_domain_and_internal_failures():
    rejected = domain_error("approve review", ReviewAlreadyApproved())
    assert rejected.status_code == 409
    assert rejected.detail == "Submission review has already been approved"

    crashed = internal_error("submit assessment", RuntimeError("boom"))
    assert crashed.status_code == 500
    assert crashed.detail == "Failed to submit assessment: boom"
