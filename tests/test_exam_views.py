import sys
from pathlib import Path

import pytest
from flask import Flask, g

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import exam  # noqa: E402
from api_client import BackendError  # noqa: E402
from dates import iso_now  # noqa: E402
from exam import EXAM_DATA_MISSING, CurrentExamStore, create_exam_blueprint  # noqa: E402


EXAM = {
    "_id": "e1",
    "title": "PMP Mock 1",
    "courseId": {"_id": "c1", "title": "PMP"},
    "timeLimit": 30,
    "resultMethod": "manual",
    "questions": [
        {"_id": "q1", "question": "Pick one", "options": ["A", "B", "C"]},
        {"_id": "q2", "question": "Pick many", "options": ["A", "B", "C"], "multipleChoiceQuestions": True},
    ],
}


@pytest.fixture
def rendered(monkeypatch):
    calls = []

    def fake_render_template(template_name, **context):
        calls.append((template_name, context))
        return f"{template_name}::ok"

    monkeypatch.setattr(exam, "render_template", fake_render_template)
    return calls


@pytest.fixture
def store():
    return CurrentExamStore()


@pytest.fixture
def client(services, store):
    app = Flask(__name__)
    app.testing = True
    app.secret_key = "test"

    @app.before_request
    def _set_user():
        g.user_email = "learner@example.com"

    app.register_blueprint(create_exam_blueprint("", {"services": services, "exam_store": store}))
    return app.test_client()


def _start_routes(backend):
    backend.routes[("GET", "/exam-attempts/start/e1")] = {
        "examAttempt": {"_id": "a1", "examId": "e1", "startTime": iso_now(), "answers": []},
        "exam": EXAM,
    }


def test_practice_tests_lists_exams_with_status(backend, client, rendered):
    backend.routes[("GET", "/exams/v1/available-exams")] = {"exams": [EXAM, {"_id": "e2", "title": "Mock 2"}]}
    backend.routes[("GET", "/exam-attempts/my-attempts")] = {
        "examAttempts": [{"_id": "a0", "examId": "e1", "isCompleted": True, "isResultShown": True, "percentage": 82}]
    }

    resp = client.get("/user-dashboard/practice-tests?status=completed")

    assert resp.status_code == 200
    assert resp.get_data(as_text=True) == "exam/practice_tests.html::ok"
    _, ctx = rendered[-1]
    assert [t["id"] for t in ctx["tests"]] == ["e1"]
    assert ctx["tests"][0]["action_label"] == "Retake"
    assert ctx["counts"]["all"] == 2
    assert ctx["counts"]["not-started"] == 1
    assert ctx["err"] is None


def test_practice_tests_resolve_plain_course_ids(backend, client, rendered):
    backend.routes[("GET", "/exams/v1/available-exams")] = {"exams": [{"_id": "e3", "title": "Mock 3", "courseId": "c9"}]}
    backend.routes[("GET", "/exam-attempts/my-attempts")] = {"examAttempts": []}
    backend.routes[("GET", "/courses/v1")] = {"courses": [{"_id": "c9", "title": "PRINCE2"}]}

    client.get("/user-dashboard/practice-tests")

    _, ctx = rendered[-1]
    assert ctx["tests"][0]["course_title"] == "PRINCE2"


def test_practice_tests_backend_failure_renders_error(backend, client, rendered):
    backend.routes[("GET", "/exams/v1/available-exams")] = BackendError("down", status=500)

    resp = client.get("/user-dashboard/practice-tests")

    assert resp.status_code == 200
    _, ctx = rendered[-1]
    assert ctx["tests"] == []
    assert ctx["err"] == "Failed to load practice tests. Please try again later."


def test_start_stores_bundle_and_take_renders_questions(backend, client, store, rendered):
    _start_routes(backend)

    resp = client.post("/user-dashboard/exam-attempts/start/e1")

    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/user-dashboard/exam-attempts/a1/take")
    assert store.get("learner@example.com", "a1")["exam"]["title"] == "PMP Mock 1"

    take = client.get("/user-dashboard/exam-attempts/a1/take")
    assert take.get_data(as_text=True) == "exam/take.html::ok"
    _, ctx = rendered[-1]
    assert ctx["missing"] is False
    assert [q["id"] for q in ctx["questions"]] == ["q1", "q2"]
    assert 0 < ctx["seconds_left"] <= 30 * 60


def test_take_without_stored_exam_shows_missing_message(client, rendered):
    client.get("/user-dashboard/exam-attempts/zzz/take")
    _, ctx = rendered[-1]
    assert ctx["missing"] is True
    assert ctx["err"] == EXAM_DATA_MISSING


def test_start_failure_redirects_back_without_storing(backend, client, store):
    backend.routes[("GET", "/exam-attempts/start/e1")] = BackendError("Maximum attempts reached", status=400)
    backend.routes[("GET", "/exams/v1/e1")] = {"exam": dict(EXAM, resultMethod="auto")}

    resp = client.post("/user-dashboard/exam-attempts/start/e1")

    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/user-dashboard/exam-attempts/start/e1")
    assert store.get("learner@example.com") is None


def test_save_progress_json_sends_every_question(backend, client, store):
    _start_routes(backend)
    backend.routes[("POST", "/exam-attempts/save-progress/a1")] = {"message": "saved"}
    client.post("/user-dashboard/exam-attempts/start/e1")

    resp = client.post(
        "/user-dashboard/exam-attempts/a1/save",
        json={"answers": {"q1": {"selectedOptions": ["B", "C"]}, "q2": {"selectedOptions": ["A", "Z"], "userDescription": " hmm "}}},
    )

    assert resp.status_code == 200
    assert resp.get_json() == {"ok": True, "saved": 2}
    body = backend.calls_to("POST", "/exam-attempts/save-progress/a1")[0]["body"]
    assert [a["selectedOptions"] for a in body["answers"]] == [["B"], ["A"]]
    assert body["answers"][1]["userDescription"] == "hmm"
    stored = store.get("learner@example.com", "a1")["examAttempt"]["answers"]
    assert stored == body["answers"]


def test_save_without_stored_exam_returns_404_json(client):
    resp = client.post("/user-dashboard/exam-attempts/a9/save", json={"answers": {}})
    assert resp.status_code == 404
    assert resp.get_json()["error"] == EXAM_DATA_MISSING


def test_submit_posts_answers_and_clears_store(backend, client, store):
    _start_routes(backend)
    backend.routes[("POST", "/exam-attempts/submit/a1")] = {"message": "submitted"}
    client.post("/user-dashboard/exam-attempts/start/e1")

    resp = client.post(
        "/user-dashboard/exam-attempts/a1/submit",
        data={"q_q1": "A", "q_q2": ["B", "C"], "desc_q1": "first guess"},
    )

    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/user-dashboard/exam-attempts/a1/result")
    body = backend.calls_to("POST", "/exam-attempts/submit/a1")[0]["body"]
    assert body["answers"][0]["selectedOptions"] == ["A"]
    assert body["answers"][0]["userDescription"] == "first guess"
    assert body["answers"][1]["selectedOptions"] == ["B", "C"]
    assert body["endTime"].endswith("Z")
    assert body["timeSpent"] == 0
    assert store.get("learner@example.com") is None


def test_submit_failure_keeps_answers_for_retry(backend, client, store):
    _start_routes(backend)
    backend.routes[("POST", "/exam-attempts/submit/a1")] = BackendError("Exam time is over", status=400)
    client.post("/user-dashboard/exam-attempts/start/e1")

    resp = client.post("/user-dashboard/exam-attempts/a1/submit", data={"q_q1": "C"})

    assert resp.headers["Location"].endswith("/user-dashboard/exam-attempts/a1/take")
    saved = store.get("learner@example.com", "a1")["examAttempt"]["answers"]
    assert saved[0]["selectedOptions"] == ["C"]


def test_resume_replaces_current_exam(backend, client, store):
    backend.routes[("GET", "/exam-attempts/resume/a7")] = {
        "data": {"examAttempt": {"_id": "a7", "examId": EXAM, "startTime": iso_now()}}
    }

    resp = client.post("/user-dashboard/exam-attempts/a7/resume")

    assert resp.headers["Location"].endswith("/user-dashboard/exam-attempts/a7/take")
    assert store.get("learner@example.com", "a7")["exam"]["_id"] == "e1"


def test_result_expands_one_question(backend, client, rendered):
    backend.routes[("GET", "/exam-attempts/result/a1")] = {"examResult": {
        "_id": "a1", "examId": {"_id": "e1", "title": "PMP Mock 1"}, "courseId": {"_id": "c1", "title": "PMP"},
        "isCompleted": True, "isResultShown": True, "percentage": 65,
        "answers": [
            {"questionId": "q1", "question": "Pick one", "selectedOptions": ["A"], "correctAnswers": ["B"], "isCorrect": False},
            {"questionId": "q2", "question": "Pick many", "selectedOptions": ["A"], "correctAnswers": ["A"], "isCorrect": True},
        ],
    }}

    client.get("/user-dashboard/exam-attempts/a1/result?expand=q2")

    _, ctx = rendered[-1]
    assert ctx["label"] == "Completed"
    assert ctx["color"] == "yellow"
    assert ctx["exam_title"] == "PMP Mock 1"
    assert [a["expanded"] for a in ctx["answers"]] == [False, True]


def test_store_only_returns_matching_attempt():
    store = CurrentExamStore()
    store.put("a@example.com", {"examAttempt": {"_id": "a1"}, "exam": {}})
    assert store.get("a@example.com", "a1") is not None
    assert store.get("a@example.com", "a2") is None
    store.clear("a@example.com")
    assert store.get("a@example.com") is None
