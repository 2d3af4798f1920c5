import sys
from pathlib import Path

import pytest
from flask import Flask, g

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import admin  # noqa: E402
from admin import create_admin_blueprint  # noqa: E402


COUPON = {
    "_id": "k1",
    "courseId": "c1",
    "country": "IN",
    "discountCode": "SAVE2030",
    "couponLimit": 10,
    "expiryDate": "2030-06-30T00:00:00.000Z",
    "discountPrice": 250,
    "isActive": True,
}
PAYLOAD_KEYS = ("courseId", "country", "discountCode", "couponLimit", "expiryDate", "discountPrice", "isActive")


@pytest.fixture
def rendered(monkeypatch):
    calls = []

    def fake_render_template(template_name, **context):
        calls.append((template_name, context))
        return f"{template_name}::ok"

    monkeypatch.setattr(admin, "render_template", fake_render_template)
    return calls


def _make_client(services, role="admin"):
    app = Flask(__name__)
    app.testing = True
    app.secret_key = "test"

    @app.before_request
    def _set_user():
        g.user_email = "admin@example.com"
        g.user_role = role

    app.register_blueprint(create_admin_blueprint("", {"services": services, "admin_roles": {"admin", "superadmin"}}))
    return app.test_client()


@pytest.fixture
def client(services):
    return _make_client(services)


def _as_form(values):
    """Form values as a browser would post them back."""
    data = {}
    for k, v in values.items():
        if isinstance(v, bool):
            if v:
                data[k] = "1"
        elif isinstance(v, list):
            data[k] = v
        else:
            data[k] = str(v)
    return data


def test_non_admin_is_forbidden(services):
    resp = _make_client(services, role="user").get("/dashboard/courses")
    assert resp.status_code == 403


def test_course_list_filters_by_search_and_status(backend, client, rendered):
    backend.routes[("GET", "/courses/v1")] = {"courses": [
        {"_id": "c1", "title": "PMP Bootcamp", "categoryId": {"_id": "k", "name": "PM"}, "isActive": True},
        {"_id": "c2", "title": "CAPM", "categoryId": "k", "isActive": False},
        {"_id": "c3", "title": "PMP Old", "isActive": True, "isDeleted": True},
    ]}

    client.get("/dashboard/courses?q=pmp&status=active")

    name, ctx = rendered[-1]
    assert name == "admin/list.html"
    assert [r["id"] for r in ctx["rows"]] == ["c1"]
    assert ctx["rows"][0]["cells"] == ["PMP Bootcamp", "PM"]
    assert ctx["rows"][0]["status"] == "Active"


def test_unchanged_coupon_edit_sends_original_record(backend, client, rendered):
    backend.routes[("GET", "/coupon-codes/v1/k1")] = {"couponCode": COUPON}
    backend.routes[("PUT", "/coupon-codes/v1/k1")] = {"couponCode": COUPON}

    client.get("/dashboard/coupon-codes/edit/k1")
    _, ctx = rendered[-1]
    assert ctx["values"]["expiryDate"] == "2030-06-30"

    resp = client.post("/dashboard/coupon-codes/edit/k1", data=_as_form(ctx["values"]))

    assert resp.status_code == 302
    body = backend.calls_to("PUT", "/coupon-codes/v1/k1")[0]["body"]
    assert body == {k: COUPON[k] for k in PAYLOAD_KEYS}


def test_expired_coupon_cannot_be_toggled(backend, client):
    backend.routes[("GET", "/coupon-codes/v1/k1")] = {"couponCode": dict(COUPON, expiryDate="2001-01-01", isActive=False)}

    resp = client.post("/dashboard/coupon-codes/k1/toggle")

    assert resp.status_code == 302
    assert "err=" in resp.headers["Location"]
    assert backend.calls_to("PUT", "/coupon-codes/v1/k1/active") == []


def test_toggle_flips_active_flag(backend, client):
    backend.routes[("GET", "/coupon-codes/v1/k1")] = {"couponCode": COUPON}
    backend.routes[("PUT", "/coupon-codes/v1/k1/active")] = {"message": "ok"}

    client.post("/dashboard/coupon-codes/k1/toggle")

    assert backend.calls_to("PUT", "/coupon-codes/v1/k1/active")[0]["body"] == {"isActive": False}


def test_generate_code_rerenders_form_without_creating(backend, client, rendered):
    resp = client.post("/dashboard/coupon-codes/add", data={"generate": "1", "discountCode": "", "country": "IN"})

    assert resp.status_code == 200
    _, ctx = rendered[-1]
    assert len(ctx["values"]["discountCode"]) == 8
    assert ctx["values"]["country"] == "IN"
    assert backend.calls_to("POST", "/coupon-codes/v1") == []


def test_category_edit_only_calls_active_endpoint_when_status_changes(backend, client, rendered):
    category = {"_id": "cat1", "name": "Agile", "description": "Scrum & co", "isActive": True,
                "image": [{"path": "/img/agile.png", "key": "agile", "_id": "img1", "mimetype": "image/png"}]}
    backend.routes[("GET", "/courses-categories/v1/cat1")] = {"courseCategory": category}
    backend.routes[("PUT", "/courses-categories/v1/cat1")] = {"courseCategory": category}
    backend.routes[("PUT", "/courses-categories/v1/cat1/active")] = {"message": "ok"}

    client.get("/dashboard/course-categories/edit/cat1")
    _, ctx = rendered[-1]
    client.post("/dashboard/course-categories/edit/cat1", data=_as_form(ctx["values"]))

    body = backend.calls_to("PUT", "/courses-categories/v1/cat1")[0]["body"]
    assert body == {"name": "Agile", "description": "Scrum & co",
                    "image": [{"path": "/img/agile.png", "key": "agile", "_id": "img1"}]}
    assert backend.calls_to("PUT", "/courses-categories/v1/cat1/active") == []

    client.post("/dashboard/course-categories/edit/cat1", data={"name": "Agile", "description": "Scrum & co"})
    assert backend.calls_to("PUT", "/courses-categories/v1/cat1/active")[0]["body"] == {"isActive": False}


def test_schedule_with_offer_above_standard_is_not_sent(backend, client, rendered):
    resp = client.post("/dashboard/schedules/add", data={
        "courseId": "c1", "country": "IN", "scheduleType": "online",
        "startDate": "2030-01-01", "endDate": "2030-01-31", "days": ["Monday"],
        "instructorName": "Asha", "standardPrice": "100", "offerPrice": "150",
    })

    assert resp.status_code == 200
    _, ctx = rendered[-1]
    assert ctx["errors"] == ["Offer price cannot be higher than standard price"]
    assert backend.calls_to("POST", "/schedules/v1") == []


def test_delete_needs_confirmation(backend, client, rendered):
    backend.routes[("GET", "/users/v1/u1")] = {"user": {"_id": "u1", "fullName": "Ravi", "email": "r@example.com"}}
    backend.routes[("DELETE", "/users/v1/u1")] = {"message": "deleted"}

    client.get("/dashboard/users/u1/delete")
    name, ctx = rendered[-1]
    assert name == "admin/confirm.html"
    assert ctx["summary"] == "Ravi"
    assert backend.calls_to("DELETE", "/users/v1/u1") == []

    resp = client.post("/dashboard/users/u1/delete")
    assert resp.status_code == 302
    assert len(backend.calls_to("DELETE", "/users/v1/u1")) == 1


def test_restore_calls_undo_delete(backend, client):
    backend.routes[("GET", "/exams/v1/e1")] = {"exam": {"_id": "e1", "title": "Mock", "isDeleted": True}}
    backend.routes[("PUT", "/exams/v1/e1/undo-delete")] = {"message": "restored"}

    resp = client.post("/dashboard/exams/e1/restore")

    assert resp.status_code == 302
    assert "msg=" in resp.headers["Location"]
    assert len(backend.calls_to("PUT", "/exams/v1/e1/undo-delete")) == 1


def test_faq_edit_updates_existing_record(backend, client):
    backend.routes[("GET", "/courses/v1/c1")] = {"course": {"_id": "c1", "title": "PMP"}}
    backend.routes[("GET", "/faqs/v1")] = {"faqs": [
        {"_id": "f1", "courseId": {"_id": "c1"}, "faqs": [{"_id": "x", "question": "Q?", "answer": "A."}]},
    ]}
    backend.routes[("PUT", "/faqs/v1/f1")] = {"faq": {}}

    resp = client.post("/dashboard/faqs/edit/c1", data={
        "question_0": "Q?", "answer_0": "A.", "faq_id_0": "x",
        "question_1": "", "answer_1": "",
    })

    assert resp.status_code == 302
    body = backend.calls_to("PUT", "/faqs/v1/f1")[0]["body"]
    assert body == {"courseId": "c1", "faqs": [{"_id": "x", "question": "Q?", "answer": "A."}]}


def test_faq_edit_creates_record_and_blocks_partial_rows(backend, client, rendered):
    backend.routes[("GET", "/courses/v1/c2")] = {"course": {"_id": "c2", "title": "CAPM"}}
    backend.routes[("GET", "/faqs/v1")] = {"faqs": []}
    backend.routes[("POST", "/faqs/v1")] = {"faq": {}}

    client.post("/dashboard/faqs/edit/c2", data={"question_0": "Half?", "answer_0": ""})
    _, ctx = rendered[-1]
    assert ctx["row_errors"] == {0: ["Answer is required"]}
    assert backend.calls_to("POST", "/faqs/v1") == []

    client.post("/dashboard/faqs/edit/c2", data={"question_0": "Full?", "answer_0": "Yes."})
    assert backend.calls_to("POST", "/faqs/v1")[0]["body"] == {"courseId": "c2", "faqs": [{"question": "Full?", "answer": "Yes."}]}


ATTEMPT = {
    "_id": "t1",
    "userId": {"_id": "u1", "fullName": "Ravi", "email": "r@example.com"},
    "examId": {"_id": "e1", "title": "Mock"},
    "totalQuestions": 4,
    "correctAnswers": 2,
    "incorrectAnswers": 2,
    "percentage": 50,
    "isCompleted": False,
}


def test_attempt_edit_with_mismatched_totals_is_blocked(backend, client, rendered):
    backend.routes[("GET", "/exam-attempts/v1/t1")] = {"examAttempt": ATTEMPT}

    resp = client.post("/dashboard/exam-attempts/edit/t1", data={"correctAnswers": "3", "incorrectAnswers": "0"})

    assert resp.status_code == 200
    _, ctx = rendered[-1]
    assert ctx["error"] == "Total answers (3) must equal total questions (4)"
    assert backend.calls_to("PUT", "/exam-attempts/v1/t1") == []


def test_attempt_edit_success_marks_completed(backend, client):
    backend.routes[("GET", "/exam-attempts/v1/t1")] = {"examAttempt": ATTEMPT}
    backend.routes[("PUT", "/exam-attempts/v1/t1")] = {"examAttempt": ATTEMPT}

    resp = client.post("/dashboard/exam-attempts/edit/t1", data={
        "correctAnswers": "3", "incorrectAnswers": "1", "percentage": "0", "isResultShown": "1",
    })

    assert resp.status_code == 302
    assert resp.headers["Location"].startswith("/dashboard/exam-attempts/t1")
    body = backend.calls_to("PUT", "/exam-attempts/v1/t1")[0]["body"]
    assert body["isCompleted"] is True
    assert body["percentage"] == 75
    assert body["isResultShown"] is True



@pytest.mark.parametrize("percentage", ["101", "-1", "100.5", "-0.5"])
def test_attempt_edit_with_out_of_range_percentage_is_blocked(backend, client, rendered, percentage):
    backend.routes[("GET", "/exam-attempts/v1/t1")] = {"examAttempt": ATTEMPT}

    resp = client.post("/dashboard/exam-attempts/edit/t1", data={
        "correctAnswers": "3", "incorrectAnswers": "1", "percentage": percentage,
    })

    assert resp.status_code == 200
    _, ctx = rendered[-1]
    assert ctx["error"] == "Percentage must be between 0 and 100"
    assert ctx["values"]["percentage"] == percentage
    assert backend.calls_to("PUT", "/exam-attempts/v1/t1") == []


def test_attempt_edit_keeps_auto_result_method(backend, client, rendered):
    backend.routes[("GET", "/exam-attempts/v1/t1")] = {"examAttempt": dict(ATTEMPT, resultMethod="auto")}
    backend.routes[("PUT", "/exam-attempts/v1/t1")] = {"examAttempt": ATTEMPT}

    client.get("/dashboard/exam-attempts/edit/t1")
    _, ctx = rendered[-1]
    assert ctx["values"]["resultMethod"] == "auto"
    assert "auto" in ctx["result_methods"]

    resp = client.post("/dashboard/exam-attempts/edit/t1", data={
        "correctAnswers": "3", "incorrectAnswers": "1", "percentage": "75", "resultMethod": "auto",
    })

    assert resp.status_code == 302
    body = backend.calls_to("PUT", "/exam-attempts/v1/t1")[0]["body"]
    assert body["resultMethod"] == "auto"
    assert body["percentage"] == 75


def test_attempt_list_treats_missing_collection_as_empty(client, rendered):
    client.get("/dashboard/exam-attempts")
    _, ctx = rendered[-1]
    assert ctx["rows"] == []
    assert ctx["err"] is None


def test_show_results_publishes_for_exam(backend, client):
    backend.routes[("PUT", "/exam-attempts/v1/exam/e1/show-results")] = {"message": "ok"}

    resp = client.post("/dashboard/exam-attempts/show-results/e1")

    assert resp.status_code == 302
    assert "exam=e1" in resp.headers["Location"]
    assert len(backend.calls_to("PUT", "/exam-attempts/v1/exam/e1/show-results")) == 1
