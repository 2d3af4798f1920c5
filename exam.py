# exam.py
# -----------------------------------------------------------------------------
# Learner exam engine on top of the backend exam-attempt API.
# - Practice tests: available exams joined with my attempts -> status chips
# - Start / resume: backend creates or reopens the attempt; the returned
#   {examAttempt, exam} bundle is kept in the process-wide current-exam store
# - Take: one form with every question, countdown that auto-submits at 0
# - Save progress (form or JSON), submit, result with per-question review
# -----------------------------------------------------------------------------

import threading
from typing import Any, Dict, List, Optional

from flask import (
    Blueprint, request, jsonify, render_template, redirect, url_for, flash, g
)

from api_client import BackendError, ref_id, ref_title
from attempts import (
    STATUS_FILTERS, answers_from_attempt, attempt_status_label, build_answers_payload,
    derive_practice_tests, exam_questions, filter_by_status, format_clock,
    score_color, seconds_left, selection_from_form, status_counts, time_spent_minutes,
)
from dates import iso_now

EXAM_DATA_MISSING = "Exam data not found. Please start the exam again."


class CurrentExamStore:
    """Process-wide 'current exam' bundle per learner, overwritten on start/resume, cleared on submit."""

    def __init__(self):
        self._lock = threading.Lock()
        self._data: Dict[str, Dict[str, Any]] = {}

    def put(self, user_key: str, bundle: Dict[str, Any]):
        with self._lock:
            self._data[user_key] = bundle

    def get(self, user_key: str, attempt_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        with self._lock:
            bundle = self._data.get(user_key)
        if not bundle:
            return None
        if attempt_id is not None and ref_id(bundle.get("examAttempt")) != str(attempt_id):
            return None
        return bundle

    def update_answers(self, user_key: str, answers: List[Dict[str, Any]]):
        with self._lock:
            bundle = self._data.get(user_key)
            if bundle:
                bundle["examAttempt"] = {**(bundle.get("examAttempt") or {}), "answers": answers}

    def clear(self, user_key: str):
        with self._lock:
            self._data.pop(user_key, None)


current_exams = CurrentExamStore()


# -----------------------------------------------------------------------------
# Blueprint factory
# -----------------------------------------------------------------------------
def create_exam_blueprint(base_path: str, deps: Dict[str, Any], name: str = "exam") -> Blueprint:
    """
    Factory that returns a Blueprint mounted at <base_path>/user-dashboard.
    Required deps: services
    Optional deps: exam_store (defaults to the module-level current_exams)
    """
    url_prefix = (base_path.rstrip("/") if base_path else "") + "/user-dashboard"
    bp = Blueprint(name, __name__, url_prefix=url_prefix)

    services = deps["services"]
    store: CurrentExamStore = deps.get("exam_store") or current_exams

    def _user_key() -> str:
        return (getattr(g, "user_email", None) or "anonymous").lower()

    # ------------------------------- answers ---------------------------------
    def _answers_from_form(questions: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        out = {}
        for q in questions:
            out[q["id"]] = {
                "selectedOptions": selection_from_form(q, request.form.getlist(f"q_{q['id']}")),
                "userDescription": (request.form.get(f"desc_{q['id']}") or "").strip(),
            }
        return out

    def _answers_from_json(questions: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        body = request.get_json(silent=True) or {}
        raw = body.get("answers") or {}
        out = {}
        for q in questions:
            a = raw.get(q["id"]) or {}
            picked = a.get("selectedOptions") or []
            out[q["id"]] = {
                "selectedOptions": selection_from_form(q, [str(x) for x in picked]),
                "userDescription": str(a.get("userDescription") or "").strip(),
            }
        return out

    # ------------------------------- catalog ---------------------------------
    @bp.get("/practice-tests")
    def practice_tests():
        status = request.args.get("status") or "all"
        if status not in STATUS_FILTERS:
            status = "all"
        try:
            exams = services.exams.available()
            attempts = services.attempts.my_attempts()
        except BackendError as e:
            print(f"[exam] practice tests load failed for {_user_key()}: {e}")
            return render_template(
                "exam/practice_tests.html", tests=[], counts=status_counts([]), status=status,
                filters=STATUS_FILTERS, err="Failed to load practice tests. Please try again later.",
            )
        tests = derive_practice_tests(exams, attempts, course_lookup=services.courses.lookup())
        return render_template(
            "exam/practice_tests.html",
            tests=filter_by_status(tests, status),
            counts=status_counts(tests),
            status=status,
            filters=STATUS_FILTERS,
            err=None,
        )

    @bp.get("/exam-attempts")
    def my_attempts():
        err = None
        try:
            rows = services.attempts.my_attempts()
        except BackendError as e:
            rows, err = [], e.message
        items = []
        for a in rows:
            items.append({
                "id": ref_id(a),
                "exam_title": ref_title(a.get("examId"), default="Exam"),
                "course_title": ref_title(a.get("courseId")),
                "label": attempt_status_label(a),
                "is_completed": bool(a.get("isCompleted")),
                "percentage": a.get("percentage"),
                "color": score_color(a.get("percentage")),
                "start_time": a.get("startTime"),
                "time_spent": a.get("timeSpent"),
            })
        return render_template("exam/attempts.html", attempts=items, err=err)

    # ------------------------------- start / resume --------------------------
    @bp.get("/exam-attempts/start/<exam_id>")
    def start_page(exam_id: str):
        try:
            exam = services.exams.get(exam_id)
        except BackendError as e:
            return render_template("exam/start.html", exam=None, exam_id=exam_id, err=e.message)
        if not exam:
            return render_template("exam/start.html", exam=None, exam_id=exam_id, err="Exam not found")
        return render_template(
            "exam/start.html",
            exam=exam,
            exam_id=exam_id,
            course_title=ref_title(exam.get("courseId")),
            err=None,
        )

    @bp.post("/exam-attempts/start/<exam_id>")
    def start_attempt(exam_id: str):
        try:
            bundle = services.attempts.start(exam_id)
        except BackendError as e:
            try:
                exam = services.exams.get(exam_id) or {}
            except BackendError as lookup_err:
                print(f"[exam] exam lookup failed for {exam_id}: {lookup_err}")
                exam = {}
            if exam.get("resultMethod") == "auto":
                print(f"[exam] start failed for auto-graded exam {exam_id} ({_user_key()}): {e}")
            flash(e.message or "Failed to start exam attempt", "error")
            return redirect(url_for(".start_page", exam_id=exam_id))
        attempt_id = ref_id(bundle.get("examAttempt"))
        if not attempt_id:
            flash("Failed to start exam attempt", "error")
            return redirect(url_for(".start_page", exam_id=exam_id))
        store.put(_user_key(), bundle)
        return redirect(url_for(".take", attempt_id=attempt_id))

    @bp.post("/exam-attempts/<attempt_id>/resume")
    def resume_attempt(attempt_id: str):
        try:
            bundle = services.attempts.resume(attempt_id)
        except BackendError as e:
            flash(e.message or "Failed to resume exam attempt", "error")
            return redirect(url_for(".practice_tests"))
        if ref_id(bundle.get("examAttempt")) != attempt_id:
            flash("Failed to resume exam attempt", "error")
            return redirect(url_for(".practice_tests"))
        store.put(_user_key(), bundle)
        return redirect(url_for(".take", attempt_id=attempt_id))

    # ------------------------------- take ------------------------------------
    @bp.get("/exam-attempts/<attempt_id>/take")
    def take(attempt_id: str):
        bundle = store.get(_user_key(), attempt_id)
        if not bundle:
            return render_template("exam/take.html", missing=True, err=EXAM_DATA_MISSING, attempt_id=attempt_id)
        exam = bundle.get("exam") or {}
        attempt = bundle.get("examAttempt") or {}
        left = seconds_left(attempt, exam)
        return render_template(
            "exam/take.html",
            missing=False,
            err=None,
            attempt_id=attempt_id,
            exam=exam,
            questions=exam_questions(exam),
            answers=answers_from_attempt(attempt),
            seconds_left=left,
            clock=format_clock(left),
        )

    @bp.post("/exam-attempts/<attempt_id>/save")
    def save(attempt_id: str):
        bundle = store.get(_user_key(), attempt_id)
        if not bundle:
            if request.is_json:
                return jsonify({"ok": False, "error": EXAM_DATA_MISSING}), 404
            flash(EXAM_DATA_MISSING, "error")
            return redirect(url_for(".practice_tests"))
        questions = exam_questions(bundle.get("exam") or {})
        answers = _answers_from_json(questions) if request.is_json else _answers_from_form(questions)
        payload = build_answers_payload(questions, answers)
        try:
            services.attempts.save_progress(attempt_id, payload)
        except BackendError as e:
            if request.is_json:
                return jsonify({"ok": False, "error": e.message}), 502
            flash(e.message, "error")
            return redirect(url_for(".take", attempt_id=attempt_id))
        store.update_answers(_user_key(), payload)
        if request.is_json:
            return jsonify({"ok": True, "saved": len(payload)})
        flash("Progress saved.", "success")
        return redirect(url_for(".take", attempt_id=attempt_id))

    @bp.post("/exam-attempts/<attempt_id>/submit")
    def submit(attempt_id: str):
        bundle = store.get(_user_key(), attempt_id)
        if not bundle:
            flash(EXAM_DATA_MISSING, "error")
            return redirect(url_for(".practice_tests"))
        exam = bundle.get("exam") or {}
        questions = exam_questions(exam)
        payload = build_answers_payload(questions, _answers_from_form(questions))
        left = seconds_left(bundle.get("examAttempt") or {}, exam)
        try:
            services.attempts.submit(attempt_id, payload, iso_now(), time_spent_minutes(exam, left))
        except BackendError as e:
            store.update_answers(_user_key(), payload)
            flash(e.message or "Failed to submit exam attempt", "error")
            return redirect(url_for(".take", attempt_id=attempt_id))
        store.clear(_user_key())
        return redirect(url_for(".result", attempt_id=attempt_id))

    # ------------------------------- result ----------------------------------
    @bp.get("/exam-attempts/<attempt_id>/result")
    def result(attempt_id: str):
        try:
            res = services.attempts.result(attempt_id)
        except BackendError as e:
            return render_template("exam/result.html", result=None, err=e.message or "Failed to fetch exam result")
        if not res:
            return render_template("exam/result.html", result=None, err="Exam result not found")

        expand = request.args.get("expand") or ""
        rows = []
        for ans in res.get("answers") or []:
            qid = ref_id(ans.get("questionId")) or ref_id(ans) or ""
            rows.append({
                "id": qid,
                "question": ans.get("question") or "",
                "selected": ans.get("selectedOptions") or [],
                "correct": ans.get("correctAnswers") or [],
                "is_correct": ans.get("isCorrect"),
                "explanation": ans.get("answerDescription") or "",
                "note": ans.get("userDescription") or "",
                "expanded": expand == "all" or expand == qid,
            })
        return render_template(
            "exam/result.html",
            result=res,
            err=None,
            exam_title=ref_title(res.get("examId"), default="Exam"),
            course_title=ref_title(res.get("courseId")),
            label=attempt_status_label(res),
            color=score_color(res.get("percentage")),
            answers=rows,
            expand=expand,
        )

    return bp
