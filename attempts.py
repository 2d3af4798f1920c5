# attempts.py
# -----------------------------------------------------------------------------
# Exam-attempt logic shared by the learner and admin views:
# - practice-test status derivation (exams x my attempts)
# - answer-sheet building for save/submit
# - timer maths + clock formatting
# - admin score-override validation
# No Flask imports here; everything is plain data in, plain data out.
# -----------------------------------------------------------------------------

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from api_client import ref_id, ref_title
from dates import parse_datetime, utcnow

STATUS_NOT_STARTED = "not-started"
STATUS_IN_PROGRESS = "in-progress"
STATUS_COMPLETED = "completed"
STATUS_FILTERS = ("all", STATUS_NOT_STARTED, STATUS_IN_PROGRESS, STATUS_COMPLETED)

DEFAULT_TIME_LIMIT_MIN = 60
RESULT_METHODS = ("manual", "auto")
_RESULT_METHOD_ALIASES = {"automatic": "auto"}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def round_half_up(x: float) -> int:
    return int(x + 0.5) if x >= 0 else -int(-x + 0.5)


def as_int(v: Any, default: int = 0) -> int:
    try:
        return int(float(v))
    except (TypeError, ValueError):
        return default


def as_number(v: Any, default: Optional[float] = 0) -> Optional[float]:
    """Plain float parse; blank gives `default`, garbage gives None."""
    s = str(v if v is not None else "").strip()
    if not s:
        return default
    try:
        n = float(s)
    except ValueError:
        return None
    if n != n or n in (float("inf"), float("-inf")):
        return None
    return int(n) if n.is_integer() else n


def normalize_result_method(value: Any) -> str:
    method = str(value or "").strip().lower()
    method = _RESULT_METHOD_ALIASES.get(method, method)
    return method if method in RESULT_METHODS else "manual"


# ------------------------------ catalog / status -----------------------------
def _attempt_sort_key(attempt: Dict[str, Any]) -> datetime:
    for key in ("updatedAt", "startTime", "createdAt"):
        dt = parse_datetime(attempt.get(key))
        if dt:
            return dt
    return _EPOCH


def latest_attempt(attempts: Iterable[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    latest = None
    latest_key = None
    for a in attempts or []:
        k = _attempt_sort_key(a)
        if latest is None or k >= latest_key:
            latest, latest_key = a, k
    return latest


def attempts_for_exam(exam_id: Any, attempts: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    eid = ref_id(exam_id)
    return [a for a in attempts or [] if eid and ref_id(a.get("examId")) == eid]


def derive_status(attempts: List[Dict[str, Any]]) -> str:
    latest = latest_attempt(attempts)
    if latest is None:
        return STATUS_NOT_STARTED
    if latest.get("isCompleted"):
        return STATUS_COMPLETED
    return STATUS_IN_PROGRESS


def answered_count(attempt: Optional[Dict[str, Any]]) -> int:
    n = 0
    for ans in (attempt or {}).get("answers") or []:
        if isinstance(ans, dict) and (ans.get("selectedOptions") or (ans.get("userDescription") or "").strip()):
            n += 1
    return n


def progress_percent(status: str, answered: int, total: int) -> int:
    if status == STATUS_COMPLETED:
        return 100
    if status == STATUS_NOT_STARTED or not total:
        return 0
    return min(100, round_half_up(answered / total * 100))


def action_label(status: str, attempts: int, max_attempts: Optional[int]) -> str:
    if status == STATUS_COMPLETED:
        if max_attempts and attempts >= max_attempts:
            return "View Results"
        return "Retake"
    if status == STATUS_IN_PROGRESS:
        return "Resume"
    return "Start Test"


def derive_practice_tests(
    exams: List[Dict[str, Any]],
    attempts: List[Dict[str, Any]],
    course_lookup: Optional[Dict[str, str]] = None,
) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for exam in exams or []:
        eid = ref_id(exam)
        if not eid:
            continue
        matching = attempts_for_exam(eid, attempts)
        latest = latest_attempt(matching)
        status = derive_status(matching)
        completed = [a for a in matching if a.get("isCompleted")]
        last_completed = latest_attempt(completed)

        total = as_int((latest or {}).get("totalQuestions")) or as_int(exam.get("totalQuestions"))
        answered = answered_count(latest)
        max_attempts = as_int(exam.get("maxAttempts")) or None

        out.append({
            "id": eid,
            "title": exam.get("title") or "Untitled exam",
            "description": exam.get("description") or "",
            "course_title": ref_title(exam.get("courseId"), course_lookup),
            "duration": as_int(exam.get("timeLimit")) or DEFAULT_TIME_LIMIT_MIN,
            "result_method": exam.get("resultMethod") or "manual",
            "status": status,
            "attempt_id": ref_id(latest) if latest else None,
            "attempts": len(matching),
            "max_attempts": max_attempts,
            "score": (last_completed or {}).get("percentage") if last_completed else None,
            "result_shown": bool((last_completed or {}).get("isResultShown")),
            "last_attempted": _attempt_sort_key(latest) if latest else None,
            "total_questions": total,
            "answered_questions": answered,
            "progress": progress_percent(status, answered, total),
            "action_label": action_label(status, len(matching), max_attempts),
        })
    return out


def filter_by_status(tests: List[Dict[str, Any]], status: Optional[str]) -> List[Dict[str, Any]]:
    if not status or status == "all":
        return list(tests)
    return [t for t in tests if t.get("status") == status]


def status_counts(tests: List[Dict[str, Any]]) -> Dict[str, int]:
    counts = {s: 0 for s in STATUS_FILTERS}
    counts["all"] = len(tests)
    for t in tests:
        if t.get("status") in counts:
            counts[t["status"]] += 1
    return counts


# ------------------------------ result display -------------------------------
def score_color(percentage: Any) -> str:
    pct = as_int(percentage)
    if pct >= 80:
        return "green"
    if pct >= 60:
        return "yellow"
    return "red"


def attempt_status_label(attempt: Dict[str, Any]) -> str:
    if not attempt.get("isCompleted"):
        return "In Progress"
    if attempt.get("isResultShown"):
        return "Completed"
    return "Pending Review"


# ------------------------------ taking an exam -------------------------------
def exam_questions(exam: Dict[str, Any]) -> List[Dict[str, Any]]:
    out = []
    for q in (exam or {}).get("questions") or []:
        if not isinstance(q, dict):
            continue
        qid = ref_id(q)
        if not qid:
            continue
        out.append({
            "id": qid,
            "question": q.get("question") or "",
            "options": [str(o) for o in (q.get("options") or [])],
            "multiple": bool(q.get("multipleChoiceQuestions")),
        })
    return out


def answers_from_attempt(attempt: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """questionId -> {'selectedOptions': [...], 'userDescription': str} from saved progress."""
    out: Dict[str, Dict[str, Any]] = {}
    for ans in (attempt or {}).get("answers") or []:
        if not isinstance(ans, dict):
            continue
        qid = ref_id(ans.get("questionId"))
        if not qid:
            continue
        out[qid] = {
            "selectedOptions": list(ans.get("selectedOptions") or []),
            "userDescription": ans.get("userDescription") or "",
        }
    return out


def selection_from_form(question: Dict[str, Any], values: List[str]) -> List[str]:
    """Keeps only offered options; single-choice questions keep the first one."""
    allowed = set(question.get("options") or [])
    picked: List[str] = []
    for v in values or []:
        if v in allowed and v not in picked:
            picked.append(v)
    if not question.get("multiple"):
        return picked[:1]
    return picked


def build_answers_payload(questions: List[Dict[str, Any]], answers: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
    payload = []
    for q in questions:
        a = answers.get(q["id"]) or {}
        payload.append({
            "questionId": q["id"],
            "question": q["question"],
            "selectedOptions": list(a.get("selectedOptions") or []),
            "correctAnswers": [],
            "isCorrect": None,
            "answerDescription": "",
            "userDescription": a.get("userDescription") or "",
        })
    return payload


def time_limit_seconds(exam: Dict[str, Any]) -> int:
    return (as_int((exam or {}).get("timeLimit")) or DEFAULT_TIME_LIMIT_MIN) * 60


def seconds_left(attempt: Dict[str, Any], exam: Dict[str, Any], now: Optional[datetime] = None) -> int:
    limit = time_limit_seconds(exam)
    start = parse_datetime((attempt or {}).get("startTime"))
    if start is None:
        return limit
    elapsed = int(((now or utcnow()) - start).total_seconds())
    return max(0, limit - max(0, elapsed))


def time_spent_minutes(exam: Dict[str, Any], left: int) -> int:
    return max(0, (time_limit_seconds(exam) - max(0, int(left))) // 60)


def format_clock(seconds: Any) -> str:
    s = max(0, as_int(seconds))
    h, rem = divmod(s, 3600)
    m, sec = divmod(rem, 60)
    if h:
        return f"{h}:{m:02d}:{sec:02d}"
    return f"{m}:{sec:02d}"


# ------------------------------ admin override -------------------------------
def parse_attempt_form(form: Any) -> Dict[str, Any]:
    return {
        "percentage": as_number(form.get("percentage")),
        "correctAnswers": as_int(form.get("correctAnswers")),
        "incorrectAnswers": as_int(form.get("incorrectAnswers")),
        "timeSpent": as_int(form.get("timeSpent")),
        "endTime": (form.get("endTime") or "").strip() or None,
        "resultMethod": normalize_result_method(form.get("resultMethod")),
        "isResultShown": (form.get("isResultShown") or "").lower() in ("1", "true", "on", "yes"),
    }


def validate_attempt_edit(data: Dict[str, Any], total_questions: int) -> Optional[str]:
    total_answers = as_int(data.get("correctAnswers")) + as_int(data.get("incorrectAnswers"))
    if total_answers != as_int(total_questions):
        return f"Total answers ({total_answers}) must equal total questions ({as_int(total_questions)})"
    pct = as_number(data.get("percentage"))
    if pct is None or pct < 0 or pct > 100:
        return "Percentage must be between 0 and 100"
    return None


def build_attempt_update(data: Dict[str, Any], total_questions: int) -> Dict[str, Any]:
    total = as_int(total_questions)
    raw = as_number(data.get("percentage")) or 0
    pct = round_half_up(raw)
    if raw == 0 and total:
        pct = round_half_up(as_int(data.get("correctAnswers")) / total * 100)
    payload = {**data, "percentage": pct, "isCompleted": True}
    if not payload.get("endTime"):
        payload.pop("endTime", None)
    return payload
