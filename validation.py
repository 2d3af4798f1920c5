# validation.py
# -----------------------------------------------------------------------------
# Form parsing + pre-submit validation for every admin and account form.
# parse_*  : request.form (MultiDict) -> backend payload dict
# validate_*: payload dict -> ordered list of human-readable errors ([] = ok)
# Parsers accept the record being edited so untouched fields round-trip with
# their original values (ISO timestamps, numeric types, upload objects).
# -----------------------------------------------------------------------------

import re
import json
import secrets
import string
from typing import Any, Dict, List, Optional, Tuple

from dates import format_date_for_input, is_date_expired

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
URL_RE = re.compile(r"^https?://\S+$", re.IGNORECASE)

COUNTRY_CODES = ["IN", "US", "GB", "CA", "AU", "SG", "AE", "ALL"]
SCHEDULE_TYPES = ["online", "classroom", "self-paced"]
SCHEDULE_DAY_TYPES = ["weekend", "weekday"]
WEEK_DAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
ACCESS_DURATIONS = ["30", "60", "90", "180", "365"]
USER_ROLES = ["superadmin", "admin", "user"]
EXAM_RESULT_METHODS = ["manual", "auto"]
MIN_PASSWORD_LEN = 6
DISCOUNT_CODE_LEN = 8


# ------------------------------- small helpers -------------------------------
def _text(form: Any, key: str) -> str:
    return (form.get(key) or "").strip()


def _flag(form: Any, key: str) -> bool:
    return (form.get(key) or "").lower() in ("1", "true", "on", "yes")


def _number(value: Any) -> Optional[float]:
    s = str(value if value is not None else "").strip()
    if not s:
        return None
    try:
        n = float(s)
    except ValueError:
        return None
    return int(n) if n.is_integer() else n


def _keep_date(new_value: str, original: Any) -> Optional[str]:
    """Date inputs only carry YYYY-MM-DD; keep the original timestamp when the day is unchanged."""
    if not new_value:
        return None
    if original and format_date_for_input(original) == new_value:
        return original
    return new_value


def _keep_number(new_value: Any, original: Any) -> Any:
    n = _number(new_value)
    if n is not None and isinstance(original, (int, float)) and not isinstance(original, bool) and n == original:
        return original
    return n


# ------------------------------- coupon codes --------------------------------
def generate_discount_code(length: int = DISCOUNT_CODE_LEN) -> str:
    alphabet = string.ascii_uppercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def coupon_status(coupon: Dict[str, Any]) -> str:
    if is_date_expired(coupon.get("expiryDate")):
        return "Expired"
    return "Active" if coupon.get("isActive") else "Inactive"


def coupon_matches_filter(coupon: Dict[str, Any], status: Optional[str]) -> bool:
    if not status or status == "all":
        return True
    label = coupon_status(coupon).lower()
    if status == "deleted":
        return bool(coupon.get("isDeleted"))
    return label == status


def parse_coupon_form(form: Any, original: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    orig = original or {}
    return {
        "courseId": _text(form, "courseId"),
        "country": _text(form, "country"),
        "discountCode": _text(form, "discountCode").upper(),
        "couponLimit": _keep_number(_text(form, "couponLimit"), orig.get("couponLimit")),
        "expiryDate": _keep_date(_text(form, "expiryDate"), orig.get("expiryDate")),
        "discountPrice": _keep_number(_text(form, "discountPrice"), orig.get("discountPrice")),
        "isActive": _flag(form, "isActive"),
    }


def validate_coupon(data: Dict[str, Any]) -> List[str]:
    errors = []
    if not data.get("courseId"):
        errors.append("Course is required")
    if not data.get("country"):
        errors.append("Country is required")
    if not data.get("discountCode"):
        errors.append("Discount code is required")
    if not data.get("expiryDate"):
        errors.append("Expiry date is required")
    if (data.get("couponLimit") or 0) < 1:
        errors.append("Coupon limit must be at least 1")
    if (data.get("discountPrice") or 0) <= 0:
        errors.append("Discount price must be greater than 0")
    return errors


# ------------------------------- schedules -----------------------------------
def parse_schedule_form(form: Any, original: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    orig = original or {}
    stype = _text(form, "scheduleType") or "online"
    data: Dict[str, Any] = {
        "courseId": _text(form, "courseId"),
        "country": _text(form, "country"),
        "scheduleType": stype,
        "startDate": _keep_date(_text(form, "startDate"), orig.get("startDate")),
        "endDate": _keep_date(_text(form, "endDate"), orig.get("endDate")),
        "days": [d for d in form.getlist("days") if d],
        "type": _text(form, "type") or "weekday",
        "instructorName": _text(form, "instructorName"),
        "accessType": _text(form, "accessType"),
        "state": _text(form, "state"),
        "city": _text(form, "city"),
        "standardPrice": _keep_number(_text(form, "standardPrice"), orig.get("standardPrice")),
        "offerPrice": _keep_number(_text(form, "offerPrice"), orig.get("offerPrice")),
        "isActive": _flag(form, "isActive"),
    }
    if stype == "self-paced":
        data["days"] = data["days"] or list(orig.get("days") or [])
    return data


def validate_schedule(data: Dict[str, Any]) -> List[str]:
    errors = []
    if not data.get("courseId"):
        errors.append("Please select a course")
    if not data.get("country"):
        errors.append("Please enter a country")
    stype = data.get("scheduleType")
    if stype == "self-paced":
        if not data.get("accessType"):
            errors.append("Please select an access duration")
    else:
        start, end = data.get("startDate"), data.get("endDate")
        if not start:
            errors.append("Please select a start date")
        if not end:
            errors.append("Please select an end date")
        if start and end and format_date_for_input(start) > format_date_for_input(end):
            errors.append("Start date cannot be later than end date")
        if not data.get("days"):
            errors.append("Please select at least one day")
        if not data.get("instructorName"):
            errors.append("Please enter an instructor name for the scheduled course")
        if stype == "classroom":
            if not data.get("state"):
                errors.append("Please enter a state")
            if not data.get("city"):
                errors.append("Please enter a city")
    std, offer = data.get("standardPrice"), data.get("offerPrice")
    if (std is not None and std < 0) or (offer is not None and offer < 0):
        errors.append("Prices cannot be negative")
    if std is not None and offer is not None and offer > std:
        errors.append("Offer price cannot be higher than standard price")
    return errors


# ------------------------------- FAQs ----------------------------------------
def parse_faq_rows(form: Any) -> List[Dict[str, str]]:
    """Rows posted as question_<n> / answer_<n> / faq_id_<n>, in index order."""
    indexes = set()
    for key in form.keys():
        m = re.match(r"^(question|answer)_(\d+)$", key)
        if m:
            indexes.add(int(m.group(2)))
    rows = []
    for i in sorted(indexes):
        row = {"question": _text(form, f"question_{i}"), "answer": _text(form, f"answer_{i}")}
        fid = _text(form, f"faq_id_{i}")
        if fid:
            row = {"_id": fid, **row}
        rows.append(row)
    return rows


def faq_row_errors(rows: List[Dict[str, str]]) -> Dict[int, List[str]]:
    """Per-row errors for partially filled rows (fully blank rows are dropped, not flagged)."""
    out: Dict[int, List[str]] = {}
    for i, r in enumerate(rows):
        q, a = (r.get("question") or "").strip(), (r.get("answer") or "").strip()
        if not q and not a:
            continue
        errs = []
        if not q:
            errs.append("Question is required")
        if not a:
            errs.append("Answer is required")
        if errs:
            out[i] = errs
    return out


def clean_faqs(rows: List[Dict[str, str]]) -> Tuple[List[Dict[str, str]], List[str]]:
    kept = []
    for r in rows:
        q, a = (r.get("question") or "").strip(), (r.get("answer") or "").strip()
        if q and a:
            kept.append({**r, "question": q, "answer": a})
    errors = []
    if faq_row_errors(rows):
        errors.append("Please complete or clear every FAQ row.")
    if not kept:
        errors.append("Please add at least one FAQ with both question and answer.")
    return kept, errors


# ------------------------------- categories ----------------------------------
def parse_category_form(form: Any, original: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    orig = original or {}
    return {
        "name": _text(form, "name"),
        "description": _text(form, "description"),
        "image": [
            {k: img.get(k) for k in ("path", "key", "_id") if img.get(k) is not None}
            for img in (orig.get("image") or []) if isinstance(img, dict)
        ],
    }


def validate_category(data: Dict[str, Any]) -> List[str]:
    return [] if data.get("name") else ["Category name is required"]


# ------------------------------- courses -------------------------------------
def parse_course_form(form: Any, original: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    orig = original or {}
    features = [ln.strip() for ln in (form.get("keyFeatures") or "").splitlines() if ln.strip()]
    data = {
        "title": _text(form, "title"),
        "categoryId": _text(form, "categoryId"),
        "shortDescription": _text(form, "shortDescription"),
        "description": (form.get("description") or "").strip(),
        "keyFeatures": features,
        "isActive": _flag(form, "isActive"),
    }
    for key in ("upload", "broucher"):
        if orig.get(key):
            data[key] = orig[key]
    return data


def validate_course(data: Dict[str, Any]) -> List[str]:
    errors = []
    if not data.get("title"):
        errors.append("Course title is required")
    if not data.get("categoryId"):
        errors.append("Please select a category")
    return errors


# ------------------------------- exams ---------------------------------------
def parse_exam_form(form: Any, original: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    orig = original or {}
    return {
        "title": _text(form, "title"),
        "courseId": _text(form, "courseId"),
        "questionPaperSetId": _text(form, "questionPaperSetId"),
        "timeLimit": _keep_number(_text(form, "timeLimit"), orig.get("timeLimit")),
        "resultMethod": _text(form, "resultMethod") or "manual",
        "isActive": _flag(form, "isActive"),
    }


def validate_exam(data: Dict[str, Any]) -> List[str]:
    errors = []
    if not data.get("title"):
        errors.append("Exam title is required")
    if not data.get("courseId"):
        errors.append("Please select a course")
    if not data.get("questionPaperSetId"):
        errors.append("Please select a question paper")
    if not data.get("timeLimit") or data["timeLimit"] <= 0:
        errors.append("Time limit must be greater than 0")
    if data.get("resultMethod") not in EXAM_RESULT_METHODS:
        errors.append("Result method must be manual or auto")
    return errors


# ------------------------------- question papers -----------------------------
def parse_question_paper_form(form: Any, original: Optional[Dict[str, Any]] = None) -> Tuple[Dict[str, Any], List[str]]:
    errors = []
    raw = form.get("content") or "[]"
    try:
        content = json.loads(raw)
    except ValueError as e:
        content = []
        errors.append(f"Question content must be valid JSON: {e}")
    data = {
        "title": _text(form, "title"),
        "courseId": _text(form, "courseId"),
        "content": content if isinstance(content, list) else [],
        "isActive": _flag(form, "isActive"),
    }
    if not isinstance(content, list):
        errors.append("Question content must be a list of questions")
    return data, errors


def validate_question_paper(data: Dict[str, Any]) -> List[str]:
    errors = []
    if not data.get("title"):
        errors.append("Question paper title is required")
    if not data.get("courseId"):
        errors.append("Please select a course")
    content = data.get("content") or []
    if not content:
        errors.append("Please add at least one question")
    for n, q in enumerate(content, start=1):
        if not isinstance(q, dict):
            errors.append(f"Question {n}: must be an object")
            continue
        if not (q.get("question") or "").strip():
            errors.append(f"Question {n}: question text is required")
        options = [str(o).strip() for o in (q.get("options") or []) if str(o).strip()]
        if len(options) < 2:
            errors.append(f"Question {n}: at least two options are required")
        answer = q.get("answer")
        answers = answer if isinstance(answer, list) else ([answer] if answer else [])
        if not answers:
            errors.append(f"Question {n}: an answer is required")
        elif any(str(a).strip() not in options for a in answers):
            errors.append(f"Question {n}: answers must be chosen from the options")
        if not q.get("multipleChoiceQuestions") and len(answers) > 1:
            errors.append(f"Question {n}: single-choice questions take one answer")
    return errors


# ------------------------------- course links --------------------------------
def parse_course_link_form(form: Any, original: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "courseId": _text(form, "courseId"),
        "scheduleId": _text(form, "scheduleId"),
        "name": _text(form, "name"),
        "link": _text(form, "link"),
        "isActive": _flag(form, "isActive"),
    }


def validate_course_link(data: Dict[str, Any]) -> List[str]:
    errors = []
    if not data.get("courseId"):
        errors.append("Please select a course")
    if not data.get("scheduleId"):
        errors.append("Please select a schedule")
    if not data.get("name"):
        errors.append("Link name is required")
    if not URL_RE.match(data.get("link") or ""):
        errors.append("Please enter a valid http(s) link")
    return errors


# ------------------------------- users ---------------------------------------
def parse_user_form(form: Any, original: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    data = {
        "fullName": _text(form, "fullName"),
        "email": _text(form, "email").lower(),
        "contactNumber": _text(form, "contactNumber"),
        "country": _text(form, "country"),
        "city": _text(form, "city"),
        "role": _text(form, "role") or "user",
        "isActive": _flag(form, "isActive"),
    }
    password = form.get("password") or ""
    if password:
        data["password"] = password
    return data


def validate_user(data: Dict[str, Any], creating: bool = False) -> List[str]:
    errors = []
    if not data.get("fullName"):
        errors.append("Full name is required")
    if not EMAIL_RE.match(data.get("email") or ""):
        errors.append("Please enter a valid email address")
    if data.get("role") not in USER_ROLES:
        errors.append("Please select a valid role")
    if creating and len(data.get("password") or "") < MIN_PASSWORD_LEN:
        errors.append(f"Password must be at least {MIN_PASSWORD_LEN} characters long")
    return errors


# ------------------------------- auth / account ------------------------------
def validate_login(email: str, password: str) -> List[str]:
    errors = []
    if not EMAIL_RE.match(email or ""):
        errors.append("Please enter a valid email address")
    if not password:
        errors.append("Password is required")
    return errors


def parse_registration_form(form: Any) -> Dict[str, Any]:
    return {
        "fullName": _text(form, "fullName"),
        "email": _text(form, "email").lower(),
        "password": form.get("password") or "",
        "contactNumber": _text(form, "contactNumber"),
        "country": _text(form, "country"),
        "city": _text(form, "city"),
    }


def validate_registration(data: Dict[str, Any]) -> List[str]:
    errors = []
    for key, label in (
        ("fullName", "Full name"),
        ("email", "Email"),
        ("password", "Password"),
        ("contactNumber", "Contact number"),
        ("country", "Country"),
        ("city", "City"),
    ):
        if not data.get(key):
            errors.append(f"{label} is required")
    if data.get("email") and not EMAIL_RE.match(data["email"]):
        errors.append("Please enter a valid email address")
    if data.get("password") and len(data["password"]) < MIN_PASSWORD_LEN:
        errors.append(f"Password must be at least {MIN_PASSWORD_LEN} characters long")
    return errors


def validate_password_change(current: str, new: str, confirm: str) -> List[str]:
    if not current or not new or not confirm:
        return ["Please fill in all password fields"]
    if new != confirm:
        return ["New password and confirm password don't match"]
    if len(new) < MIN_PASSWORD_LEN:
        return [f"New password must be at least {MIN_PASSWORD_LEN} characters long"]
    return []


def parse_profile_form(form: Any) -> Dict[str, Any]:
    return {
        "fullName": _text(form, "fullName"),
        "contactNumber": _text(form, "contactNumber"),
        "country": _text(form, "country"),
        "city": _text(form, "city"),
    }


def validate_profile(data: Dict[str, Any]) -> List[str]:
    return [] if data.get("fullName") else ["Full name is required"]
