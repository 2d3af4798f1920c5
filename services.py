# services.py
# -----------------------------------------------------------------------------
# Typed wrappers over the backend REST resources.
# Every wrapper goes through BackendClient.request and the api_client unwrap
# helpers; callers get plain dicts / lists back or a BackendError.
# -----------------------------------------------------------------------------

import re
from typing import Any, Dict, List, Optional, Tuple

from api_client import (
    BackendClient, BackendError, path_id, ref_id, unwrap_item, unwrap_list,
)


def slugify(s: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (s or "").lower()).strip("-")
    return slug or "course"


def is_live(record: Dict[str, Any]) -> bool:
    return record.get("isActive", True) is not False and not record.get("isDeleted")


# =============================================================================
# Generic collection
# =============================================================================
class ResourceService:
    """CRUD + active toggle + restore for one `/xxx/v1` collection."""

    def __init__(
        self,
        client: BackendClient,
        path: str,
        list_keys: Tuple[str, ...],
        item_keys: Tuple[str, ...],
        label: str,
        singular: str,
    ):
        self.client = client
        self.path = path.rstrip("/")
        self.list_keys = list_keys
        self.item_keys = item_keys
        self.label = label
        self.singular = singular

    def _item_path(self, item_id: Any, suffix: str = "") -> str:
        return f"{self.path}/{path_id(item_id)}{suffix}"

    def list(self, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        payload = self.client.request(
            "GET", self.path, params=params, fallback=f"Failed to fetch {self.label}"
        )
        return unwrap_list(payload, *self.list_keys)

    def get(self, item_id: Any) -> Optional[Dict[str, Any]]:
        payload = self.client.request(
            "GET", self._item_path(item_id), fallback=f"Failed to fetch {self.singular}"
        )
        return unwrap_item(payload, *self.item_keys)

    def create(self, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        payload = self.client.request(
            "POST", self.path, body=data, fallback=f"Failed to create {self.singular}"
        )
        return unwrap_item(payload, *self.item_keys)

    def update(self, item_id: Any, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        payload = self.client.request(
            "PUT", self._item_path(item_id), body=data, fallback=f"Failed to update {self.singular}"
        )
        return unwrap_item(payload, *self.item_keys)

    def delete(self, item_id: Any) -> Any:
        return self.client.request(
            "DELETE", self._item_path(item_id), fallback=f"Failed to delete {self.singular}"
        )

    def set_active(self, item_id: Any, is_active: bool) -> Any:
        return self.client.request(
            "PUT",
            self._item_path(item_id, "/active"),
            body={"isActive": bool(is_active)},
            fallback=f"Failed to update {self.singular} status",
        )

    def restore(self, item_id: Any) -> Any:
        return self.client.request(
            "PUT", self._item_path(item_id, "/undo-delete"), body={},
            fallback=f"Failed to restore {self.singular}",
        )

    def for_course(self, course_id: Any) -> List[Dict[str, Any]]:
        cid = ref_id(course_id)
        return [r for r in self.list() if ref_id(r.get("courseId")) == cid]


# =============================================================================
# Specific collections
# =============================================================================
class CourseService(ResourceService):
    def __init__(self, client: BackendClient):
        super().__init__(client, "/courses/v1", ("courses",), ("course",), "courses", "course")

    def public_list(self) -> List[Dict[str, Any]]:
        payload = self.client.request("GET", "/courses", fallback="Failed to fetch courses")
        return [c for c in unwrap_list(payload, "courses") if is_live(c)]

    def find_public(self, slug_or_id: str) -> Optional[Dict[str, Any]]:
        key = (slug_or_id or "").strip()
        for c in self.public_list():
            if ref_id(c) == key or slugify(c.get("title") or "") == key.lower():
                return c
        return None

    def lookup(self) -> Dict[str, str]:
        """id -> title map for rendering references that arrive unpopulated."""
        try:
            rows = self.list()
        except BackendError as e:
            print(f"[courses] lookup failed: {e}")
            return {}
        return {ref_id(c): c.get("title") or "" for c in rows if ref_id(c)}


def categories_from_courses(courses: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Distinct populated categoryId objects with a courseCount, in first-seen order."""
    seen: Dict[str, Dict[str, Any]] = {}
    for c in courses or []:
        cat = c.get("categoryId")
        if not isinstance(cat, dict):
            continue
        cid = ref_id(cat)
        if not cid:
            continue
        if cid not in seen:
            seen[cid] = {**cat, "slug": slugify(cat.get("name") or ""), "courseCount": 0}
        seen[cid]["courseCount"] += 1
    return list(seen.values())


class FaqService(ResourceService):
    def __init__(self, client: BackendClient):
        super().__init__(client, "/faqs/v1", ("faqs",), ("faq",), "FAQs", "FAQ")

    def record_for_course(self, course_id: Any) -> Optional[Dict[str, Any]]:
        rows = self.for_course(course_id)
        return rows[0] if rows else None

    def save_for_course(self, course_id: Any, faqs: List[Dict[str, str]], faq_id: Optional[str] = None):
        body = {"courseId": ref_id(course_id), "faqs": faqs}
        if faq_id:
            return self.update(faq_id, body)
        return self.create(body)


class ExamService(ResourceService):
    def __init__(self, client: BackendClient):
        super().__init__(client, "/exams/v1", ("exams",), ("exam",), "exams", "exam")

    def available(self) -> List[Dict[str, Any]]:
        payload = self.client.request(
            "GET", f"{self.path}/available-exams", fallback="Failed to fetch available exams"
        )
        return unwrap_list(payload, "exams")


class AdminExamAttemptService(ResourceService):
    def __init__(self, client: BackendClient):
        super().__init__(
            client, "/exam-attempts/v1", ("examAttempts", "attempts"), ("examAttempt",),
            "exam attempts", "exam attempt",
        )

    def list(self, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        try:
            return super().list(params)
        except BackendError as e:
            if e.not_found:
                return []
            raise

    def show_results(self, exam_id: Any) -> Any:
        return self.client.request(
            "PUT", f"{self.path}/exam/{path_id(exam_id)}/show-results", body={},
            fallback="Failed to publish exam results",
        )


# =============================================================================
# Learner exam-attempt lifecycle
# =============================================================================
def _attempt_bundle(payload: Any) -> Dict[str, Any]:
    """Normalise start/resume responses to {'examAttempt': ..., 'exam': ...}."""
    body = payload if isinstance(payload, dict) else {}
    if "examAttempt" not in body and isinstance(body.get("data"), dict):
        body = body["data"]
    attempt = body.get("examAttempt") if isinstance(body.get("examAttempt"), dict) else {}
    exam = body.get("exam") if isinstance(body.get("exam"), dict) else {}
    if not exam and isinstance(attempt.get("examId"), dict):
        exam = attempt["examId"]
    return {"examAttempt": attempt, "exam": exam}


class ExamAttemptService:
    def __init__(self, client: BackendClient):
        self.client = client

    def start(self, exam_id: Any) -> Dict[str, Any]:
        payload = self.client.request(
            "GET", f"/exam-attempts/start/{path_id(exam_id)}", fallback="Failed to start exam attempt"
        )
        return _attempt_bundle(payload)

    def resume(self, attempt_id: Any) -> Dict[str, Any]:
        payload = self.client.request(
            "GET", f"/exam-attempts/resume/{path_id(attempt_id)}", fallback="Failed to resume exam attempt"
        )
        return _attempt_bundle(payload)

    def save_progress(self, attempt_id: Any, answers: List[Dict[str, Any]]) -> Any:
        return self.client.request(
            "POST", f"/exam-attempts/save-progress/{path_id(attempt_id)}",
            body={"answers": answers}, fallback="Failed to save exam progress",
        )

    def submit(self, attempt_id: Any, answers: List[Dict[str, Any]], end_time: str, time_spent: int) -> Any:
        return self.client.request(
            "POST", f"/exam-attempts/submit/{path_id(attempt_id)}",
            body={"answers": answers, "endTime": end_time, "timeSpent": int(time_spent)},
            fallback="Failed to submit exam attempt",
        )

    def my_attempts(self) -> List[Dict[str, Any]]:
        payload = self.client.request(
            "GET", "/exam-attempts/my-attempts", fallback="Failed to fetch exam attempts"
        )
        return unwrap_list(payload, "examAttempts", "attempts")

    def result(self, attempt_id: Any) -> Optional[Dict[str, Any]]:
        payload = self.client.request(
            "GET", f"/exam-attempts/result/{path_id(attempt_id)}", fallback="Failed to fetch exam result"
        )
        return unwrap_item(payload, "examResult", "examAttempt")


# =============================================================================
# Auth + profile
# =============================================================================
class AuthService:
    def __init__(self, client: BackendClient):
        self.client = client

    def login(self, email: str, password: str) -> Dict[str, Any]:
        payload = self.client.request(
            "POST", "/auth/v1/login", body={"email": email, "password": password}, fallback="Login failed"
        )
        return payload if isinstance(payload, dict) else {}

    def verify_2fa(self, user_id: str, otp: str) -> Dict[str, Any]:
        payload = self.client.request(
            "POST", "/auth/v1/verify-2fa", body={"userId": user_id, "otp": otp},
            fallback="Invalid verification code",
        )
        return payload if isinstance(payload, dict) else {}

    def register(self, data: Dict[str, Any]) -> Dict[str, Any]:
        payload = self.client.request("POST", "/auth/v1/register", body=data, fallback="Registration failed")
        return payload if isinstance(payload, dict) else {}

    def refresh(self, refresh_token: str) -> Optional[Dict[str, Any]]:
        payload = self.client.request(
            "POST", "/auth/v1/refresh-token", body={"refreshToken": refresh_token},
            fallback="Session expired",
        )
        tokens = extract_tokens(payload)
        return tokens if tokens.get("token") else None

    def forgot_password(self, email: str) -> Any:
        return self.client.request(
            "POST", "/auth/v1/forgot-password", body={"email": email},
            fallback="Failed to send reset link",
        )

    def reset_password(self, reset_token: str, password: str) -> Any:
        return self.client.request(
            "POST", f"/auth/v1/reset-password/{path_id(reset_token)}", body={"password": password},
            fallback="Failed to reset password",
        )


def extract_tokens(payload: Any) -> Dict[str, Optional[str]]:
    """Pull access/refresh tokens out of the login / refresh response shapes."""
    body = payload if isinstance(payload, dict) else {}
    if isinstance(body.get("data"), dict) and "token" not in body:
        body = body["data"]
    tok = body.get("token")
    access = refresh = None
    if isinstance(tok, dict):
        access = tok.get("accessToken") or tok.get("token")
        refresh = tok.get("refreshToken")
    elif isinstance(tok, str):
        access = tok
    access = access or body.get("accessToken")
    refresh = refresh or body.get("refreshToken")
    return {"token": access, "refreshToken": refresh}


class ProfileService:
    def __init__(self, client: BackendClient):
        self.client = client

    def get(self) -> Optional[Dict[str, Any]]:
        payload = self.client.request("GET", "/users/profile", fallback="Failed to fetch profile")
        return unwrap_item(payload, "user", "profile")

    def update(self, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        payload = self.client.request("PUT", "/users/profile", body=data, fallback="Failed to update profile")
        return unwrap_item(payload, "user", "profile")

    def change_password(self, current: str, new: str, is_2fa_enabled: bool = False) -> Any:
        return self.client.request(
            "POST", "/users/change-password",
            body={"currentPassword": current, "newPassword": new, "is2FAEnabled": bool(is_2fa_enabled)},
            fallback="Failed to change password",
        )

    def update_2fa(self, enabled: bool) -> Any:
        return self.client.request(
            "PUT", "/users/profile", body={"is2FAEnabled": bool(enabled)},
            fallback="Failed to update two-factor authentication",
        )

    def purchased_courses(self) -> List[Dict[str, Any]]:
        payload = self.client.request(
            "GET", "/users/purchased-courses", fallback="Failed to fetch enrolled courses"
        )
        return unwrap_list(payload, "purchasedCourses", "courses")


# =============================================================================
# Container
# =============================================================================
class Services:
    def __init__(self, client: BackendClient):
        self.client = client
        self.courses = CourseService(client)
        self.categories = ResourceService(
            client, "/courses-categories/v1", ("courseCategories", "categories"),
            ("courseCategory", "category"), "course categories", "course category",
        )
        self.coupons = ResourceService(
            client, "/coupon-codes/v1", ("couponCodes", "coupons"), ("couponCode", "coupon"),
            "coupon codes", "coupon code",
        )
        self.schedules = ResourceService(
            client, "/schedules/v1", ("schedules",), ("schedule",), "schedules", "schedule"
        )
        self.question_papers = ResourceService(
            client, "/question-papers/v1", ("questionPapers",), ("questionPaper",),
            "question papers", "question paper",
        )
        self.exams = ExamService(client)
        self.faqs = FaqService(client)
        self.users = ResourceService(client, "/users/v1", ("users",), ("user",), "users", "user")
        self.course_links = ResourceService(
            client, "/course-links/v1", ("courseLinks", "links"), ("courseLink", "link"),
            "course links", "course link",
        )
        self.admin_attempts = AdminExamAttemptService(client)
        self.attempts = ExamAttemptService(client)
        self.auth = AuthService(client)
        self.profile = ProfileService(client)


def build_services(client: BackendClient) -> Services:
    return Services(client)


__all__ = [
    "AdminExamAttemptService",
    "AuthService",
    "CourseService",
    "ExamAttemptService",
    "ExamService",
    "FaqService",
    "ProfileService",
    "ResourceService",
    "Services",
    "build_services",
    "categories_from_courses",
    "extract_tokens",
    "is_live",
    "slugify",
]
