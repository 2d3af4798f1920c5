# user_dashboard.py
# Learner dashboard: overview, enrolled courses, session links.
from typing import Any, Dict, List, Optional

from flask import Blueprint, render_template, request, g

from api_client import BackendError, ref_id, ref_title
from dates import parse_datetime, utcnow

ENROLLMENT_FILTERS = ("all", "in-progress", "upcoming", "completed", "self-paced")

DELIVERY_LABELS = {
    "online": "Instructor-Led Live Online",
    "self-paced": "E-Learning",
    "classroom": "Classroom Training",
}
SCHEDULE_LABELS = {
    "weekend": "Weekend",
    "weekday": "Weekdays",
    "self-paced": "SELF-PACED LEARNING",
}


# --------- Enrolment helpers ----------
def enrollment_status(schedule: Dict[str, Any], now=None) -> str:
    if (schedule or {}).get("scheduleType") == "self-paced":
        return "self-paced"
    start = parse_datetime((schedule or {}).get("startDate"))
    end = parse_datetime((schedule or {}).get("endDate"))
    now = parse_datetime(now) or utcnow()
    if end and now > end:
        return "completed"
    if start and now >= start:
        return "in-progress"
    return "upcoming"


def schedule_label(schedule: Dict[str, Any]) -> str:
    s = schedule or {}
    if s.get("scheduleType") == "self-paced":
        return SCHEDULE_LABELS["self-paced"]
    return SCHEDULE_LABELS.get(s.get("type") or "", "Weekdays")


def access_days(schedule: Dict[str, Any]) -> Optional[int]:
    if (schedule or {}).get("scheduleType") != "self-paced":
        return None
    try:
        return int(str(schedule.get("accessType") or "").strip())
    except ValueError:
        return None


def transform_purchased_course(purchase: Dict[str, Any], now=None) -> Dict[str, Any]:
    course = purchase.get("courseId")
    schedule = purchase.get("scheduleId") if isinstance(purchase.get("scheduleId"), dict) else {}
    stype = schedule.get("scheduleType") or "online"
    return {
        "id": ref_id(purchase),
        "course_id": ref_id(course),
        "title": ref_title(course),
        "schedule_id": ref_id(schedule) or ref_id(purchase.get("scheduleId")),
        "status": enrollment_status(schedule, now),
        "delivery": DELIVERY_LABELS.get(stype, DELIVERY_LABELS["online"]),
        "schedule_label": schedule_label(schedule),
        "start_date": schedule.get("startDate"),
        "end_date": schedule.get("endDate"),
        "instructor": schedule.get("instructorName") or "",
        "access_days": access_days(schedule),
        "purchased_at": purchase.get("createdAt"),
    }


def link_kind(url: str) -> str:
    u = (url or "").lower()
    if "drive.google." in u:
        return "google-drive"
    if "zoom.us" in u:
        return "zoom-meeting"
    return "live-session"


def sessions_for(enrolled: List[Dict[str, Any]], links: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Active course links that belong to one of the learner's enrolments."""
    by_course: Dict[str, List[Dict[str, Any]]] = {}
    for e in enrolled:
        if e.get("course_id"):
            by_course.setdefault(e["course_id"], []).append(e)
    out = []
    for link in links:
        if link.get("isActive") is False or link.get("isDeleted"):
            continue
        matches = by_course.get(ref_id(link.get("courseId")) or "")
        if not matches:
            continue
        sched = ref_id(link.get("scheduleId"))
        owner = next((e for e in matches if not sched or e.get("schedule_id") == sched), None)
        if owner is None:
            continue
        out.append({
            "id": ref_id(link),
            "name": link.get("name") or "Session link",
            "url": link.get("link") or "",
            "kind": link_kind(link.get("link") or ""),
            "course_title": owner["title"],
            "status": owner["status"],
            "schedule_label": owner["schedule_label"],
        })
    return out


# ----------------------------- Blueprint -----------------------------
def create_user_dashboard_blueprint(url_prefix: str, deps: Dict[str, Any], name: str = "user_dashboard") -> Blueprint:
    """
    Learner dashboard pages mounted under <url_prefix>/user-dashboard.
    deps:
      - services: Services container (profile, course_links, attempts)
    """
    services = deps["services"]
    mount_prefix = (url_prefix.rstrip("/") if url_prefix else "") + "/user-dashboard"
    bp = Blueprint(name, __name__, url_prefix=mount_prefix)

    def _enrolled() -> Optional[List[Dict[str, Any]]]:
        try:
            return [transform_purchased_course(p) for p in services.profile.purchased_courses()]
        except BackendError as e:
            print(f"[dashboard] purchased courses fetch failed: {e}")
            return None

    @bp.get("")
    def overview():
        email = getattr(g, "user_email", None) or ""
        enrolled = _enrolled()
        try:
            attempts = services.attempts.my_attempts()
        except BackendError as e:
            print(f"[dashboard] attempts fetch failed: {e}")
            attempts = []
        completed = [a for a in attempts if a.get("isCompleted")]
        return render_template(
            "dashboard/overview.html",
            display_name=email.split("@", 1)[0].replace(".", " ").title() if email else "Learner",
            enrolled=(enrolled or [])[:3],
            stats={
                "enrolled": len(enrolled or []),
                "active": sum(1 for e in enrolled or [] if e["status"] in ("in-progress", "self-paced")),
                "attempts": len(attempts),
                "completed_attempts": len(completed),
            },
            err=None if enrolled is not None else "Failed to load enrolled courses",
        )

    @bp.get("/enrolled-courses")
    def enrolled_courses():
        status = request.args.get("status") or "all"
        if status not in ENROLLMENT_FILTERS:
            status = "all"
        enrolled = _enrolled()
        rows = enrolled or []
        return render_template(
            "dashboard/enrolled_courses.html",
            courses=rows if status == "all" else [e for e in rows if e["status"] == status],
            status=status,
            filters=ENROLLMENT_FILTERS,
            err=None if enrolled is not None else "Failed to load enrolled courses",
        )

    @bp.get("/sessions")
    def sessions():
        enrolled = _enrolled() or []
        err = None
        try:
            links = services.course_links.list()
        except BackendError as e:
            print(f"[dashboard] course links fetch failed: {e}")
            links = []
            err = "Failed to load session links"
        kind = request.args.get("kind") or "all"
        items = sessions_for(enrolled, links)
        if kind != "all":
            items = [s for s in items if s["kind"] == kind]
        return render_template("dashboard/sessions.html", sessions=items, kind=kind, err=err)

    return bp
