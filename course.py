# course.py
from typing import Any, Dict, List, Optional
from flask import render_template, request, abort

from api_client import BackendError, ref_id
from services import categories_from_courses, is_live
from home import course_faqs


def register_course_routes(app, base_path: str, deps: Dict[str, Any]):
    """
    Registers:
      - GET "/courses"                -> endpoint 'courses' (category filter + search)
      - GET "/courses/<slug_or_id>"   -> endpoint 'course_detail'
    Also creates BASE_PATH aliases without changing endpoint names used by templates.
    """
    services = deps["services"]
    slugify = deps["slugify"]

    def _alias(rule: str, view_func, methods=None, endpoint_suffix="alias"):
        if not base_path:
            return
        alias_rule = f"{base_path}{rule if rule.startswith('/') else '/' + rule}"
        endpoint = f"{view_func.__name__}_{endpoint_suffix}"
        app.add_url_rule(alias_rule, endpoint=endpoint, view_func=view_func, methods=methods or ["GET"])

    def _matches(course: Dict[str, Any], category: Optional[str], q: str) -> bool:
        if category and category != "all":
            cat = course.get("categoryId")
            cat_slug = slugify(cat.get("name") or "") if isinstance(cat, dict) else None
            if category not in (ref_id(cat), cat_slug):
                return False
        if q:
            hay = " ".join([
                course.get("title") or "",
                course.get("shortDescription") or "",
            ]).lower()
            if q not in hay:
                return False
        return True

    def courses():
        category = (request.args.get("category") or "").strip() or None
        q = (request.args.get("q") or "").strip().lower()
        try:
            all_courses = services.courses.public_list()
        except BackendError as e:
            print(f"[courses] fetch failed: {e}")
            return render_template(
                "site/courses.html", courses=[], categories=[], category=category, q=q,
                err="Failed to load courses and categories",
            )
        for c in all_courses:
            c["slug"] = slugify(c.get("title") or f"course-{ref_id(c)}")
        return render_template(
            "site/courses.html",
            courses=[c for c in all_courses if _matches(c, category, q)],
            categories=categories_from_courses(all_courses),
            category=category,
            q=q,
            err=None,
        )

    def _course_schedules(course_id: str) -> List[Dict[str, Any]]:
        try:
            rows = services.schedules.for_course(course_id)
        except BackendError as e:
            print(f"[course_detail] schedules fetch failed: {e}")
            return []
        return sorted([s for s in rows if is_live(s)], key=lambda s: str(s.get("startDate") or ""))

    def _course_faqs(course: Dict[str, Any]) -> List[Dict[str, Any]]:
        embedded = course_faqs(course)
        if embedded or isinstance(course.get("faqId"), dict):
            return embedded
        try:
            record = services.faqs.record_for_course(ref_id(course))
        except BackendError as e:
            print(f"[course_detail] faqs fetch failed: {e}")
            return []
        return course_faqs({"faqId": record}) if record else []

    def course_detail(slug_or_id: str):
        try:
            course = services.courses.find_public(slug_or_id)
        except BackendError as e:
            print(f"[course_detail] fetch failed: {e}")
            abort(502)
        if not course:
            abort(404)
        course["slug"] = slugify(course.get("title") or "")
        return render_template(
            "site/course_detail.html",
            course=course,
            category=course.get("categoryId") if isinstance(course.get("categoryId"), dict) else None,
            schedules=_course_schedules(ref_id(course)),
            faqs=_course_faqs(course),
            key_features=course.get("keyFeatures") or [],
        )

    app.add_url_rule("/courses", view_func=courses, methods=["GET"], endpoint="courses")
    _alias("/courses", courses, ["GET"])
    app.add_url_rule("/courses/<slug_or_id>", view_func=course_detail, methods=["GET"], endpoint="course_detail")
    _alias("/courses/<slug_or_id>", course_detail, ["GET"])
