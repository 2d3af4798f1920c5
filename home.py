# home.py
from typing import Any, Dict, List
from flask import render_template, request, abort

from api_client import BackendError, ref_id
from services import categories_from_courses


def course_faqs(course: Dict[str, Any]) -> List[Dict[str, Any]]:
    """FAQs embedded on a public course (populated faqId)."""
    faq = course.get("faqId")
    if not isinstance(faq, dict):
        return []
    return [f for f in faq.get("faqs") or [] if isinstance(f, dict) and f.get("question")]


def register_home_routes(app, base_path: str, deps: Dict[str, Any]):
    """
    Registers:
      - GET "/"                -> endpoint 'index'
      - GET "/faqs"            -> endpoint 'faqs'
      - GET "/<page_slug>"     -> endpoint 'site_page' (about, contact, policies)
    Also creates BASE_PATH aliases without changing endpoint names used by templates.
    """
    services = deps["services"]
    slugify = deps["slugify"]
    load_site_content = deps["load_site_content"]

    def _alias(rule: str, view_func, methods=None, endpoint_suffix="alias"):
        if not base_path:
            return
        alias_rule = f"{base_path}{rule if rule.startswith('/') else '/' + rule}"
        endpoint = f"{view_func.__name__}_{endpoint_suffix}"
        app.add_url_rule(alias_rule, endpoint=endpoint, view_func=view_func, methods=methods or ["GET"])

    # ----- Routes -----
    def index():
        try:
            courses = services.courses.public_list()
        except BackendError as e:
            print(f"[index] course fetch failed: {e}")
            return render_template("site/home.html", courses=[], categories=[], err="Failed to load courses and categories")

        for c in courses:
            c["slug"] = slugify(c.get("title") or f"course-{ref_id(c)}")
        return render_template(
            "site/home.html",
            courses=courses[:4],
            categories=categories_from_courses(courses),
            err=None,
        )

    def faqs():
        q = (request.args.get("q") or "").strip().lower()
        err = None
        groups = []
        try:
            courses = services.courses.public_list()
        except BackendError as e:
            print(f"[faqs] course fetch failed: {e}")
            courses = []
            err = e.message or "Error fetching FAQs"
        for c in courses:
            items = course_faqs(c)
            if q:
                items = [
                    f for f in items
                    if q in (f.get("question") or "").lower() or q in (f.get("answer") or "").lower()
                ]
            if items:
                groups.append({"course": c, "slug": slugify(c.get("title") or ""), "faqs": items})
        return render_template("site/faqs.html", groups=groups, q=q, err=err)

    def site_page(page_slug: str):
        page = (load_site_content().get("pages") or {}).get(page_slug)
        if not page:
            abort(404)
        return render_template("site/page.html", page=page)

    # Register rules with stable endpoint names
    app.add_url_rule("/", view_func=index, methods=["GET"], endpoint="index")
    _alias("/", index, ["GET"])

    app.add_url_rule("/faqs", view_func=faqs, methods=["GET"], endpoint="faqs")
    _alias("/faqs", faqs, ["GET"])

    for slug in ("about", "contact", "privacy-policy", "refund-policy", "rescheduling-policy"):
        app.add_url_rule(
            f"/{slug}", view_func=site_page, methods=["GET"],
            endpoint=f"page_{slug.replace('-', '_')}", defaults={"page_slug": slug},
        )
        if base_path:
            app.add_url_rule(
                f"{base_path}/{slug}", view_func=site_page, methods=["GET"],
                endpoint=f"page_{slug.replace('-', '_')}_alias", defaults={"page_slug": slug},
            )
