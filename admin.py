import json
from typing import Any, Callable, Dict, List, Optional, Tuple

from flask import (
    Blueprint, render_template, abort, request, redirect, url_for, g
)

from api_client import BackendError, ref_id, ref_title
from attempts import (
    RESULT_METHODS, as_int, attempt_status_label, build_attempt_update, normalize_result_method,
    parse_attempt_form, score_color, validate_attempt_edit,
)
from dates import days_from_now, format_date, format_date_for_input, is_date_expired
from validation import (
    ACCESS_DURATIONS, COUNTRY_CODES, EXAM_RESULT_METHODS, SCHEDULE_DAY_TYPES,
    SCHEDULE_TYPES, USER_ROLES, WEEK_DAYS,
    clean_faqs, coupon_matches_filter, coupon_status, faq_row_errors, generate_discount_code,
    parse_category_form, parse_coupon_form, parse_course_form, parse_course_link_form,
    parse_exam_form, parse_faq_rows, parse_question_paper_form, parse_schedule_form,
    parse_user_form, validate_category, validate_coupon, validate_course,
    validate_course_link, validate_exam, validate_question_paper, validate_schedule,
    validate_user,
)

# =========================
# List filters
# =========================
STATUS_FILTERS = ("all", "active", "inactive", "deleted")
COUPON_FILTERS = ("all", "active", "inactive", "expired", "deleted")
ATTEMPT_FILTERS = ("all", "In Progress", "Pending Review", "Completed")


def _record_status(rec: Dict[str, Any]) -> str:
    if rec.get("isDeleted"):
        return "deleted"
    return "active" if rec.get("isActive") else "inactive"


def matches_status(rec: Dict[str, Any], status: Optional[str]) -> bool:
    if not status or status == "all":
        return True
    return _record_status(rec) == status


def matches_search(rec: Dict[str, Any], q: str, fields: Tuple[str, ...]) -> bool:
    if not q:
        return True
    q = q.lower()
    for f in fields:
        v = rec.get(f)
        text = ref_title(v, default="") if isinstance(v, dict) else str(v or "")
        if q in text.lower():
            return True
    return False


def create_admin_blueprint(
    url_prefix: str,
    deps: Dict[str, Any],
    name: str = "admin",
) -> Blueprint:
    """
    Admin dashboard blueprint, including:
      • CRUD + active toggle + delete/restore (behind a confirm page) for every
        backend collection: courses, categories, coupons, schedules, question
        papers, exams, users, course links
      • FAQ editor per course
      • Exam-attempt review: list, detail, score override, publish results
    deps:
      - services: Services container
      - admin_roles: set of roles allowed in (default {"admin", "superadmin"})
    """
    services = deps["services"]
    admin_roles = set(deps.get("admin_roles") or {"admin", "superadmin"})

    # Mount at /<BASE_PATH>/dashboard or /dashboard if url_prefix=""
    mount_prefix = (url_prefix.rstrip("/") + "/dashboard") if url_prefix else "/dashboard"
    bp = Blueprint(name, __name__, url_prefix=mount_prefix)

    @bp.before_request
    def require_admin():
        if getattr(g, "user_role", None) not in admin_roles:
            abort(403)

    # ---------- Option sources (best-effort; an empty list renders an empty select) ----------
    def _safe_list(fetch: Callable[[], List[Dict[str, Any]]], what: str) -> List[Dict[str, Any]]:
        try:
            return fetch()
        except BackendError as e:
            print(f"[admin] {what} options failed: {e}")
            return []

    def _course_options() -> List[Tuple[str, str]]:
        return [(ref_id(c), c.get("title") or "") for c in _safe_list(services.courses.list, "course") if not c.get("isDeleted")]

    def _category_options() -> List[Tuple[str, str]]:
        return [(ref_id(c), c.get("name") or "") for c in _safe_list(services.categories.list, "category") if not c.get("isDeleted")]

    def _paper_options() -> List[Tuple[str, str]]:
        return [(ref_id(p), p.get("title") or "") for p in _safe_list(services.question_papers.list, "question paper") if not p.get("isDeleted")]

    def _schedule_options() -> List[Tuple[str, str]]:
        out = []
        for s in _safe_list(services.schedules.list, "schedule"):
            if s.get("isDeleted"):
                continue
            when = "Self-paced" if s.get("scheduleType") == "self-paced" else f"{format_date(s.get('startDate'))} – {format_date(s.get('endDate'))}"
            out.append((ref_id(s), f"{ref_title(s.get('courseId'))} · {when}"))
        return out

    def _static(values) -> Callable[[], List[Tuple[str, str]]]:
        return lambda: [(v, v) for v in values]

    # ---------- Field specs ----------
    def F(name: str, label: str, kind: str = "text", options=None, required: bool = False, help: str = ""):
        return {"name": name, "label": label, "kind": kind, "options": options, "required": required, "help": help}

    RESOURCES: List[Dict[str, Any]] = [
        {
            "key": "courses", "slug": "courses", "label": "Courses", "singular": "Course",
            "service": services.courses,
            "search": ("title", "shortDescription", "categoryId"),
            "columns": [("Title", lambda r, ctx: r.get("title") or ""),
                        ("Category", lambda r, ctx: ref_title(r.get("categoryId"), ctx.get("categories"), default="—"))],
            "fields": [
                F("title", "Title", required=True),
                F("categoryId", "Category", "select", _category_options, required=True),
                F("shortDescription", "Short description"),
                F("description", "Description", "textarea", help="Markdown or HTML"),
                F("keyFeatures", "Key features", "lines", help="One per line"),
                F("isActive", "Active", "checkbox"),
            ],
            "parse": parse_course_form,
            "validate": lambda d, creating: validate_course(d),
        },
        {
            "key": "categories", "slug": "course-categories", "label": "Course Categories", "singular": "Category",
            "service": services.categories,
            "search": ("name", "description"),
            "columns": [("Name", lambda r, ctx: r.get("name") or ""),
                        ("Description", lambda r, ctx: (r.get("description") or "")[:80])],
            "fields": [
                F("name", "Name", required=True),
                F("description", "Description", "textarea"),
                F("isActive", "Active", "checkbox"),
            ],
            "parse": parse_category_form,
            "validate": lambda d, creating: validate_category(d),
            "status_separate": True,
        },
        {
            "key": "coupons", "slug": "coupon-codes", "label": "Coupon Codes", "singular": "Coupon code",
            "service": services.coupons,
            "search": ("discountCode", "country", "courseId"),
            "filters": COUPON_FILTERS,
            "columns": [("Code", lambda r, ctx: r.get("discountCode") or ""),
                        ("Course", lambda r, ctx: ref_title(r.get("courseId"), ctx.get("courses"))),
                        ("Country", lambda r, ctx: r.get("country") or ""),
                        ("Limit", lambda r, ctx: str(r.get("couponLimit") or 0)),
                        ("Discount", lambda r, ctx: str(r.get("discountPrice") or 0)),
                        ("Expiry", lambda r, ctx: format_date(r.get("expiryDate")))],
            "fields": [
                F("courseId", "Course", "select", _course_options, required=True),
                F("country", "Country", "select", _static(COUNTRY_CODES), required=True),
                F("discountCode", "Discount code", required=True),
                F("couponLimit", "Coupon limit", "number", required=True),
                F("expiryDate", "Expiry date", "date", required=True),
                F("discountPrice", "Discount price", "number", required=True),
                F("isActive", "Active", "checkbox"),
            ],
            "parse": parse_coupon_form,
            "validate": lambda d, creating: validate_coupon(d),
            "defaults": lambda: {"discountCode": generate_discount_code(), "expiryDate": days_from_now(30),
                                 "couponLimit": 1, "discountPrice": 0, "isActive": True},
            "status_label": coupon_status,
            "matches_filter": coupon_matches_filter,
            "toggle_blocked": lambda r: "Expired coupon codes cannot be activated" if is_date_expired(r.get("expiryDate")) else None,
            "generate_code": True,
        },
        {
            "key": "schedules", "slug": "schedules", "label": "Schedules", "singular": "Schedule",
            "service": services.schedules,
            "search": ("courseId", "country", "instructorName", "city"),
            "columns": [("Course", lambda r, ctx: ref_title(r.get("courseId"), ctx.get("courses"))),
                        ("Type", lambda r, ctx: r.get("scheduleType") or ""),
                        ("Dates", lambda r, ctx: "Self-paced" if r.get("scheduleType") == "self-paced"
                            else f"{format_date(r.get('startDate'))} – {format_date(r.get('endDate'))}"),
                        ("Instructor", lambda r, ctx: r.get("instructorName") or "—"),
                        ("Price", lambda r, ctx: f"{r.get('offerPrice') or 0} / {r.get('standardPrice') or 0}")],
            "fields": [
                F("courseId", "Course", "select", _course_options, required=True),
                F("country", "Country", "select", _static(COUNTRY_CODES), required=True),
                F("scheduleType", "Schedule type", "select", _static(SCHEDULE_TYPES), required=True),
                F("startDate", "Start date", "date"),
                F("endDate", "End date", "date"),
                F("days", "Days", "multi", _static(WEEK_DAYS)),
                F("type", "Batch", "select", _static(SCHEDULE_DAY_TYPES)),
                F("instructorName", "Instructor name"),
                F("accessType", "Access duration (days)", "select", _static(ACCESS_DURATIONS), help="Self-paced only"),
                F("state", "State", help="Classroom only"),
                F("city", "City", help="Classroom only"),
                F("standardPrice", "Standard price", "number"),
                F("offerPrice", "Offer price", "number"),
                F("isActive", "Active", "checkbox"),
            ],
            "parse": parse_schedule_form,
            "validate": lambda d, creating: validate_schedule(d),
        },
        {
            "key": "question_papers", "slug": "question-papers", "label": "Question Papers", "singular": "Question paper",
            "service": services.question_papers,
            "search": ("title", "courseId"),
            "columns": [("Title", lambda r, ctx: r.get("title") or ""),
                        ("Course", lambda r, ctx: ref_title(r.get("courseId"), ctx.get("courses"))),
                        ("Questions", lambda r, ctx: str(len(r.get("content") or [])))],
            "fields": [
                F("title", "Title", required=True),
                F("courseId", "Course", "select", _course_options, required=True),
                F("content", "Questions (JSON)", "json",
                  help='[{"question": "...", "options": ["A", "B"], "answer": "A", "multipleChoiceQuestions": false, "answerDescription": ""}]'),
                F("isActive", "Active", "checkbox"),
            ],
            "parse": parse_question_paper_form,
            "validate": lambda d, creating: validate_question_paper(d),
            "parse_returns_errors": True,
        },
        {
            "key": "exams", "slug": "exams", "label": "Exams", "singular": "Exam",
            "service": services.exams,
            "search": ("title", "courseId"),
            "columns": [("Title", lambda r, ctx: r.get("title") or ""),
                        ("Course", lambda r, ctx: ref_title(r.get("courseId"), ctx.get("courses"))),
                        ("Time limit", lambda r, ctx: f"{r.get('timeLimit') or 0} min"),
                        ("Results", lambda r, ctx: r.get("resultMethod") or "manual")],
            "fields": [
                F("title", "Title", required=True),
                F("courseId", "Course", "select", _course_options, required=True),
                F("questionPaperSetId", "Question paper", "select", _paper_options, required=True),
                F("timeLimit", "Time limit (minutes)", "number", required=True),
                F("resultMethod", "Result method", "select", _static(EXAM_RESULT_METHODS)),
                F("isActive", "Active", "checkbox"),
            ],
            "parse": parse_exam_form,
            "validate": lambda d, creating: validate_exam(d),
            "defaults": lambda: {"timeLimit": 60, "resultMethod": "manual", "isActive": True},
        },
        {
            "key": "users", "slug": "users", "label": "Users", "singular": "User",
            "service": services.users,
            "search": ("fullName", "email", "contactNumber", "country", "city"),
            "columns": [("Name", lambda r, ctx: r.get("fullName") or ""),
                        ("Email", lambda r, ctx: r.get("email") or ""),
                        ("Role", lambda r, ctx: r.get("role") or "user"),
                        ("Country", lambda r, ctx: r.get("country") or "")],
            "fields": [
                F("fullName", "Full name", required=True),
                F("email", "Email", "email", required=True),
                F("password", "Password", "password", help="Required for new users; leave blank to keep"),
                F("contactNumber", "Contact number"),
                F("country", "Country"),
                F("city", "City"),
                F("role", "Role", "select", _static(USER_ROLES)),
                F("isActive", "Active", "checkbox"),
            ],
            "parse": parse_user_form,
            "validate": lambda d, creating: validate_user(d, creating=creating),
            "defaults": lambda: {"role": "user", "isActive": True},
        },
        {
            "key": "course_links", "slug": "course-links", "label": "Course Links", "singular": "Course link",
            "service": services.course_links,
            "search": ("name", "link", "courseId"),
            "columns": [("Name", lambda r, ctx: r.get("name") or ""),
                        ("Course", lambda r, ctx: ref_title(r.get("courseId"), ctx.get("courses"))),
                        ("Link", lambda r, ctx: r.get("link") or "")],
            "fields": [
                F("courseId", "Course", "select", _course_options, required=True),
                F("scheduleId", "Schedule", "select", _schedule_options, required=True),
                F("name", "Name", required=True),
                F("link", "Link", "url", required=True),
                F("isActive", "Active", "checkbox"),
            ],
            "parse": parse_course_link_form,
            "validate": lambda d, creating: validate_course_link(d),
            "defaults": lambda: {"isActive": True},
        },
    ]
    BY_KEY = {r["key"]: r for r in RESOURCES}

    # ---------- Form value helpers ----------
    def form_values(res: Dict[str, Any], record: Dict[str, Any]) -> Dict[str, Any]:
        vals: Dict[str, Any] = {}
        for f in res["fields"]:
            v = record.get(f["name"])
            kind = f["kind"]
            if kind == "date":
                v = format_date_for_input(v) if v else ""
            elif kind == "select":
                v = ref_id(v) or ""
            elif kind == "checkbox":
                v = bool(v)
            elif kind == "multi":
                v = list(v or [])
            elif kind == "lines":
                v = "\n".join(v or []) if isinstance(v, list) else (v or "")
            elif kind == "json":
                v = json.dumps(v or [], indent=2, ensure_ascii=False)
            elif kind == "password":
                v = ""
            else:
                v = "" if v is None else v
            vals[f["name"]] = v
        return vals

    def _fields_with_options(res: Dict[str, Any]) -> List[Dict[str, Any]]:
        out = []
        for f in res["fields"]:
            f2 = dict(f)
            f2["choices"] = f["options"]() if callable(f["options"]) else []
            out.append(f2)
        return out

    def _parse(res: Dict[str, Any], original: Optional[Dict[str, Any]]) -> Tuple[Dict[str, Any], List[str]]:
        if res.get("parse_returns_errors"):
            data, errors = res["parse"](request.form, original)
        else:
            data, errors = res["parse"](request.form, original), []
        return data, errors

    def _render_form(res, record, values, errors, mode):
        return render_template(
            "admin/form.html",
            res=res,
            record=record,
            values=values,
            fields=_fields_with_options(res),
            errors=errors,
            mode=mode,
            msg=request.args.get("msg"),
            err=request.args.get("err"),
        )

    def _get_or_404(res, item_id):
        try:
            record = res["service"].get(item_id)
        except BackendError as e:
            if e.not_found:
                abort(404)
            raise
        if not record:
            abort(404)
        return record

    # ---------- Generic CRUD views ----------
    def _register_crud(res: Dict[str, Any]):
        key, slug = res["key"], res["slug"]
        filters = res.get("filters") or STATUS_FILTERS

        def list_view():
            q = (request.args.get("q") or "").strip()
            status = request.args.get("status") or "all"
            if status not in filters:
                status = "all"
            err = request.args.get("err")
            try:
                rows = res["service"].list()
            except BackendError as e:
                rows, err = [], e.message
            match = res.get("matches_filter") or matches_status
            rows = [r for r in rows if match(r, status) and matches_search(r, q, res["search"])]
            ctx = {"courses": services.courses.lookup()} if any(
                f["name"] == "courseId" for f in res["fields"]) else {}
            if key == "courses":
                ctx["categories"] = {k: v for k, v in _category_options()}
            status_label = res.get("status_label") or (lambda r: _record_status(r).title())
            table = []
            for r in rows:
                table.append({
                    "id": ref_id(r),
                    "cells": [fn(r, ctx) for _, fn in res["columns"]],
                    "status": status_label(r),
                    "is_active": bool(r.get("isActive")),
                    "is_deleted": bool(r.get("isDeleted")),
                    "toggle_blocked": (res.get("toggle_blocked") or (lambda _r: None))(r),
                })
            return render_template(
                "admin/list.html",
                res=res,
                headers=[h for h, _ in res["columns"]],
                rows=table,
                q=q,
                status=status,
                filters=filters,
                msg=request.args.get("msg"),
                err=err,
            )

        def add_view():
            if request.method == "POST":
                data, errors = _parse(res, None)
                if res.get("generate_code") and request.form.get("generate"):
                    data["discountCode"] = generate_discount_code()
                    return _render_form(res, None, form_values(res, data), [], "add")
                errors = errors or res["validate"](data, True)
                if errors:
                    return _render_form(res, None, form_values(res, data), errors, "add")
                try:
                    res["service"].create(data)
                except BackendError as e:
                    return _render_form(res, None, form_values(res, data), [e.message], "add")
                print(f"[admin] {getattr(g, 'user_email', None)} created {res['singular'].lower()}")
                return redirect(url_for(f".{key}_list", msg=f"{res['singular']} created"))
            defaults = res["defaults"]() if res.get("defaults") else {"isActive": True}
            return _render_form(res, None, form_values(res, defaults), [], "add")

        def edit_view(item_id: str):
            record = _get_or_404(res, item_id)
            if request.method == "POST":
                data, errors = _parse(res, record)
                if res.get("generate_code") and request.form.get("generate"):
                    data["discountCode"] = generate_discount_code()
                    return _render_form(res, record, form_values(res, data), [], "edit")
                errors = errors or res["validate"](data, False)
                if errors:
                    return _render_form(res, record, form_values(res, data), errors, "edit")
                try:
                    if res.get("status_separate"):
                        wanted = bool(request.form.get("isActive"))
                        res["service"].update(item_id, data)
                        if wanted != bool(record.get("isActive")):
                            res["service"].set_active(item_id, wanted)
                    else:
                        res["service"].update(item_id, data)
                except BackendError as e:
                    return _render_form(res, record, form_values(res, data), [e.message], "edit")
                return redirect(url_for(f".{key}_list", msg=f"{res['singular']} updated"))
            return _render_form(res, record, form_values(res, record), [], "edit")

        def detail_view(item_id: str):
            record = _get_or_404(res, item_id)
            values = form_values(res, record)
            labels = {}
            for f in _fields_with_options(res):
                if f["kind"] == "select":
                    labels[f["name"]] = dict(f["choices"]).get(values[f["name"]], values[f["name"]])
            return render_template(
                "admin/detail.html", res=res, record=record, values=values, labels=labels,
                status=(res.get("status_label") or (lambda r: _record_status(r).title()))(record),
            )

        def toggle_view(item_id: str):
            record = _get_or_404(res, item_id)
            blocked = (res.get("toggle_blocked") or (lambda _r: None))(record)
            if blocked:
                return redirect(url_for(f".{key}_list", err=blocked))
            try:
                res["service"].set_active(item_id, not bool(record.get("isActive")))
            except BackendError as e:
                return redirect(url_for(f".{key}_list", err=f"Update failed: {e.message}"))
            state = "deactivated" if record.get("isActive") else "activated"
            return redirect(url_for(f".{key}_list", msg=f"{res['singular']} {state}"))

        def _confirm(item_id: str, action: str):
            record = _get_or_404(res, item_id)
            if request.method == "POST":
                try:
                    if action == "delete":
                        res["service"].delete(item_id)
                    else:
                        res["service"].restore(item_id)
                except BackendError as e:
                    return redirect(url_for(f".{key}_list", err=f"{action.title()} failed: {e.message}"))
                print(f"[admin] {getattr(g, 'user_email', None)} {action}d {res['singular'].lower()} {item_id}")
                done = "deleted" if action == "delete" else "restored"
                return redirect(url_for(f".{key}_list", msg=f"{res['singular']} {done}"))
            cells = [fn(record, {"courses": services.courses.lookup()}) for _, fn in res["columns"]]
            return render_template(
                "admin/confirm.html",
                res=res,
                record=record,
                summary=cells[0] if cells else ref_id(record),
                action=action,
                cancel_url=url_for(f".{key}_list"),
            )

        def delete_view(item_id: str):
            return _confirm(item_id, "delete")

        def restore_view(item_id: str):
            return _confirm(item_id, "restore")

        bp.add_url_rule(f"/{slug}", endpoint=f"{key}_list", view_func=list_view, methods=["GET"])
        bp.add_url_rule(f"/{slug}/add", endpoint=f"{key}_add", view_func=add_view, methods=["GET", "POST"])
        bp.add_url_rule(f"/{slug}/edit/<item_id>", endpoint=f"{key}_edit", view_func=edit_view, methods=["GET", "POST"])
        bp.add_url_rule(f"/{slug}/<item_id>", endpoint=f"{key}_detail", view_func=detail_view, methods=["GET"])
        bp.add_url_rule(f"/{slug}/<item_id>/toggle", endpoint=f"{key}_toggle", view_func=toggle_view, methods=["POST"])
        bp.add_url_rule(f"/{slug}/<item_id>/delete", endpoint=f"{key}_delete", view_func=delete_view, methods=["GET", "POST"])
        bp.add_url_rule(f"/{slug}/<item_id>/restore", endpoint=f"{key}_restore", view_func=restore_view, methods=["GET", "POST"])

    for _res in RESOURCES:
        _register_crud(_res)

    # ---------- Admin Home ----------
    @bp.get("")
    def admin_home():
        counts = {}
        for res in RESOURCES:
            try:
                counts[res["key"]] = len(res["service"].list())
            except BackendError as e:
                print(f"[admin] count {res['key']} failed: {e}")
                counts[res["key"]] = None
        return render_template(
            "admin/home.html",
            resources=RESOURCES,
            counts=counts,
            msg=request.args.get("msg"),
            err=request.args.get("err"),
        )

    # ---------- FAQs (one record per course) ----------
    @bp.get("/faqs")
    def faqs_list():
        q = (request.args.get("q") or "").strip().lower()
        err = request.args.get("err")
        try:
            courses = services.courses.list()
            records = services.faqs.list()
        except BackendError as e:
            courses, records, err = [], [], e.message
        by_course = {ref_id(r.get("courseId")): r for r in records}
        rows = []
        for c in courses:
            if c.get("isDeleted"):
                continue
            if q and q not in (c.get("title") or "").lower():
                continue
            rec = by_course.get(ref_id(c)) or {}
            rows.append({"course_id": ref_id(c), "title": c.get("title") or "", "count": len(rec.get("faqs") or [])})
        return render_template("admin/faqs.html", rows=rows, q=q, msg=request.args.get("msg"), err=err)

    @bp.route("/faqs/edit/<course_id>", methods=["GET", "POST"])
    def faqs_edit(course_id: str):
        try:
            course = services.courses.get(course_id)
            record = services.faqs.record_for_course(course_id)
        except BackendError as e:
            return redirect(url_for(".faqs_list", err=e.message))
        if not course:
            abort(404)
        rows = [dict(f) for f in (record or {}).get("faqs") or [] if isinstance(f, dict)]
        errors: List[str] = []
        row_errors: Dict[int, List[str]] = {}
        if request.method == "POST":
            rows = parse_faq_rows(request.form)
            if request.form.get("add_row"):
                rows.append({"question": "", "answer": ""})
            else:
                row_errors = faq_row_errors(rows)
                kept, errors = clean_faqs(rows)
                if not errors:
                    try:
                        services.faqs.save_for_course(course_id, kept, ref_id(record) if record else None)
                        return redirect(url_for(".faqs_list", msg=f"FAQs saved for {course.get('title')}"))
                    except BackendError as e:
                        errors = [e.message]
        if not rows:
            rows = [{"question": "", "answer": ""}]
        return render_template(
            "admin/faq_edit.html",
            course=course,
            rows=rows,
            errors=errors,
            row_errors=row_errors,
        )

    # ---------- Exam attempts ----------
    def _attempt_view(a: Dict[str, Any]) -> Dict[str, Any]:
        user = a.get("userId") if isinstance(a.get("userId"), dict) else {}
        return {
            "id": ref_id(a),
            "user_name": user.get("fullName") or ref_id(a.get("userId")) or "—",
            "user_email": user.get("email") or "",
            "exam_id": ref_id(a.get("examId")),
            "exam_title": ref_title(a.get("examId"), default="Exam"),
            "course_title": ref_title(a.get("courseId")),
            "label": attempt_status_label(a),
            "percentage": a.get("percentage"),
            "color": score_color(a.get("percentage")),
            "correct": a.get("correctAnswers"),
            "total": a.get("totalQuestions"),
            "time_spent": a.get("timeSpent"),
            "start_time": a.get("startTime"),
            "result_shown": bool(a.get("isResultShown")),
        }

    @bp.get("/exam-attempts")
    def attempts_list():
        q = (request.args.get("q") or "").strip().lower()
        status = request.args.get("status") or "all"
        exam_filter = request.args.get("exam") or ""
        err = request.args.get("err")
        try:
            rows = [_attempt_view(a) for a in services.admin_attempts.list()]
        except BackendError as e:
            rows, err = [], e.message
        exams = sorted({(r["exam_id"], r["exam_title"]) for r in rows if r["exam_id"]}, key=lambda t: t[1])
        if status in ATTEMPT_FILTERS and status != "all":
            rows = [r for r in rows if r["label"] == status]
        if exam_filter:
            rows = [r for r in rows if r["exam_id"] == exam_filter]
        if q:
            rows = [r for r in rows if q in r["user_name"].lower() or q in r["user_email"].lower()
                    or q in r["exam_title"].lower()]
        return render_template(
            "admin/attempts.html", rows=rows, exams=exams, q=q, status=status, exam=exam_filter,
            filters=ATTEMPT_FILTERS, msg=request.args.get("msg"), err=err,
        )

    def _get_attempt_or_404(attempt_id: str) -> Dict[str, Any]:
        try:
            record = services.admin_attempts.get(attempt_id)
        except BackendError as e:
            if e.not_found:
                abort(404)
            raise
        if not record:
            abort(404)
        return record

    @bp.get("/exam-attempts/<attempt_id>")
    def attempt_detail(attempt_id: str):
        record = _get_attempt_or_404(attempt_id)
        return render_template(
            "admin/attempt_detail.html",
            attempt=record,
            view=_attempt_view(record),
            answers=record.get("answers") or [],
            msg=request.args.get("msg"),
        )

    @bp.route("/exam-attempts/edit/<attempt_id>", methods=["GET", "POST"])
    def attempt_edit(attempt_id: str):
        record = _get_attempt_or_404(attempt_id)
        total = as_int(record.get("totalQuestions"))
        values = {
            "percentage": as_int(record.get("percentage")),
            "correctAnswers": as_int(record.get("correctAnswers")),
            "incorrectAnswers": as_int(record.get("incorrectAnswers")),
            "timeSpent": as_int(record.get("timeSpent")),
            "endTime": record.get("endTime") or "",
            "resultMethod": normalize_result_method(record.get("resultMethod")),
            "isResultShown": bool(record.get("isResultShown")),
        }
        error = None
        if request.method == "POST":
            data = parse_attempt_form(request.form)
            values = {**values, **data}
            values["percentage"] = request.form.get("percentage", "")
            error = validate_attempt_edit(data, total)
            if not error:
                try:
                    services.admin_attempts.update(attempt_id, build_attempt_update(data, total))
                    print(f"[admin] {getattr(g, 'user_email', None)} updated attempt {attempt_id}")
                    return redirect(url_for(".attempt_detail", attempt_id=attempt_id, msg="Exam attempt updated"))
                except BackendError as e:
                    error = e.message
        return render_template(
            "admin/attempt_edit.html",
            attempt=record,
            view=_attempt_view(record),
            values=values,
            total=total,
            result_methods=RESULT_METHODS,
            error=error,
        )

    @bp.route("/exam-attempts/<attempt_id>/delete", methods=["GET", "POST"])
    def attempt_delete(attempt_id: str):
        record = _get_attempt_or_404(attempt_id)
        if request.method == "POST":
            try:
                services.admin_attempts.delete(attempt_id)
            except BackendError as e:
                return redirect(url_for(".attempts_list", err=f"Delete failed: {e.message}"))
            return redirect(url_for(".attempts_list", msg="Exam attempt deleted"))
        view = _attempt_view(record)
        return render_template(
            "admin/confirm.html",
            res={"singular": "Exam attempt", "label": "Exam Attempts"},
            record=record,
            summary=f"{view['user_name']} · {view['exam_title']}",
            action="delete",
            cancel_url=url_for(".attempts_list"),
        )

    @bp.post("/exam-attempts/show-results/<exam_id>")
    def attempts_show_results(exam_id: str):
        try:
            services.admin_attempts.show_results(exam_id)
        except BackendError as e:
            return redirect(url_for(".attempts_list", exam=exam_id, err=f"Publish failed: {e.message}"))
        return redirect(url_for(".attempts_list", exam=exam_id, msg="Results published"))

    bp.resources = BY_KEY
    return bp
