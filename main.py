# main.py — certification portal front end, BASE_PATH-aware, backed by the course REST API
# Enforces: /dashboard needs an admin/superadmin token; learner pages need any valid token.

import os
import re
import json
import base64
import time
from functools import lru_cache
from urllib.parse import quote, urlsplit, urlunsplit
from typing import Any, Dict, Optional

import bleach
import markdown
from flask import (
    Flask, render_template, request, redirect, g, session, flash,
    has_request_context,
)
from markupsafe import Markup

from api_client import BackendClient, BackendError, BACKEND_API_URL, BACKEND_TIMEOUT_SEC
from services import build_services, extract_tokens, slugify
from attempts import format_clock, score_color
from dates import format_date, format_datetime, format_date_for_input
from validation import (
    validate_login, parse_registration_form, validate_registration, EMAIL_RE,
    MIN_PASSWORD_LEN,
)
from site_content_loader import load_site_content

# External blueprints / route modules
from admin import create_admin_blueprint
from account import create_account_blueprint
from user_dashboard import create_user_dashboard_blueprint
from exam import create_exam_blueprint
from home import register_home_routes
from course import register_course_routes

# =============================================================================
# BASE_PATH & Flask app
# =============================================================================
BASE_PATH = (os.getenv("BASE_PATH", "") or "").rstrip("/")
STATIC_URL_PATH = (BASE_PATH + "/static") if BASE_PATH else "/static"

app = Flask(
    __name__,
    static_folder="static",
    static_url_path=STATIC_URL_PATH,
    template_folder="templates",
)
app.url_map.strict_slashes = False
app.secret_key = os.getenv("SECRET_KEY", "dev-secret")
app.config.update(
    SESSION_COOKIE_SAMESITE="Lax",
    SESSION_COOKIE_SECURE=os.getenv("SESSION_COOKIE_SECURE", "1").lower() in {"1", "true", "yes"},
)

# =============================================================================
# Auth mode
# =============================================================================
ADMIN_ROLES = {
    r.strip().lower()
    for r in (os.getenv("ADMIN_ROLES", "admin,superadmin") or "").split(",")
    if r.strip()
}
TOKEN_LEEWAY_SEC = int(os.getenv("TOKEN_LEEWAY_SEC") or 30)

# Session keys (mirror the browser storage keys the backend's clients use)
TOKEN_KEY = "token"
REFRESH_KEY = "refreshToken"
EMAIL_KEY = "userEmail"
PENDING_2FA_KEY = "pending2FA"

ALLOW_RAW_HTML = os.getenv("ALLOW_RAW_HTML", "1").lower() in {"1", "true", "yes"}
SANITIZE_HTML = os.getenv("SANITIZE_HTML", "1").lower() in {"1", "true", "yes"}

BLEACH_ALLOWED_TAGS = [
    "a","abbr","b","blockquote","code","em","i","li","ol","strong","ul",
    "p","h1","h2","h3","h4","h5","h6","pre","hr","br","span","div","img","table",
    "thead","tbody","tr","th","td","caption","figure","figcaption","u","s","sub","sup",
]
BLEACH_ALLOWED_ATTRS = {
    "*": ["class","id","title"],
    "a": ["href","name","target","rel"],
    "img": ["src","alt","width","height","loading"],
}
BLEACH_ALLOWED_PROTOCOLS = ["http","https","mailto"]


def _bp(path: str = "") -> str:
    """Prefix a path with BASE_PATH (if set)."""
    p = path or "/"
    if not p.startswith("/"):
        p = "/" + p
    if BASE_PATH and (p == BASE_PATH or p.startswith(BASE_PATH + "/")):
        return p
    return (BASE_PATH + p) if BASE_PATH else p

# =============================================================================
# Backend client + services
# =============================================================================
def _session_token() -> Optional[str]:
    if not has_request_context():
        return None
    return session.get(TOKEN_KEY)

backend = BackendClient(BACKEND_API_URL, token_getter=_session_token, timeout=BACKEND_TIMEOUT_SEC)
services = build_services(backend)

print(f"[api] backend -> {BACKEND_API_URL} (timeout {BACKEND_TIMEOUT_SEC}s)", flush=True)

# =============================================================================
# Rendering helpers (Markdown/HTML)
# =============================================================================
_HTML_PATTERN = re.compile(r"</?\w+[^>]*>")

def _sanitize_if_enabled(html: str) -> str:
    if not SANITIZE_HTML:
        return html
    return bleach.clean(
        html,
        tags=BLEACH_ALLOWED_TAGS,
        attributes=BLEACH_ALLOWED_ATTRS,
        protocols=BLEACH_ALLOWED_PROTOCOLS,
        strip=True,
    )

@lru_cache(maxsize=512)
def _render_rich_cached(text: str, allow_raw: bool, sanitize_flag: bool) -> str:
    if not text:
        return ""
    # Rich-text editor output arrives as HTML already
    if allow_raw and _HTML_PATTERN.search(text):
        return _sanitize_if_enabled(text)
    html = markdown.markdown(
        text,
        extensions=["fenced_code", "tables", "sane_lists", "attr_list"],
        output_format="html5",
    )
    return _sanitize_if_enabled(html)

def render_rich(text: Optional[str]) -> Markup:
    if text is None:
        return Markup("")
    text_str = text if isinstance(text, str) else str(text)
    html = _render_rich_cached(text_str, ALLOW_RAW_HTML, SANITIZE_HTML)
    return Markup(html)

def format_duration(minutes: Optional[int]) -> str:
    if not minutes: return "—"
    h, m = divmod(int(minutes), 60)
    if h and m: return f"{h}h {m}m"
    if h: return f"{h}h"
    return f"{m}m"

app.jinja_env.filters["rich"] = render_rich
app.jinja_env.filters["duration"] = format_duration
app.jinja_env.filters["clock"] = format_clock
app.jinja_env.filters["date"] = format_date
app.jinja_env.filters["datetime"] = format_datetime
app.jinja_env.filters["date_input"] = format_date_for_input
app.jinja_env.filters["score_color"] = score_color

# =============================================================================
# Token helpers (payload is read, never verified; the backend verifies)
# =============================================================================
def _token_claims(token: Optional[str]) -> Dict[str, Any]:
    if not token or token.count(".") != 2:
        return {}
    try:
        seg = token.split(".")[1]
        seg += "=" * (-len(seg) % 4)
        data = json.loads(base64.urlsafe_b64decode(seg.encode("ascii")).decode("utf-8"))
        return data if isinstance(data, dict) else {}
    except ValueError as e:
        print(f"[auth] token decode failed: {e}")
        return {}

def _token_expired(claims: Dict[str, Any]) -> bool:
    exp = claims.get("exp")
    if exp is None:
        return False
    try:
        return float(exp) <= time.time() + TOKEN_LEEWAY_SEC
    except (TypeError, ValueError):
        return True

def _claims_role(claims: Dict[str, Any]) -> str:
    role = claims.get("role")
    if isinstance(role, list):
        role = role[0] if role else ""
    return str(role or "").strip().lower()

def _store_tokens(tokens: Dict[str, Optional[str]], email: Optional[str] = None):
    session[TOKEN_KEY] = tokens.get("token")
    if tokens.get("refreshToken"):
        session[REFRESH_KEY] = tokens["refreshToken"]
    if email:
        session[EMAIL_KEY] = email

def _refresh_session() -> Optional[Dict[str, Any]]:
    rt = session.get(REFRESH_KEY)
    if not rt:
        return None
    try:
        tokens = services.auth.refresh(rt)
    except BackendError as e:
        print(f"[auth] token refresh failed: {e}")
        return None
    if not tokens:
        return None
    _store_tokens(tokens)
    claims = _token_claims(tokens.get("token"))
    if _token_expired(claims):
        return None
    return claims

def current_user_email() -> Optional[str]:
    e = (session.get(EMAIL_KEY) or "").strip().lower()
    if e:
        return e
    claims = _token_claims(session.get(TOKEN_KEY))
    e = str(claims.get("email") or "").strip().lower()
    return e or None

def _home_for_role(role: str) -> str:
    return _bp("/dashboard") if role in ADMIN_ROLES else _bp("/user-dashboard")

# =============================================================================
# Jinja helpers
# =============================================================================
@app.context_processor
def inject_user_and_base():
    site = load_site_content()
    return {
        "current_user_email": getattr(g, "user_email", None),
        "current_user_role": getattr(g, "user_role", None),
        "is_admin": getattr(g, "user_role", None) in ADMIN_ROLES,
        "base_path": BASE_PATH,
        "bp": _bp,
        "site_name": site.get("site_name") or "Certification Portal",
        "site_nav": site.get("nav") or [],
    }

# =============================================================================
# Routes (auth, health)
# =============================================================================
@app.get("/healthz")
def healthz():
    return ("ok", 200)

@app.get("/favicon.ico")
def favicon():
    return ("", 204)

def _sanitize_next(next_url: Optional[str]) -> Optional[str]:
    if not next_url:
        return None
    parts = urlsplit(next_url)
    if parts.scheme or parts.netloc:
        return None
    path = parts.path or "/"
    blocked_prefixes = {_bp("/login"), _bp("/signup"), _bp("/logout"), "/login", "/signup", "/logout"}
    if any(path == p or path.startswith(p + "/") for p in blocked_prefixes):
        return None
    return urlunsplit(("", "", path, parts.query, "")) or None

def _finish_login(tokens: Dict[str, Optional[str]], email: str):
    session.pop(PENDING_2FA_KEY, None)
    _store_tokens(tokens, email)
    role = _claims_role(_token_claims(tokens.get("token")))
    print(f"[auth] signed in {email} (role={role or 'user'})")
    next_url = _sanitize_next(session.pop("login_next", None))
    return redirect(next_url or _home_for_role(role))

# --- LOGIN ---
@app.route("/login", methods=["GET", "POST"])
def login():
    if request.method == "POST":
        next_url = _sanitize_next(request.form.get("next") or session.get("login_next"))
    else:
        next_url = _sanitize_next(request.args.get("next") or session.get("login_next"))
    if next_url:
        session["login_next"] = next_url

    errors = []
    email = ""
    if request.method == "POST":
        email = (request.form.get("email") or "").strip().lower()
        password = request.form.get("password") or ""
        errors = validate_login(email, password)
        if not errors:
            try:
                resp = services.auth.login(email, password)
                tokens = extract_tokens(resp)
                if tokens.get("token"):
                    return _finish_login(tokens, email)
                user_id = resp.get("userId") or (resp.get("data") or {}).get("userId")
                if user_id:
                    session[PENDING_2FA_KEY] = {"userId": str(user_id), "email": email}
                    flash("Enter the verification code sent to your email.", "info")
                    return redirect(_bp("/login/verify"))
                errors = [resp.get("message") or "Login failed"]
            except BackendError as e:
                errors = [e.message]

    return render_template(
        "auth/login.html",
        next_url=next_url or "",
        email=email,
        errors=errors,
    )

@app.route("/login/verify", methods=["GET", "POST"])
def login_verify():
    pending = session.get(PENDING_2FA_KEY)
    if not pending:
        return redirect(_bp("/login"))
    errors = []
    if request.method == "POST":
        otp = re.sub(r"\s+", "", request.form.get("otp") or "")
        if not otp.isdigit():
            errors = ["Please enter the numeric verification code"]
        else:
            try:
                tokens = extract_tokens(services.auth.verify_2fa(pending["userId"], otp))
                if tokens.get("token"):
                    return _finish_login(tokens, pending["email"])
                errors = ["Invalid verification code"]
            except BackendError as e:
                errors = [e.message]
    return render_template("auth/verify.html", email=pending.get("email"), errors=errors)

# --- SIGNUP ---
@app.route("/signup", methods=["GET", "POST"])
def signup():
    data: Dict[str, Any] = {}
    errors = []
    if request.method == "POST":
        data = parse_registration_form(request.form)
        errors = validate_registration(data)
        if not errors:
            try:
                services.auth.register(data)
                flash("Account created. Please sign in.", "success")
                return redirect(_bp("/login"))
            except BackendError as e:
                errors = [e.message]
    data.pop("password", None)
    return render_template("auth/signup.html", form=data, errors=errors)

# --- PASSWORD RESET ---
@app.route("/forgot-password", methods=["GET", "POST"])
def forgot_password():
    errors = []
    sent = False
    if request.method == "POST":
        email = (request.form.get("email") or "").strip().lower()
        if not EMAIL_RE.match(email):
            errors = ["Please enter a valid email address"]
        else:
            try:
                services.auth.forgot_password(email)
                sent = True
            except BackendError as e:
                errors = [e.message]
    return render_template("auth/forgot_password.html", errors=errors, sent=sent)

@app.route("/reset-password/<reset_token>", methods=["GET", "POST"])
def reset_password(reset_token: str):
    errors = []
    if request.method == "POST":
        password = request.form.get("password") or ""
        confirm = request.form.get("confirmPassword") or ""
        if len(password) < MIN_PASSWORD_LEN:
            errors = [f"Password must be at least {MIN_PASSWORD_LEN} characters long"]
        elif password != confirm:
            errors = ["Passwords don't match"]
        else:
            try:
                services.auth.reset_password(reset_token, password)
                flash("Password updated. Please sign in.", "success")
                return redirect(_bp("/login"))
            except BackendError as e:
                errors = [e.message]
    return render_template("auth/reset_password.html", errors=errors, reset_token=reset_token)

# --- LOGOUT ---
@app.get("/logout")
def logout():
    session.clear()
    flash("Signed out.", "success")
    return redirect(_bp("/"))

# --- Register the SAME routes under BASE_PATH aliases ---
if BASE_PATH:
    app.add_url_rule(f"{BASE_PATH}/login", endpoint="login_bp", view_func=login, methods=["GET", "POST"])
    app.add_url_rule(f"{BASE_PATH}/login/verify", endpoint="login_verify_bp", view_func=login_verify, methods=["GET", "POST"])
    app.add_url_rule(f"{BASE_PATH}/signup", endpoint="signup_bp", view_func=signup, methods=["GET", "POST"])
    app.add_url_rule(f"{BASE_PATH}/forgot-password", endpoint="forgot_password_bp", view_func=forgot_password, methods=["GET", "POST"])
    app.add_url_rule(f"{BASE_PATH}/reset-password/<reset_token>", endpoint="reset_password_bp", view_func=reset_password, methods=["GET", "POST"])
    app.add_url_rule(f"{BASE_PATH}/logout", endpoint="logout_bp", view_func=logout, methods=["GET"])

# =============================================================================
# Route gate
# =============================================================================
def _under(path: str, root: str) -> bool:
    for r in {root, _bp(root)}:
        if path == r or path.startswith(r + "/"):
            return True
    return False

def _is_admin_path(path: str) -> bool:
    return _under(path, "/dashboard")

def _is_learner_path(path: str) -> bool:
    return _under(path, "/user-dashboard") or _under(path, "/profile")

def _login_redirect():
    full = request.full_path if request.query_string else request.path
    next_url = _sanitize_next(full) or _bp("/")
    return redirect(f"{_bp('/login')}?next={quote(next_url, safe='/:?&=')}")

@app.before_request
def enforce_or_attach_identity():
    path = request.path
    if path.startswith(STATIC_URL_PATH):
        return
    token = session.get(TOKEN_KEY)
    claims = _token_claims(token) if token else {}
    protected = _is_admin_path(path) or _is_learner_path(path)

    if token and (not claims or _token_expired(claims)):
        claims = _refresh_session() or {}
        if not claims:
            for k in (TOKEN_KEY, REFRESH_KEY):
                session.pop(k, None)
            token = None
            if protected:
                flash("Your session has expired. Please sign in again.", "warning")

    if token and claims:
        g.user_email = current_user_email()
        g.user_role = _claims_role(claims) or "user"
        g.user_id = claims.get("userId") or claims.get("id") or claims.get("_id") or claims.get("sub")

    if not protected:
        return
    if not (token and claims):
        return _login_redirect()
    if _is_admin_path(path) and getattr(g, "user_role", None) not in ADMIN_ROLES:
        return redirect(_bp("/user-dashboard"))

# =============================================================================
# Register split route modules (home.py & course.py)
# =============================================================================
_site_deps = {
    "services": services,
    "slugify": slugify,
    "load_site_content": load_site_content,
}
register_home_routes(app, BASE_PATH, _site_deps)
register_course_routes(app, BASE_PATH, _site_deps)

# =============================================================================
# Dashboards
# =============================================================================
_dashboard_deps = {
    "services": services,
    "bp": _bp,
    "current_user_email": current_user_email,
    "admin_roles": ADMIN_ROLES,
}
app.register_blueprint(create_admin_blueprint("", _dashboard_deps, name="admin"))
app.register_blueprint(create_account_blueprint("", _dashboard_deps, name="account"))
app.register_blueprint(create_user_dashboard_blueprint("", _dashboard_deps, name="user_dashboard"))
app.register_blueprint(create_exam_blueprint("", _dashboard_deps, name="exam"))
if BASE_PATH:
    app.register_blueprint(create_admin_blueprint(BASE_PATH, _dashboard_deps, name="admin_alias"))
    app.register_blueprint(create_account_blueprint(BASE_PATH, _dashboard_deps, name="account_alias"))
    app.register_blueprint(create_user_dashboard_blueprint(BASE_PATH, _dashboard_deps, name="user_dashboard_alias"))
    app.register_blueprint(create_exam_blueprint(BASE_PATH, _dashboard_deps, name="exam_alias"))

# =============================================================================
# Local dev entry
# =============================================================================
if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    app.run(host="0.0.0.0", port=port, debug=True)
