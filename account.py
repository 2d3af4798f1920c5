# account.py
# Learner profile (general) and security (password + two-factor) pages.
from typing import Any, Dict, Optional

from flask import Blueprint, render_template, redirect, url_for, request, flash, g

from api_client import BackendError
from validation import parse_profile_form, validate_profile, validate_password_change, COUNTRY_CODES


def create_account_blueprint(url_prefix: str, deps: Dict[str, Any], name: str = "account") -> Blueprint:
    """
    Mounted at <url_prefix>/user-dashboard plus a /profile shortcut.
    deps:
      - services: Services container (profile)
    """
    services = deps["services"]
    base_prefix = url_prefix.rstrip("/") if url_prefix else ""
    bp = Blueprint(name, __name__, url_prefix=base_prefix or None)

    def _load_profile() -> Optional[Dict[str, Any]]:
        try:
            return services.profile.get()
        except BackendError as e:
            print(f"[account] profile fetch failed for {getattr(g, 'user_email', None)}: {e}")
            return None

    @bp.get("/profile")
    def profile_shortcut():
        return redirect(url_for(".general"))

    @bp.route("/user-dashboard/general", methods=["GET", "POST"])
    def general():
        errors = []
        if request.method == "POST":
            data = parse_profile_form(request.form)
            errors = validate_profile(data)
            if not errors:
                try:
                    services.profile.update(data)
                    flash("Profile updated successfully.", "success")
                    return redirect(url_for(".general"))
                except BackendError as e:
                    errors = [e.message]
            profile = {**(_load_profile() or {}), **data}
        else:
            profile = _load_profile()
        return render_template(
            "account/general.html",
            profile=profile or {},
            unavailable=profile is None,
            countries=COUNTRY_CODES,
            errors=errors,
        )

    @bp.route("/user-dashboard/security", methods=["GET", "POST"])
    def security():
        profile = _load_profile() or {}
        two_fa = bool(profile.get("is2FAEnabled"))
        errors = []
        if request.method == "POST":
            action = request.form.get("action") or "password"
            if action == "2fa":
                enable = (request.form.get("is2FAEnabled") or "").lower() in ("1", "true", "on", "yes")
                try:
                    services.profile.update_2fa(enable)
                    flash(
                        "Two-factor authentication enabled." if enable else "Two-factor authentication disabled.",
                        "success",
                    )
                    return redirect(url_for(".security"))
                except BackendError as e:
                    errors = [e.message]
            else:
                current = request.form.get("currentPassword") or ""
                new = request.form.get("newPassword") or ""
                confirm = request.form.get("confirmPassword") or ""
                errors = validate_password_change(current, new, confirm)
                if not errors:
                    try:
                        services.profile.change_password(current, new, two_fa)
                        flash("Password changed successfully.", "success")
                        return redirect(url_for(".security"))
                    except BackendError as e:
                        errors = [e.message]
        return render_template("account/security.html", two_fa_enabled=two_fa, errors=errors)

    return bp
