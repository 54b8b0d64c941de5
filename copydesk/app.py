"""
Flask application for the Copydesk admin dashboard.

Provides:
- Login / registration against the backend API
- Dashboard with request statistics
- CRUD pages for print requests, requesters, approvers, books, authors, publishers
- Excel report downloads

Stack: Flask + HTMX + Tailwind CSS (CDN)
"""

import logging
import os
from datetime import timedelta

from flask import Flask, flash, g, jsonify, redirect, render_template, request, url_for

from . import web
from .api_client import ApiError
from .schemas import BOOK_LEVELS
from .config import get_settings
from .dashboard import load_dashboard
from .forms import LoginForm, RegisterForm, validate_form
from .pages import register_entity_blueprints
from .reports import reports_bp
from .version import __version__

APP_VERSION = __version__

app = Flask(__name__)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

settings = get_settings()

# Session configuration
flask_secret_key = settings.flask_secret_key

if not flask_secret_key:
    if settings.is_production:
        raise RuntimeError(
            "CRITICAL: FLASK_SECRET_KEY not set. "
            "Sessions (and the backend tokens inside them) would be invalidated on every restart."
        )
    logger.warning("FLASK_SECRET_KEY not set. Generating random key (sessions will not persist between restarts)")
    flask_secret_key = os.urandom(24).hex()

app.secret_key = flask_secret_key

for problem in settings.validate_production_config() if settings.is_production else []:
    logger.warning(f"Configuration problem: {problem}")

# Cookie security settings
app.config["SESSION_COOKIE_HTTPONLY"] = True
app.config["SESSION_COOKIE_SECURE"] = settings.is_production
app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(days=settings.session_lifetime_days)

register_entity_blueprints(app)
app.register_blueprint(reports_bp)


# Context processor to inject version into all templates
@app.context_processor
def inject_version():
    """Inject version info into all templates."""
    return {"version": APP_VERSION}


@app.context_processor
def inject_user():
    """Inject the logged-in user (if already resolved for this request)."""
    auth = g.get("auth")
    return {"current_user": auth.user if auth is not None else None}


@app.context_processor
def inject_book_levels():
    return {"book_levels": BOOK_LEVELS}


# ============================================================================
# Error handling
# ============================================================================

@app.errorhandler(ApiError)
def handle_api_error(error: ApiError):
    """
    Backend errors that escaped the page handlers.

    401 ends the session; everything else renders an error page (or an
    inline error for HTMX requests).
    """
    if error.is_unauthorized:
        logger.info("Backend rejected the session token; logging out")
        web.get_auth().invalidate()
        flash("Your session has expired. Please log in again.", "error")
        return web.redirect_to_login()

    logger.warning(f"Unhandled backend error {error.status_code}: {error.message}")
    message = error.user_message("The backend returned an error")
    if web.is_htmx():
        return render_template("partials/error.html", error=message), error.status_code
    return render_template("error.html", error=message, status_code=error.status_code), error.status_code


# ============================================================================
# Authentication
# ============================================================================

@app.route("/login", methods=["GET", "POST"])
def login_page():
    """Handle login page and authentication."""
    if request.method == "GET":
        auth = web.get_auth()
        if auth.init() is not None:
            return redirect(url_for("index"))
        return render_template("login.html", errors={}, values={}, error=None)

    form, errors = validate_form(LoginForm, request.form)
    values = {"email": request.form.get("email", "")}
    if errors:
        return render_template("login.html", errors=errors, values=values, error=None), 400

    try:
        web.get_auth().login(form.email, form.password)
    except ApiError as e:
        logger.info(f"Login failed for {form.email}: {e.status_code}")
        return render_template(
            "login.html", errors={}, values=values, error=e.user_message("Login failed")
        ), 401

    flash("Logged in successfully", "success")
    return redirect(url_for("index"))


@app.route("/register", methods=["GET", "POST"])
def register_page():
    """Handle account registration."""
    if request.method == "GET":
        return render_template("register.html", errors={}, values={}, error=None)

    form, errors = validate_form(RegisterForm, request.form)
    values = {"name": request.form.get("name", ""), "email": request.form.get("email", "")}
    if errors:
        return render_template("register.html", errors=errors, values=values, error=None), 400

    try:
        web.get_auth().register(form.name, form.email, form.password, form.password_confirmation)
    except ApiError as e:
        logger.info(f"Registration failed for {form.email}: {e.status_code}")
        return render_template(
            "register.html", errors={}, values=values, error=e.user_message("Registration failed")
        ), e.status_code if e.status_code < 500 else 502

    flash("Account created successfully", "success")
    return redirect(url_for("index"))


@app.route("/logout", methods=["POST"])
def logout():
    """Handle logout."""
    web.get_auth().logout()
    flash("Logged out", "success")
    return redirect(url_for("login_page"))


# ============================================================================
# Pages
# ============================================================================

@app.route("/")
@web.login_required
def index():
    """Render the dashboard."""
    stats = load_dashboard(web.get_backend())
    if stats.failed:
        flash("Failed to load dashboard statistics", "error")
    return render_template("dashboard.html", stats=stats)


@app.route("/health", methods=["GET"])
def public_health_check():
    """
    Public health endpoint for external monitoring.

    No authentication required. The backend is not contacted.
    """
    return jsonify({
        "status": "healthy",
        "version": APP_VERSION,
        "environment": settings.environment,
    })


if __name__ == "__main__":
    app.run(debug=not settings.is_production, port=int(os.getenv("PORT", "5000")))
