"""
SessionGuard Web API
====================
Flask surface over the auth flow controller.

Responses are JSON carrying the state a page would render. Sessions
travel in an HttpOnly, SameSite=Strict cookie; the optional remember-me
token travels in its own long-lived cookie.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Optional

from flask import Blueprint, Flask, current_app, g, jsonify, redirect, request

from sessionguard.core.auth.argon2_auth import Argon2Hasher
from sessionguard.core.auth.attempt_ledger import LoginAttemptLedger
from sessionguard.core.auth.credential_store import CredentialStore
from sessionguard.core.auth.flow import AuthFlowController
from sessionguard.core.auth.remember_tokens import RememberTokenStore
from sessionguard.core.auth.session_control import SessionManager, SessionState
from sessionguard.core.config import SessionGuardConfig
from sessionguard.core.errors import AuthResult, ErrorKind, PersistenceError
from sessionguard.core.logging import configure_root_logger
from sessionguard.db import Clock, Database, open_database

_log = logging.getLogger("sessionguard.web")

bp = Blueprint("sessionguard", __name__)

_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.AUTHENTICATION_FAILURE: 401,
    ErrorKind.DUPLICATE_EMAIL: 409,
    ErrorKind.LOCKED_OUT: 429,
    ErrorKind.PERSISTENCE: 503,
}


# ============================================================
# HELPERS
# ============================================================

def _controller() -> AuthFlowController:
    return current_app.extensions["sessionguard"]


def _config() -> SessionGuardConfig:
    return current_app.config["SESSIONGUARD"]


def _form() -> dict[str, Any]:
    """Request payload from a JSON body or a form post."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def _truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


def _result_response(result: AuthResult, success_status: int = 200):
    body: dict[str, Any] = {
        "status": "success" if result.ok else "error",
        "message": result.messages[0] if result.messages else None,
        "messages": result.messages,
    }
    if result.kind is not None:
        body["kind"] = result.kind.value
    if result.redirect_to:
        body["redirect_to"] = result.redirect_to
    body.update(result.data)

    if result.clear_cookies:
        g.clear_cookies = True
    if result.remember_token:
        g.remember_token = result.remember_token

    response = jsonify(body)
    response.status_code = success_status if result.ok else _STATUS_BY_KIND[result.kind]
    if result.retry_after_minutes:
        response.headers["Retry-After"] = str(result.retry_after_minutes * 60)
    return response


def _end_idle_session() -> None:
    """An idle timeout also drops the remember-me token."""
    _controller().logout(g.session, request.cookies.get(_config().security.remember_cookie_name))
    g.clear_cookies = True


def require_login(view):
    """Deny anonymous and idle sessions with a login redirect."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        target = request.full_path if request.query_string else request.path
        decision = _controller().sessions.require_authenticated(
            g.session,
            target if request.method == "GET" else None,
        )
        if not decision.allowed:
            if decision.timed_out:
                _end_idle_session()
            return jsonify({
                "status": "error",
                "message": "Authentication required",
                "redirect_to": decision.redirect_to,
                "timed_out": decision.timed_out,
            }), 401
        return view(*args, **kwargs)
    return wrapper


# ============================================================
# REQUEST LIFECYCLE
# ============================================================

@bp.before_app_request
def load_session():
    if request.path == "/health":
        return

    security = _config().security
    controller = _controller()
    g.session = controller.sessions.load(request.cookies.get(security.session_cookie_name))

    remember_token = request.cookies.get(security.remember_cookie_name)
    if remember_token and not g.session.is_authenticated:
        result = controller.resume(g.session, remember_token)
        if result.ok:
            g.remember_token = result.remember_token
        elif result.kind is not ErrorKind.PERSISTENCE:
            g.clear_remember = True


@bp.after_app_request
def write_cookies(response):
    session = g.get("session")
    if session is None:
        return response

    security = _config().security
    cookie_args = {
        "path": "/",
        "httponly": True,
        "samesite": "Strict",
        "secure": security.cookie_secure,
    }

    if session.persisted and session.token_changed and session.token:
        response.set_cookie(security.session_cookie_name, session.token, **cookie_args)
    elif session.destroyed or g.get("clear_cookies"):
        response.delete_cookie(security.session_cookie_name, **cookie_args)

    if g.get("remember_token"):
        response.set_cookie(
            security.remember_cookie_name,
            g.remember_token,
            max_age=security.remember_days * 24 * 3600,
            **cookie_args,
        )
    elif g.get("clear_cookies") or g.get("clear_remember"):
        response.delete_cookie(security.remember_cookie_name, **cookie_args)

    return response


@bp.after_app_request
def purge_idle_sessions(response):
    _controller().sessions.cleanup_if_due()
    return response


@bp.app_errorhandler(PersistenceError)
def persistence_error(error):
    _log.error("Unhandled persistence failure: %s", error)
    message = "A temporary error occurred. Please try again later."
    if _config().app.debug_mode:
        message = f"{message} ({error})"
    return jsonify({"status": "error", "kind": ErrorKind.PERSISTENCE.value, "message": message}), 503


# ============================================================
# HEALTH CHECK
# ============================================================

@bp.route("/health")
def health():
    return jsonify({
        "status": "healthy",
        "version": _config().app.version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })


# ============================================================
# AUTHENTICATION ROUTES
# ============================================================

@bp.route("/")
def index():
    if _controller().sessions.state(g.session) is SessionState.AUTHENTICATED:
        return redirect(_config().app.landing_page)
    return redirect("/login")


@bp.route("/login", methods=["GET", "POST"])
def login():
    controller = _controller()

    if request.method == "GET":
        if controller.sessions.state(g.session) is SessionState.AUTHENTICATED:
            return redirect(_config().app.landing_page)
        message = None
        if request.args.get("timeout") == "1":
            message = "Your session expired due to inactivity. Please log in again."
        elif request.args.get("logout") == "1":
            message = "You have been logged out."
        return jsonify({"authenticated": False, "message": message})

    data = _form()
    result = controller.login(
        g.session,
        data.get("email"),
        data.get("password"),
        remember=_truthy(data.get("remember")),
        source_address=request.remote_addr or "unknown",
    )
    return _result_response(result)


@bp.route("/register", methods=["GET", "POST"])
def register():
    controller = _controller()
    security = _config().security

    if request.method == "GET":
        if controller.sessions.state(g.session) is SessionState.AUTHENTICATED:
            return redirect(_config().app.landing_page)
        return jsonify({
            "min_name_length": security.min_name_length,
            "max_name_length": security.max_name_length,
            "min_password_length": security.min_password_length,
            "max_password_length": security.max_password_length,
        })

    data = _form()
    result = controller.register(
        data.get("name"),
        data.get("email"),
        data.get("password"),
        data.get("confirm_password"),
    )
    return _result_response(result, success_status=201)


@bp.route("/logout", methods=["POST"])
def logout():
    remember_token = request.cookies.get(_config().security.remember_cookie_name)
    return _result_response(_controller().logout(g.session, remember_token))


@bp.route("/keep-alive", methods=["POST"])
def keep_alive():
    result = _controller().keep_alive(g.session)
    if not result.ok and g.session.destroyed:
        _end_idle_session()
    return _result_response(result)


# ============================================================
# ACCOUNT ROUTES
# ============================================================

@bp.route("/dashboard")
@require_login
def dashboard():
    return _result_response(_controller().dashboard(g.session))


@bp.route("/profile", methods=["GET", "POST"])
@require_login
def profile():
    controller = _controller()

    if request.method == "GET":
        result = controller.dashboard(g.session)
        if result.ok:
            result.data = {"user": result.data["user"]}
        return _result_response(result)

    data = _form()
    result = controller.update_profile(
        g.session,
        data.get("name"),
        data.get("email"),
        current_password=data.get("current_password"),
        new_password=data.get("new_password"),
        confirm_new_password=data.get("confirm_new_password"),
    )
    return _result_response(result)


@bp.route("/users")
@require_login
def users():
    return _result_response(_controller().list_users())


# ============================================================
# APPLICATION FACTORY
# ============================================================

def create_app(
    config: Optional[SessionGuardConfig] = None,
    database: Optional[Database] = None,
    hasher: Optional[Argon2Hasher] = None,
    clock: Optional[Clock] = None,
) -> Flask:
    """
    Build the Flask application and wire the auth components.

    Args:
        config: Configuration, defaults to the process-wide instance
        database: Persistence service, defaults to the configured backend
        hasher: Password hasher, defaults to configured Argon2 parameters
        clock: Source of the current time for every component
    """
    config = config or SessionGuardConfig.get_instance()
    config.ensure_directories()
    configure_root_logger(config.logging, config.paths.log_dir)

    security = config.security
    database = database or open_database(config)
    hasher = hasher or Argon2Hasher.from_config(security)

    sessions = SessionManager(
        database,
        timeout_seconds=security.session_timeout_seconds,
        rotation_seconds=security.session_rotation_seconds,
        clock=clock,
    )
    controller = AuthFlowController(
        store=CredentialStore(database, clock=clock),
        ledger=LoginAttemptLedger(database, clock=clock),
        hasher=hasher,
        sessions=sessions,
        remember_tokens=RememberTokenStore(database, lifetime_days=security.remember_days, clock=clock),
        security=security,
        app=config.app,
        clock=clock,
    )

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = 64 * 1024
    app.config["SESSIONGUARD"] = config
    app.extensions["sessionguard"] = controller
    app.register_blueprint(bp)

    _log.info("%s %s started (%s)", config.app.app_name, config.app.version, database.dialect)
    return app
