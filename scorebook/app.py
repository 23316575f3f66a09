#!/usr/bin/env python3
"""
Scorebook - Grade Tracking
==========================
Run: python3 -m scorebook.app
Then open: http://localhost:3000
"""

import os
import logging

from flask import Flask, jsonify, redirect, send_from_directory
from flask_cors import CORS

from scorebook.auth import (
    STUDENT_LOGIN_PAGE, TEACHER_HOME_PAGE, TEACHER_LOGIN_PAGE,
    end_session, get_jwt_secret, home_page, init_auth, session_is_valid,
)
from scorebook.config import HOST, LOG_LEVEL, PORT, DEBUG, STATIC_DIR, config
from scorebook.errors import IdentityError
from scorebook.routes import register_routes
from scorebook.services.dashboards import DashboardRegistry
from scorebook.services.documents import MemoryDocumentStore
from scorebook.services.identity import MemoryIdentityService
from scorebook.session import session_store

logger = logging.getLogger(__name__)


def configure_logging(level=LOG_LEVEL):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_backend(cfg=config):
    """Create the (store, identity) pair for the configured backend."""
    if cfg.backend == "supabase":
        from scorebook.services.supabase_backend import (
            SupabaseDocumentStore, SupabaseIdentityService,
        )
        store = SupabaseDocumentStore(
            cfg.supabase_url, cfg.supabase_service_key, poll_interval=cfg.poll_interval,
        )
        identity = SupabaseIdentityService(
            cfg.supabase_url, cfg.supabase_service_key, anon_key=cfg.supabase_anon_key,
        )
        return store, identity

    store = MemoryDocumentStore()
    identity = MemoryIdentityService(get_jwt_secret(), ttl_seconds=cfg.token_ttl_seconds)
    provision_teacher(identity, cfg)
    return store, identity


def provision_teacher(identity, cfg=config):
    """Create the fixed teacher account (memory backend only)."""
    try:
        identity.create_account(cfg.teacher_email, cfg.teacher_password_code)
        logger.info("Teacher account provisioned: %s", cfg.teacher_email)
    except IdentityError as e:
        if e.code != "email_exists":
            raise


def create_app(store=None, identity=None, cfg=config):
    """Application factory. Pass store/identity to override the configured backend."""
    app = Flask(__name__, static_folder=str(STATIC_DIR), static_url_path='/static')
    app.secret_key = cfg.secret_key
    CORS(app, supports_credentials=True)

    if store is None or identity is None:
        store, identity = build_backend(cfg)

    app.extensions['scorebook'] = {
        "store": store,
        "identity": identity,
        "dashboards": DashboardRegistry(
            store, identity,
            workers=cfg.fetch_workers,
            idle_seconds=cfg.dashboard_idle_seconds,
        ),
    }

    # ══════════════════════════════════════════════════════════════
    # AUTHENTICATION
    # ══════════════════════════════════════════════════════════════
    init_auth(app)
    register_routes(app)
    register_pages(app)
    return app


def _shell(page):
    """Serve the frontend shell, or name the page when no build is present."""
    index = os.path.join(STATIC_DIR, 'index.html')
    if os.path.exists(index):
        return send_from_directory(STATIC_DIR, 'index.html')
    return jsonify({"page": page})


def _valid_session():
    """The current session, or None. A stale one is ended on the way."""
    current = session_store.read()
    if current is not None and not session_is_valid(current):
        end_session(current)
        return None
    return current


def register_pages(app):
    """Page routes applying the navigation rules before serving the shell."""

    @app.route('/')
    @app.route('/register')
    def student_login_page():
        current = _valid_session()
        if current is not None:
            return redirect(home_page(current))
        return _shell('login')

    @app.route('/teacher-admin')
    def teacher_login_page():
        current = _valid_session()
        if current is not None and current.is_teacher:
            return redirect(TEACHER_HOME_PAGE)
        return _shell('teacher-admin')

    @app.route('/dashboard')
    def student_dashboard_page():
        current = _valid_session()
        if current is None:
            return redirect(STUDENT_LOGIN_PAGE)
        if current.is_teacher:
            return redirect(TEACHER_HOME_PAGE)
        return _shell('dashboard')

    @app.route('/teacher-dashboard')
    def teacher_dashboard_page():
        current = _valid_session()
        if current is None:
            return redirect(TEACHER_LOGIN_PAGE)
        if not current.is_teacher:
            end_session(current)
            return redirect(STUDENT_LOGIN_PAGE)
        return _shell('teacher-dashboard')

    @app.route('/api/health')
    def health():
        return jsonify({"status": "ok", "backend": config.backend})


# ══════════════════════════════════════════════════════════════
# MAIN
# ══════════════════════════════════════════════════════════════

if __name__ == '__main__':
    configure_logging()
    application = create_app()

    print()
    print("+" + "=" * 50 + "+")
    print("|  Scorebook - Grade Tracking                      |")
    print("+" + "=" * 50 + "+")
    print("|                                                  |")
    print(f"|  Open in browser: http://localhost:{PORT:<14}|")
    print("|                                                  |")
    print("|  Press Ctrl+C to stop                            |")
    print("+" + "=" * 50 + "+")
    print()

    application.run(host=HOST, port=PORT, debug=DEBUG)
