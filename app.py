"""Composite Flask runner

Run this file to serve all three apps together:
- quiz app mounted at the site root (/) and at /quiz
- library app (classes and study sets) mounted at /library
- scanner app (OCR of scanned notes) mounted at /scanner

Usage:
    python app.py
"""
import base64
import json
import logging
import os

import firebase_admin
from firebase_admin import credentials, initialize_app
from werkzeug.middleware.dispatcher import DispatcherMiddleware
from werkzeug.serving import run_simple

LOG = logging.getLogger("composed-app")
logging.basicConfig(level=logging.INFO)


def init_firebase():
    """Initialize firebase_admin from SERVICE_ACCOUNT_JSON or a local key file.

    Returns True when an app was initialized. Without credentials the library
    app answers 503.
    """
    sa_b64 = os.environ.get("SERVICE_ACCOUNT_JSON")
    if sa_b64:
        try:
            sa_json = json.loads(base64.b64decode(sa_b64).decode("utf-8"))
            initialize_app(credentials.Certificate(sa_json))
            LOG.info("Firebase admin initialized from SERVICE_ACCOUNT_JSON")
            return True
        except (ValueError, TypeError) as e:
            LOG.error("Failed to init firebase admin from SERVICE_ACCOUNT_JSON: %s", e)
            return False
    local_path = os.path.join(os.getcwd(), "serviceAccountKey.json")
    if os.path.exists(local_path):
        initialize_app(credentials.Certificate(local_path))
        LOG.info("Firebase admin initialized from local serviceAccountKey.json")
        return True
    LOG.warning("No service account available; continuing without firebase_admin")
    return False


def make_app():
    """Compose apps and return a WSGI application.

    Firebase is initialized here once, so WSGI servers importing this factory
    get the library store too.
    """
    if not firebase_admin._apps:
        init_firebase()
    from quiz import app as quiz_app
    from library import app as library_app
    from scanner import app as scanner_app

    mounts = {
        "/quiz": quiz_app,
        "/library": library_app,
        "/scanner": scanner_app,
    }
    return DispatcherMiddleware(quiz_app, mounts)


if __name__ == "__main__":
    wsgi_app = make_app()
    LOG.info("Starting composed server on http://0.0.0.0:5000 ...")
    run_simple("0.0.0.0", 5000, wsgi_app, use_reloader=True, use_debugger=True)
