"""
wsgi.py — Entry point for `flask --app backend.wsgi ...` and WSGI servers.

The config name is taken from FLASK_ENV (development | testing | production).

    cd backend && alembic upgrade head      # PostgreSQL schema
    flask --app backend.wsgi init-db        # quick local schema (create_all)
    flask --app backend.wsgi run
"""

import os

from backend.app import create_app

app = create_app(os.getenv("FLASK_ENV", "development"))
