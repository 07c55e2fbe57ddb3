"""
extensions.py — Flask extension singletons.

Creates the SQLAlchemy object at module level so it can be imported anywhere
without circular dependencies, then binds it inside the app factory:

    from backend.app.extensions import db
    db.init_app(app)

Do not pass the app object to SQLAlchemy() at import time — that would
prevent running tests with a separate test app instance.

Validation schemas (app/schemas/) inherit from marshmallow.Schema directly
so unit tests can instantiate them without an application context.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
