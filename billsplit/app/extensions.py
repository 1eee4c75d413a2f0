"""
extensions.py — Flask extension singletons.

`db` and `ma` are created unbound and attached to an app by create_app()
via init_app(), so tests can build as many isolated apps as they need.

    from billsplit.app.extensions import db, ma

Request/response schemas in app/schemas/ subclass marshmallow.Schema
directly, not ma.Schema: ma.Schema needs an app context, and the schema
unit tests run without one. `ma` is initialised so flask-marshmallow's
app integration is available to the rest of the app.
"""

from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
ma = Marshmallow()
