# Overview: Shared Flask extension instances, bound to the app in create_app.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Every service reads and writes through db.session
db = SQLAlchemy()

# `flask db ...` schema migrations for the POS tables
migrate = Migrate()
