from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
migrate = Migrate()


def init_db(app):
    """Create tables for every model. Only used where AUTO_CREATE_TABLES is set; otherwise run `flask db upgrade`."""
    with app.app_context():
        from flowbuilder import models  # noqa: F401
        db.create_all()
