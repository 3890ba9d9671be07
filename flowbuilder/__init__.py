import logging

from flask import Flask
from flask_cors import CORS

from flowbuilder.config import Config
from flowbuilder.database import db, init_db, migrate


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(
        level=getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    # Frontend origins: the editor's dev servers plus CORS_ORIGINS
    allowed_origins = [
        'http://localhost:5173',
        'http://localhost:3000',
    ]
    env_origins = app.config.get('CORS_ORIGINS', '')
    if env_origins:
        allowed_origins.extend([origin.strip() for origin in env_origins.split(',') if origin.strip()])

    CORS(app,
         resources={r"/api/*": {"origins": allowed_origins}},
         supports_credentials=False,
         allow_headers=["Content-Type", "Authorization"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"])

    db.init_app(app)

    # Schema comes from migrations/ (`flask db upgrade`)
    from flowbuilder import models  # noqa: F401
    migrate.init_app(app, db)
    if app.config.get('AUTO_CREATE_TABLES'):
        init_db(app)

    from flowbuilder.routes import health
    app.register_blueprint(health.bp)

    from flowbuilder.routes import flows
    app.register_blueprint(flows.flows_bp)

    from flowbuilder.routes import executions
    app.register_blueprint(executions.executions_bp)

    from flowbuilder.routes import connectors
    app.register_blueprint(connectors.connectors_bp)

    from flowbuilder.routes import schedules
    app.register_blueprint(schedules.schedules_bp)

    return app
