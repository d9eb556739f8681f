from flask import Flask
from flasgger import Swagger
from flask_cors import CORS

from .commands import register_commands
from .config import get_config, check_config
from .errors import register_error_handlers
from .logs import configure_logging, init_request_logging
from .middleware import SessionMiddleware
from qconnect import __version__
from qconnect.models import storage

SWAGGER_TEMPLATE = {
    "swagger": "2.0",
    "info": {
        "title": "QConnect API",
        "version": __version__,
        "description": "Authentication and session endpoints for the QConnect clinic queue service.",
    },
    "basePath": "/",
    "schemes": ["http", "https"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": "Enter the token with the `Bearer ` prefix, e.g. \"Bearer abcde12345\"."
        }
    }
}

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec_1",
            "route": "/swagger.json",
            "rule_filter": lambda rule: True,   # include all endpoints
            "model_filter": lambda tag: True,   # include all models
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",
}


def create_app(config_name: str | None = None, **overrides) -> Flask:
    """
    Application factory: creates and configures the Flask app.
    `overrides` are applied on top of the selected config class (tests use this).
    """
    app = Flask(__name__)

    app.config.from_object(get_config(config_name))
    app.config.update(overrides)
    check_config(app.config)

    configure_logging(app)

    storage.configure(app.config["DATABASE_URL"], echo=app.config.get("SQL_ECHO", False))
    storage.reload()

    # Request id first so every later hook logs with it
    init_request_logging(app)
    SessionMiddleware(app, policy=app.config.get("AUTH_POLICY"))

    # Cross-Origin Resource Sharing: explicit allow-list, cookies allowed
    CORS(
        app,
        resources={r"/*": {"origins": app.config.get("CORS_ORIGINS", [])}},
        supports_credentials=True,
        expose_headers=["X-Request-ID"],
    )

    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    register_error_handlers(app)
    register_commands(app)

    from .health import bp as health_bp
    from .auth import bp as auth_bp
    from .users import bp as users_bp
    from .admin import bp as admin_bp

    prefix = app.config["API_PREFIX"]
    app.register_blueprint(health_bp, url_prefix=prefix)
    app.register_blueprint(auth_bp, url_prefix=f"{prefix}/auth")
    app.register_blueprint(users_bp, url_prefix=prefix)
    app.register_blueprint(admin_bp, url_prefix=f"{prefix}/admin")

    # Ensure the DB session is removed at the end of each request/app context
    @app.teardown_appcontext
    def remove_session(exception=None):
        storage.close()

    @app.route("/")
    def root():
        return {
            "message": "Welcome to QConnect API",
            "docs": "/apidocs/",
            "health": f"{prefix}/health",
        }, 200

    return app
