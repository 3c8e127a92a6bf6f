# dynqr/__init__.py

from flask import Flask
from werkzeug.middleware.proxy_fix import ProxyFix

from dynqr.cli import register_commands
from dynqr.config import Config, require_config
from dynqr.extensions import configure_sqlite, cors, db, init_redis
from dynqr.routes.core_routes import core_bp
from dynqr.routes.subscription_routes import subscription_bp
from dynqr.routes.url_routes import url_bp
from dynqr.routes.user_routes import user_bp
from dynqr.routes.webhook_routes import webhook_bp
from dynqr.utils.error_handler import register_error_handlers


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__)

    # Load configuration
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)
    require_config(app.config)

    # Initialize extensions
    cors.init_app(app, origins=app.config.get("CORS_ORIGINS", "*"))
    db.init_app(app)
    init_redis(app)

    # Fix proxy headers
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1)

    register_error_handlers(app)

    # Register blueprints
    app.register_blueprint(core_bp)
    app.register_blueprint(user_bp)
    app.register_blueprint(url_bp)
    app.register_blueprint(subscription_bp, url_prefix="/subscription")
    app.register_blueprint(webhook_bp, url_prefix="/stripe")

    register_commands(app)

    # Create tables if not exists
    with app.app_context():
        from dynqr.models.user import User  # noqa: F401
        from dynqr.models.subscription import Subscription  # noqa: F401
        from dynqr.models.dynamic_url import DynamicUrl  # noqa: F401
        from dynqr.models.payment_session import PaymentSession  # noqa: F401

        if db.engine.dialect.name == "sqlite":
            configure_sqlite(db.engine)
        db.create_all()

    return app
