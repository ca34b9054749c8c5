import os
from flask import Flask, request

# Load .env only for local/dev. In prod, env vars come from the platform.
if os.getenv("APP_ENV", "development") != "production":
    from dotenv import load_dotenv
    load_dotenv(".env")


from .config import get_config
from .extensions import db, migrate, csrf, login_manager, limiter
from .security import init_security
from .observability import init_logging, init_sentry


def create_app(config_overrides=None):
    app = Flask(__name__)

    app_env = (os.getenv("APP_ENV", "development") or "development").lower()
    use_redis = app_env in ("staging", "production")
    storage_uri = os.environ.get("REDIS_URL") if use_redis else "memory://"
    if use_redis and not storage_uri:
        # Hard fail in stage/prod so we never silently run without RL storage
        raise RuntimeError("REDIS_URL is required in staging/production for rate limiting")

    app.config["RATELIMIT_STORAGE_URI"] = storage_uri
    app.config.setdefault("RATELIMIT_HEADERS_ENABLED", True)

    # Config: clean, explicit, class-based
    app.config.from_object(get_config())
    if config_overrides:
        app.config.update(config_overrides)

    def _require(name: str):
        val = os.getenv(name) or app.config.get(name)
        if not val:
            raise RuntimeError(f"Missing required environment variable: {name}")
        return val

    if app_env in ("staging", "production"):
        # Enforce hard requirements at startup (not at import time)
        _require("SECRET_KEY")
        _require("DATABASE_URL")
        _require("STRIPE_SECRET_KEY")
        _require("STRIPE_WEBHOOK_SECRET")

    init_logging(app)
    init_sentry(app)

    # Apply HTTPS, HSTS & CSP only in staging/production
    if app_env in ("staging", "production"):
        init_security(app)

    # Init extensions; the engine and its pool live as long as the app
    db.init_app(app)
    migrate.init_app(app, db, directory=os.path.join(os.path.dirname(app.root_path), "migrations"))
    csrf.init_app(app)
    login_manager.init_app(app)
    limiter.init_app(app)

    from .blueprints.billing import bp as billing_bp
    from .blueprints.webhooks import bp as webhooks_bp

    app.register_blueprint(billing_bp, url_prefix="/organizations")
    app.register_blueprint(webhooks_bp, url_prefix="/webhooks")

    @limiter.exempt
    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}, 200

    def _wants_json() -> bool:
        return (
            "application/json" in (request.headers.get("Accept") or "").lower()
            or request.is_json
            or request.path.endswith(".json")
        )

    @app.errorhandler(400)
    def bad_request(e):
        return {"error": "bad_request", "code": 400, "description": e.description}, 400

    @app.errorhandler(401)
    def unauthorized(e):
        return {"error": "unauthorized", "code": 401}, 401

    @app.errorhandler(403)
    def forbidden(e):
        return {"error": "forbidden", "code": 403}, 403

    @app.errorhandler(404)
    def not_found(e):
        if _wants_json():
            return {"error": "not_found", "code": 404}, 404
        return ("Not Found", 404)

    @app.errorhandler(409)
    def conflict(e):
        return {"error": "conflict", "code": 409, "description": e.description}, 409

    @app.errorhandler(500)
    def server_error(e):
        return ("Internal Server Error", 500)

    # CSRF error handler (clean 400 instead of generic 500)
    from flask_wtf.csrf import CSRFError

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        return (f"CSRF validation failed: {e.description}", 400)

    # 429 Too Many Requests with Retry-After
    @app.errorhandler(429)
    def too_many_requests(e):
        retry_after = getattr(e, "retry_after", None)
        headers = {}
        payload = {"error": "rate_limited", "code": 429}
        if retry_after is not None:
            headers["Retry-After"] = str(int(retry_after))
            payload["retry_after"] = int(retry_after)
        return (payload, 429, headers)

    # CLI commands (ops-grade utilities)
    from .cli import register_cli
    register_cli(app)

    if not app.config.get("STRIPE_SECRET_KEY"):
        app.logger.warning("Stripe secret key missing; billing features will not work")

    return app
