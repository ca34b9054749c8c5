import os
from logging.config import dictConfig


def _app_env(app) -> str:
    return (app.config.get("APP_ENV") or os.getenv("APP_ENV", "development") or "development").lower()


def init_logging(app):
    """Structured logs (JSON) in staging/prod; keep default console in dev/tests."""
    level = (app.config.get("LOG_LEVEL") or "INFO").upper()
    if _app_env(app) in ("staging", "production"):
        fmt = "%(asctime)s %(levelname)s %(name)s %(message)s"
        dictConfig({
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"json": {"()": "pythonjsonlogger.jsonlogger.JsonFormatter", "fmt": fmt}},
            "handlers": {"wsgi": {"class": "logging.StreamHandler", "formatter": "json"}},
            "root": {"level": level, "handlers": ["wsgi"]},
        })
    else:
        app.logger.setLevel(level)


def init_sentry(app):
    """Wire Sentry if DSN present; safe no-op otherwise."""
    dsn = app.config.get("SENTRY_DSN") or os.getenv("SENTRY_DSN")
    if not dsn:
        return
    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration

    sentry_sdk.init(
        dsn=dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=float(os.getenv("SENTRY_TRACES", "0.0")),
        profiles_sample_rate=float(os.getenv("SENTRY_PROFILES", "0.0")),
        environment=_app_env(app),
    )
