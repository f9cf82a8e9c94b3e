"""
FieldOps Workflow Core
Flask Application Factory.

Usage:
    from fieldops import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask
from flask_cors import CORS
from flask_migrate import Migrate

from fieldops.config import config
from fieldops.models import db
from fieldops.middleware.logging_config import configure_logging
from fieldops.middleware.tenant_context import init_tenant_context

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()


def create_app(config_name=None, config_overrides=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
        config_overrides: Optional mapping applied on top of the config class.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name])
    if config_overrides:
        app.config.update(config_overrides)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Tenant context middleware (sets g.tenant from gateway headers) ──
    init_tenant_context(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from fieldops.models import tenant as _tenant_models          # noqa: F401
    from fieldops.models import sequence as _sequence_models      # noqa: F401
    from fieldops.models import job as _job_models                # noqa: F401
    from fieldops.models import quote as _quote_models            # noqa: F401
    from fieldops.models import time_entry as _time_entry_models  # noqa: F401
    from fieldops.models import invoice as _invoice_models        # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if "sqlite" in app.config.get("SQLALCHEMY_DATABASE_URI", "") and not app.testing:
        os.makedirs(app.instance_path, exist_ok=True)
    with app.app_context():
        db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from fieldops.blueprints import register_error_handlers
    from fieldops.blueprints.health_bp import health_bp
    from fieldops.blueprints.jobs_bp import jobs_bp
    from fieldops.blueprints.quotes_bp import quotes_bp
    from fieldops.blueprints.schedule_bp import schedule_bp
    from fieldops.blueprints.time_entries_bp import time_entries_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(jobs_bp)
    app.register_blueprint(quotes_bp)
    app.register_blueprint(time_entries_bp)
    app.register_blueprint(schedule_bp)

    register_error_handlers(app)

    # ── Scheduler initialization (import jobs to register them) ──────────
    import importlib
    importlib.import_module("fieldops.services.scheduled_jobs")  # registers @register_job handlers
    from fieldops.services.scheduler_service import SchedulerService as _SchedulerSvc
    _SchedulerSvc.init_app(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("run-job")
    @click.argument("job_name")
    def run_job_cmd(job_name):
        """Run a registered scheduled job once, e.g. quote_expiry_sweep."""
        outcome = _SchedulerSvc.run_job(job_name)
        click.echo(f"{outcome['job_name']}: {outcome['status']}")
        if outcome.get("error"):
            click.echo(outcome["error"], err=True)
            raise SystemExit(1)

    @app.cli.command("list-jobs")
    def list_jobs_cmd():
        """List registered scheduled jobs and their default schedule."""
        for job in _SchedulerSvc.list_jobs():
            click.echo(f"{job['job_name']}\t{job['schedule']['description']}\t{job['description']}")

    return app
