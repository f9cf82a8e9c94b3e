"""
Flask-Migrate / Alembic entry point.

Usage:
    flask db upgrade
    flask run-job quote_expiry_sweep
"""

from fieldops import create_app

app = create_app()
