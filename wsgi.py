"""
Flask-Migrate / Alembic entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi seed-level1-stages
"""

from roadmap_engine import create_app

app = create_app()
