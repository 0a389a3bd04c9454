"""
Roadmap Engine
SQLAlchemy database handle shared by every model module.

Usage:
    from roadmap_engine.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
