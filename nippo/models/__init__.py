"""
Nippo Report Service
SQLAlchemy extension instance shared by every model module.

Usage:
    from nippo.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
