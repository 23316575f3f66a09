"""
Scorebook Package
=================

Flask-based backend for Scorebook, a grade tracker for students and one
teacher.

Structure:
- routes/: API route blueprints
- services/: Backend clients, grade logic and dashboards
- auth.py: Session gate for the dashboard APIs
- session.py: Cookie-backed session store
- config.py: Configuration management
"""

from .config import config, Config

__version__ = "1.0.0"

__all__ = ['config', 'Config']
