"""
Scorebook Services
==================
Backend clients and the logic the routes call into.

The app factory stores the active store, identity service and dashboard
registry on app.extensions['scorebook']; the getters below read them for the
current request.
"""
from flask import current_app


def get_store():
    return current_app.extensions['scorebook']['store']


def get_identity():
    return current_app.extensions['scorebook']['identity']


def get_dashboards():
    return current_app.extensions['scorebook']['dashboards']


__all__ = ['get_store', 'get_identity', 'get_dashboards']
