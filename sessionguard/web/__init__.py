"""
Web module - Flask API over the auth flow controller.
"""

from sessionguard.web.app import create_app, require_login

__all__ = ["create_app", "require_login"]
