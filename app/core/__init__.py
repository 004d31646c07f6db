# app/core/__init__.py
"""
Core package: settings, logging, errors, database, security and request dependencies.

Import concrete modules directly (``from app.core.config import settings``); this
package re-exports only the settings object.
"""

from app.core.config import get_settings, settings

__all__ = ["get_settings", "settings"]
