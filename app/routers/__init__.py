# app/routers/__init__.py
from . import health
from . import availability
from . import slots

__all__ = ["health", "availability", "slots"]
