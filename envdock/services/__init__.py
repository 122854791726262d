"""Service kinds: applications, containers, routers and databases."""

from envdock.services.application import Application, Container
from envdock.services.database import Database
from envdock.services.router import Router

__all__ = [
    "Application",
    "Container",
    "Database",
    "Router",
]
