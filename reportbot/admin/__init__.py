"""Admin surface for operators."""

from reportbot.admin.http_server import AdminHttpServer

__all__ = ["AdminHttpServer"]
