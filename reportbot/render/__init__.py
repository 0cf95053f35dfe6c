"""Dashboard rendering with Playwright."""

from reportbot.render.engine import BrowserEngine
from reportbot.render.orchestrator import RenderSession, RenderState, ReportRenderer

__all__ = ["BrowserEngine", "RenderSession", "RenderState", "ReportRenderer"]
