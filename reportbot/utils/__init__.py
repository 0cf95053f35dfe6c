"""Utility helpers for reportbot."""

from reportbot.utils.helpers import ensure_dir, safe_filename

__all__ = ["ensure_dir", "safe_filename"]
