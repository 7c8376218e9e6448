"""API routes."""

from coldai_core.api.routes import account, icps, knowledge, linkedin, prospects, widgets

__all__ = ["account", "icps", "knowledge", "linkedin", "prospects", "widgets"]
