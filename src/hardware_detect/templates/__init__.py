"""
TenPod Templates Package

Jinja2 templates for operator-facing setup instructions.
"""

from .loader import TemplateLoader

__all__ = ["TemplateLoader"]
