# agricart/config/__init__.py
"""
agricart.config holds static identity constants.

Runtime settings (env driven) live in: agricart.settings
"""

from __future__ import annotations

from .company import company_context

__all__ = ["company_context"]
