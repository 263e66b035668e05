"""Concrete portal adapters."""

from .olx_adapter import OlxAdapter
from .demo_adapter import DemoAdapter, DemoPortal

__all__ = ["OlxAdapter", "DemoAdapter", "DemoPortal"]
