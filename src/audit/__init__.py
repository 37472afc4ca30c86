"""Structured logging package."""

from src.audit.logger import get_logger

__all__ = ["get_logger"]
