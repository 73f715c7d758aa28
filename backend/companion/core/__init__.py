"""Core module - logging setup shared by the application."""

from .logging_config import setup_logging, SessionLoggerAdapter, filter_sensitive_data

__all__ = ['setup_logging', 'SessionLoggerAdapter', 'filter_sensitive_data']
