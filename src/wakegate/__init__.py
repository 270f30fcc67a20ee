"""Wakegate: wake-on-demand supervisor for per-tenant runtimes."""

__version__ = "0.1.0"
