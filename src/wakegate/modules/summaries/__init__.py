"""Summaries module - activity summaries reported by tenant runtimes."""

from wakegate.modules.summaries.routes import router


# Module metadata
__module_info__ = {
    "name": "summaries",
    "version": "1.0.0",
    "description": "Conversation summary ingestion and admin store",
    "dependencies": ["tenants"],
}

__all__ = ["router"]
