"""Tenants module - wake-on-demand tenant lifecycle."""

from wakegate.modules.tenants.routes import proxy_router, router


# Module metadata
__module_info__ = {
    "name": "tenants",
    "version": "1.0.0",
    "description": "Tenant registry, wake coordinator, proxy and idle reaper",
    "dependencies": [],
}

__all__ = ["proxy_router", "router"]
