"""Dependencies exposing the supervisor components built by ``create_app``."""

from typing import Annotated

from fastapi import Depends, Request

from wakegate.modules.tenants.coordinator import WakeCoordinator
from wakegate.modules.tenants.provisioner import RuntimeProvisioner
from wakegate.modules.tenants.proxy import RequestProxy
from wakegate.modules.tenants.reaper import IdleReaper
from wakegate.modules.tenants.registry import TenantRegistry


def get_registry(request: Request) -> TenantRegistry:
    return request.app.state.registry


def get_provisioner(request: Request) -> RuntimeProvisioner:
    return request.app.state.provisioner


def get_coordinator(request: Request) -> WakeCoordinator:
    return request.app.state.coordinator


def get_proxy(request: Request) -> RequestProxy:
    return request.app.state.proxy


def get_reaper(request: Request) -> IdleReaper:
    return request.app.state.reaper


# Type aliases for dependency injection
Registry = Annotated[TenantRegistry, Depends(get_registry)]
Provisioner = Annotated[RuntimeProvisioner, Depends(get_provisioner)]
Coordinator = Annotated[WakeCoordinator, Depends(get_coordinator)]
Proxy = Annotated[RequestProxy, Depends(get_proxy)]
Reaper = Annotated[IdleReaper, Depends(get_reaper)]
