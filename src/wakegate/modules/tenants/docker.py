"""Docker runtime provisioner.

Each tenant gets a bridge network, two persistent volumes (user files and
conversation history) and one resource-limited container. Resources are
named from a keyed hash of the tenant identity, so the same tenant always
maps to the same network, volumes and container.

The Docker SDK is blocking; every call runs in a worker thread.
"""

import asyncio
from typing import Any

import docker
import httpx
import structlog
from docker.errors import APIError, DockerException, NotFound
from docker.models.containers import Container

from wakegate.config import Settings
from wakegate.core.constants import (
    CONTAINER_STOP_TIMEOUT_SECONDS,
    HEALTH_PATH,
    HEALTH_CHECK_TIMEOUT_SECONDS,
    NETWORK_PREFIX,
    TENANT_LABEL,
    VOLUME_PREFIX,
)
from wakegate.core.utils.text import strip_ansi, tenant_resource_name
from wakegate.modules.tenants.models import RuntimeHandle
from wakegate.modules.tenants.provisioner import ProvisionerError, RuntimeProvisioner


logger = structlog.get_logger()

_NANOSECONDS = 1_000_000_000


class DockerProvisioner(RuntimeProvisioner):
    """Provision tenant runtimes as local Docker containers."""

    def __init__(
        self,
        settings: Settings,
        client: docker.DockerClient | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self._client = client
        self._http = http_client or httpx.AsyncClient(
            timeout=HEALTH_CHECK_TIMEOUT_SECONDS
        )

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.from_env()
            except DockerException as e:
                raise ProvisionerError(f"docker daemon unavailable: {e}") from e
        return self._client

    def resource_name(self, tenant_id: str) -> str:
        return tenant_resource_name(tenant_id, self.settings.tenant_namespace_key)

    # ------------------------------------------------------------------
    # RuntimeProvisioner
    # ------------------------------------------------------------------

    async def create(self, tenant_id: str) -> RuntimeHandle:
        try:
            return await asyncio.to_thread(self._ensure_runtime, tenant_id)
        except DockerException as e:
            raise ProvisionerError(str(e)) from e

    async def health_check(self, handle: RuntimeHandle) -> bool:
        try:
            response = await self._http.get(f"{handle.base_url}{HEALTH_PATH}")
        except httpx.HTTPError:
            return False
        return response.is_success

    async def destroy(self, handle: RuntimeHandle) -> None:
        try:
            await asyncio.to_thread(self._stop_container, handle.name)
        except DockerException as e:
            raise ProvisionerError(str(e)) from e

    async def logs(self, tenant_id: str, tail: int) -> str | None:
        try:
            return await asyncio.to_thread(
                self._read_logs, self.resource_name(tenant_id), tail
            )
        except DockerException as e:
            raise ProvisionerError(str(e)) from e

    async def ping(self) -> bool:
        try:
            return bool(await asyncio.to_thread(self.client.ping))
        except (DockerException, ProvisionerError):
            return False

    async def close(self) -> None:
        await self._http.aclose()
        if self._client is not None:
            await asyncio.to_thread(self._client.close)

    # ------------------------------------------------------------------
    # Blocking helpers (run in threads)
    # ------------------------------------------------------------------

    def _ensure_network(self, name: str) -> None:
        if self.client.networks.list(names=[name]):
            return
        self.client.networks.create(name, driver="bridge", attachable=True)

    def _ensure_volume(self, name: str) -> None:
        try:
            self.client.volumes.get(name)
        except NotFound:
            self.client.volumes.create(name=name, driver="local")

    def _container_config(self, tenant_id: str, name: str) -> dict[str, Any]:
        cfg = self.settings
        port = cfg.tenant_port
        files_volume = f"{VOLUME_PREFIX}{name}__files"
        history_volume = f"{VOLUME_PREFIX}{name}__history"
        environment = {
            **cfg.tenant_env,
            "NODE_ENV": "production",
            "XAV_USER_ID": tenant_id,
            "PUBLIC_BASE_URL": cfg.public_base_url,
        }
        return {
            "image": cfg.tenant_image,
            "name": name,
            "user": "0:0",
            "environment": environment,
            "labels": {TENANT_LABEL: tenant_id},
            "cap_drop": ["ALL"],
            "nano_cpus": cfg.tenant_cpus * _NANOSECONDS,
            "mem_limit": f"{cfg.tenant_memory_gb}g",
            "pids_limit": cfg.tenant_pids_limit,
            "volumes": {
                files_volume: {
                    "bind": f"/app/data/users/{tenant_id}/files",
                    "mode": "rw",
                },
                history_volume: {"bind": "/app/data/db", "mode": "rw"},
            },
            "network": f"{NETWORK_PREFIX}{name}",
            "healthcheck": {
                "test": [
                    "CMD-SHELL",
                    f"wget -qO- http://127.0.0.1:{port}{HEALTH_PATH} || exit 1",
                ],
                "interval": 2 * _NANOSECONDS,
                "timeout": 1 * _NANOSECONDS,
                "retries": cfg.health_check_retries,
            },
        }

    def _ensure_runtime(self, tenant_id: str) -> RuntimeHandle:
        name = self.resource_name(tenant_id)
        network = f"{NETWORK_PREFIX}{name}"
        volumes = [f"{VOLUME_PREFIX}{name}__files", f"{VOLUME_PREFIX}{name}__history"]

        self._ensure_network(network)
        for volume in volumes:
            self._ensure_volume(volume)

        try:
            container = self.client.containers.get(name)
        except NotFound:
            container = self.client.containers.create(
                **self._container_config(tenant_id, name)
            )
            logger.info("tenant_container_created", tenant=name)
        else:
            networks = container.attrs.get("NetworkSettings", {}).get("Networks") or {}
            if network not in networks:
                try:
                    self.client.networks.get(network).connect(container)
                except APIError as e:
                    # Already attached under a stale attrs snapshot
                    logger.debug("tenant_network_connect_skipped", tenant=name, error=str(e))

        if container.status != "running":
            container.start()
        container.reload()

        address = self._container_address(container, network)
        if not address:
            raise ProvisionerError(f"container {name} has no address on {network}")

        return RuntimeHandle(
            name=name,
            container_id=container.id,
            address=address,
            port=self.settings.tenant_port,
            network=network,
            volumes=volumes,
        )

    @staticmethod
    def _container_address(container: Container, network: str) -> str | None:
        networks = container.attrs.get("NetworkSettings", {}).get("Networks") or {}
        endpoint = networks.get(network) or {}
        return endpoint.get("IPAddress") or None

    def _stop_container(self, name: str) -> None:
        try:
            container = self.client.containers.get(name)
        except NotFound:
            return
        container.stop(timeout=CONTAINER_STOP_TIMEOUT_SECONDS)

    def _read_logs(self, name: str, tail: int) -> str | None:
        try:
            container = self.client.containers.get(name)
        except NotFound:
            return None
        raw = container.logs(stdout=True, stderr=True, tail=tail)
        return strip_ansi(raw.decode("utf-8", errors="replace"))
