"""
Health checker — aggregate installation health from components.

Reports the state of the model daemon, its API, the web UI service,
the port redirect and the configured models. Used by the CLI
``status`` command.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from llmaura.core.models.target import InstallationTarget
from llmaura.core.services.probes import HostProbe

logger = logging.getLogger(__name__)


@dataclass
class ComponentHealth:
    """Health of a single component."""

    name: str
    status: str = "unknown"  # healthy, degraded, unhealthy, unknown
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class SystemHealth:
    """Aggregate health of the installation."""

    status: str = "healthy"
    timestamp: str = ""
    components: list[ComponentHealth] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = datetime.now(UTC).isoformat()

    def add(self, component: ComponentHealth) -> None:
        self.components.append(component)
        self._recalculate()

    def _recalculate(self) -> None:
        """Recalculate overall status from components."""
        statuses = [c.status for c in self.components]
        if any(s == "unhealthy" for s in statuses):
            self.status = "unhealthy"
        elif any(s == "degraded" for s in statuses):
            self.status = "degraded"
        elif all(s == "healthy" for s in statuses):
            self.status = "healthy"
        else:
            self.status = "unknown"

    @property
    def healthy(self) -> bool:
        return self.status == "healthy"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "timestamp": self.timestamp,
            "components": [c.to_dict() for c in self.components],
        }


def check_service(probe: HostProbe, service: str) -> ComponentHealth:
    """Check that a systemd service is enabled and active."""
    active = probe.service_active(service)
    enabled = probe.service_enabled(service)
    details = {"active": active, "enabled": enabled}

    if active and enabled:
        return ComponentHealth(service, "healthy", "Active and enabled", details)
    if active:
        return ComponentHealth(service, "degraded", "Active but not enabled at boot", details)
    return ComponentHealth(service, "unhealthy", "Not running", details)


def check_endpoint(probe: HostProbe, name: str, url: str) -> ComponentHealth:
    """Check that an HTTP endpoint answers."""
    if probe.http_reachable(url):
        return ComponentHealth(name, "healthy", f"Answering on {url}", {"url": url})
    return ComponentHealth(name, "unhealthy", f"No answer on {url}", {"url": url})


def check_redirect(probe: HostProbe, target: InstallationTarget) -> ComponentHealth:
    """Check the NAT redirect from the external to the internal port."""
    redirect = target.port_redirect
    details = {"external": redirect.external, "internal": redirect.internal}
    if probe.nat_redirect_active(redirect.external, redirect.internal):
        return ComponentHealth(
            "port_redirect", "healthy",
            f"Port {redirect.external} redirects to {redirect.internal}", details,
        )
    return ComponentHealth(
        "port_redirect", "degraded",
        f"No redirect from port {redirect.external}; use port {redirect.internal} directly",
        details,
    )


def check_models(probe: HostProbe, target: InstallationTarget) -> ComponentHealth:
    """Check which configured models are available locally."""
    if not target.models:
        return ComponentHealth("models", "healthy", "No models configured")

    missing = [m for m in target.models if not probe.model_present(m)]
    total = len(target.models)
    details = {"configured": list(target.models), "missing": missing}

    if not missing:
        return ComponentHealth("models", "healthy", f"All {total} models present", details)
    if len(missing) < total:
        return ComponentHealth("models", "degraded", f"{len(missing)}/{total} models missing", details)
    return ComponentHealth("models", "unhealthy", "No configured model is present", details)


def check_system_health(target: InstallationTarget, probe: HostProbe) -> SystemHealth:
    """Run all health checks and return aggregate status."""
    health = SystemHealth()

    health.add(check_service(probe, target.ollama_service))
    ollama_api = check_endpoint(probe, "ollama_api", target.ollama_url)
    health.add(ollama_api)

    if ollama_api.status == "healthy":
        health.add(check_models(probe, target))
    else:
        health.add(ComponentHealth("models", "unknown", "Ollama API not answering"))

    health.add(check_service(probe, target.service_name))
    health.add(check_endpoint(probe, "webui", target.webui_url))
    health.add(check_redirect(probe, target))

    logger.debug("Health: %s", health.status)
    return health
