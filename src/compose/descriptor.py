# src/compose/descriptor.py — v2
"""Parse and render the Compose file that lives on the target host.

Only the keys the deploy cares about are modelled (image, ports,
depends_on, restart, volumes, environment). Modelled keys of a parsed
service are also kept verbatim in ``ServiceSpec.raw`` and other keys in
``ServiceSpec.extra``; rendering writes both back as read, so the only
value a deploy changes in an existing file is ``image``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from shipline.compose.models import CompositionDescriptor, ServiceSpec
from shipline.core.errors import DescriptorError

logger = logging.getLogger(__name__)

_KNOWN_KEYS = {"image", "ports", "depends_on", "restart", "volumes", "environment"}


def parse_descriptor(text: str) -> CompositionDescriptor:
    """Parse Compose YAML into a validated descriptor.

    Raises:
        DescriptorError: On YAML syntax errors or inconsistent content.
    """
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise DescriptorError(f"Invalid YAML: {exc}") from exc

    if not isinstance(raw, dict) or not isinstance(raw.get("services"), dict):
        raise DescriptorError("Descriptor must be a mapping with a 'services' mapping")

    services: dict[str, ServiceSpec] = {}
    try:
        for name, body in raw["services"].items():
            services[name] = _parse_service(name, body or {})
        return CompositionDescriptor(
            services=services,
            volumes={k: v or {} for k, v in (raw.get("volumes") or {}).items()},
            networks={k: v or {} for k, v in (raw.get("networks") or {}).items()},
        )
    except DescriptorError:
        raise
    except (ValidationError, TypeError, AttributeError) as exc:
        raise DescriptorError(f"Invalid descriptor: {exc}") from exc


def load_descriptor(path: Path) -> CompositionDescriptor:
    """Read and parse a descriptor file."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise DescriptorError(f"Cannot read descriptor {path}: {exc}") from exc
    descriptor = parse_descriptor(text)
    logger.debug("Loaded descriptor %s: %s", path, list(descriptor.services))
    return descriptor


def render_descriptor(descriptor: CompositionDescriptor) -> str:
    """Render a descriptor back to Compose YAML."""
    services: dict[str, Any] = {}
    for name, spec in descriptor.services.items():
        body: dict[str, Any] = {"image": spec.image}
        if spec.raw is not None:
            body.update(spec.raw)
        else:
            if spec.ports:
                body["ports"] = list(spec.ports)
            if spec.depends_on:
                body["depends_on"] = list(spec.depends_on)
            body["restart"] = spec.restart
            if spec.volumes:
                body["volumes"] = list(spec.volumes)
            if spec.environment:
                body["environment"] = dict(spec.environment)
        body.update(spec.extra)
        services[name] = body

    doc: dict[str, Any] = {"services": services}
    if descriptor.volumes:
        doc["volumes"] = {k: (v or None) for k, v in descriptor.volumes.items()}
    if descriptor.networks:
        doc["networks"] = {k: (v or None) for k, v in descriptor.networks.items()}
    return yaml.safe_dump(doc, sort_keys=False, default_flow_style=False)


def default_descriptor(
    backend_image: str,
    frontend_image: str,
    database_image: str = "mongo:6",
    backend_port: int = 8080,
    frontend_port: int = 80,
) -> CompositionDescriptor:
    """Descriptor for the tutorial app: document store, backend, frontend.

    The document store is the only stateful service and exclusively owns
    the ``dbdata`` volume.
    """
    return CompositionDescriptor(
        services={
            "mongo": ServiceSpec(
                name="mongo",
                image=database_image,
                volumes=["dbdata:/data/db"],
            ),
            "backend": ServiceSpec(
                name="backend",
                image=backend_image,
                ports=[f"{backend_port}:{backend_port}"],
                depends_on=["mongo"],
                environment={
                    "DB_HOST": "mongo",
                    "DB_PORT": "27017",
                    "DB_NAME": "tutorial_db",
                },
            ),
            "frontend": ServiceSpec(
                name="frontend",
                image=frontend_image,
                ports=[f"{frontend_port}:80"],
                depends_on=["backend"],
            ),
        },
        volumes={"dbdata": {}},
    )


def _parse_service(name: str, body: dict[str, Any]) -> ServiceSpec:
    if "image" not in body:
        raise DescriptorError(
            f"Service '{name}' has no image; services must reference published artifacts"
        )
    raw = {k: body[k] for k in body if k in _KNOWN_KEYS and k != "image"}
    # YAML 1.1 reads a bare `restart: no` as false.
    if raw.get("restart") is False:
        raw["restart"] = "no"
    return ServiceSpec(
        name=name,
        image=str(body["image"]),
        ports=[_port_string(p) for p in body.get("ports") or []],
        depends_on=_parse_depends_on(body.get("depends_on")),
        restart=str(raw.get("restart", "unless-stopped")),
        volumes=[_volume_string(name, v) for v in body.get("volumes") or []],
        environment=_parse_environment(body.get("environment")),
        extra={k: v for k, v in body.items() if k not in _KNOWN_KEYS},
        raw=raw,
    )


def _parse_depends_on(value: Any) -> list[str]:
    """Accept both the list form and the long ``{svc: {condition: ...}}`` form."""
    if value is None:
        return []
    if isinstance(value, dict):
        return list(value)
    return [str(v) for v in value]


def _parse_environment(value: Any) -> dict[str, str]:
    if value is None:
        return {}
    if isinstance(value, dict):
        return {str(k): "" if v is None else str(v) for k, v in value.items()}
    env: dict[str, str] = {}
    for item in value:
        key, _, val = str(item).partition("=")
        env[key] = val
    return env


def _port_string(value: Any) -> str:
    """Normalize long-syntax port mappings to ``published:target``."""
    if isinstance(value, dict):
        if "target" not in value:
            raise DescriptorError(f"Port mapping {value} has no target")
        published = value.get("published")
        return f"{published}:{value['target']}" if published else str(value["target"])
    return str(value)


def _volume_string(service: str, value: Any) -> str:
    """Normalize long-syntax volume mappings to ``source:target``."""
    if isinstance(value, dict):
        if "target" not in value:
            raise DescriptorError(f"Service '{service}' has a volume without target: {value}")
        return f"{value.get('source', '')}:{value['target']}"
    return str(value)
