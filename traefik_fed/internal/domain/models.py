from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

INTERNAL_PROVIDER = "internal"
HTTP_NAMESPACE = "http"


def _none_to_empty(value):
    # The Traefik API serialises unset slices as null.
    return () if value is None else value


class TLSDomain(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    main: str = ""
    sans: Tuple[str, ...] = ()

    @field_validator("sans", mode="before")
    @classmethod
    def _sans_not_null(cls, value):
        return _none_to_empty(value)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"main": self.main}
        if self.sans:
            data["sans"] = list(self.sans)
        return data


class RouterTLSConfig(BaseModel):
    """TLS reference attached to a router (Traefik ``tls`` router section)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    options: Optional[str] = None
    cert_resolver: Optional[str] = Field(default=None, alias="certResolver")
    domains: Tuple[TLSDomain, ...] = ()

    @field_validator("domains", mode="before")
    @classmethod
    def _domains_not_null(cls, value):
        return _none_to_empty(value)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.options:
            data["options"] = self.options
        if self.cert_resolver:
            data["certResolver"] = self.cert_resolver
        if self.domains:
            data["domains"] = [domain.to_dict() for domain in self.domains]
        return data


class Observability(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    access_logs: Optional[bool] = Field(default=None, alias="accessLogs")
    metrics: Optional[bool] = None
    tracing: Optional[bool] = None
    trace_verbosity: Optional[str] = Field(default=None, alias="traceVerbosity")


class RemoteRouter(BaseModel):
    """One router as reported by an upstream's ``/api/http/routers``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str
    rule: str = ""
    rule_syntax: str = Field(default="", alias="ruleSyntax")
    priority: int = 0
    service: str = ""
    entry_points: Tuple[str, ...] = Field(default=(), alias="entryPoints")
    middlewares: Tuple[str, ...] = ()
    status: str = ""
    provider: str = ""
    using: Tuple[str, ...] = ()
    observability: Optional[Observability] = None
    tls: Optional[RouterTLSConfig] = None

    @field_validator("entry_points", "middlewares", "using", mode="before")
    @classmethod
    def _lists_not_null(cls, value):
        return _none_to_empty(value)

    @property
    def base_name(self) -> str:
        """Router name without its ``@provider`` suffix."""
        return self.name.split("@", 1)[0]


class UpstreamSpec(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = ""
    admin_url: str = ""
    server_url: str = ""

    @field_validator("name", "admin_url", "server_url", mode="before")
    @classmethod
    def _null_to_blank(cls, value):
        return "" if value is None else value

    @property
    def api_url(self) -> str:
        return f"{self.admin_url.rstrip('/')}/api"


class SelectionCriteria(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    provider: str = ""
    status: str = "enabled"

    @field_validator("provider", "status", mode="before")
    @classmethod
    def _null_to_blank(cls, value):
        return "" if value is None else value


class MergePolicy(str, Enum):
    # replace: unset defaults drop the upstream's own entryPoints/middlewares.
    REPLACE = "replace"
    # inherit: unset defaults keep the upstream's own values.
    INHERIT = "inherit"


class MergeDefaults(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    entry_points: Tuple[str, ...] = Field(default=(), alias="entrypoints")
    middlewares: Tuple[str, ...] = ()
    tls: Optional[RouterTLSConfig] = None

    @field_validator("entry_points", "middlewares", mode="before")
    @classmethod
    def _lists_not_null(cls, value):
        return _none_to_empty(value)


class RouterDecl(BaseModel):
    model_config = ConfigDict(frozen=True)

    rule: str
    service: str
    entry_points: Tuple[str, ...] = ()
    middlewares: Tuple[str, ...] = ()
    tls: Optional[RouterTLSConfig] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.entry_points:
            data["entryPoints"] = list(self.entry_points)
        if self.middlewares:
            data["middlewares"] = list(self.middlewares)
        data["service"] = self.service
        data["rule"] = self.rule
        if self.tls is not None:
            data["tls"] = self.tls.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RouterDecl":
        tls = data.get("tls")
        return cls(
            rule=data.get("rule", ""),
            service=data.get("service", ""),
            entry_points=tuple(data.get("entryPoints") or ()),
            middlewares=tuple(data.get("middlewares") or ()),
            tls=RouterTLSConfig.model_validate(tls) if tls is not None else None,
        )


class ServiceDecl(BaseModel):
    model_config = ConfigDict(frozen=True)

    servers: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"loadBalancer": {"servers": [{"url": url} for url in self.servers]}}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServiceDecl":
        servers = (data.get("loadBalancer") or {}).get("servers") or []
        return cls(servers=tuple(server["url"] for server in servers))


class UnifiedConfiguration(BaseModel):
    """One aggregated snapshot: Traefik dynamic HTTP routers and services."""

    model_config = ConfigDict(frozen=True)

    routers: Dict[str, RouterDecl] = Field(default_factory=dict)
    services: Dict[str, ServiceDecl] = Field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "routers": {name: router.to_dict() for name, router in self.routers.items()},
            "services": {name: service.to_dict() for name, service in self.services.items()},
        }

    def to_document(self) -> Dict[str, Any]:
        """Wrap under the ``http`` key, as Traefik's file provider expects."""
        return {HTTP_NAMESPACE: self.to_dict()}

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "UnifiedConfiguration":
        body = (document or {}).get(HTTP_NAMESPACE) or {}
        routers = body.get("routers") or {}
        services = body.get("services") or {}
        return cls(
            routers={name: RouterDecl.from_dict(router) for name, router in routers.items()},
            services={name: ServiceDecl.from_dict(service) for name, service in services.items()},
        )
