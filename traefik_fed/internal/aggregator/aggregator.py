import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence, Tuple

from traefik_fed.internal.domain.errors import UpstreamError
from traefik_fed.internal.domain.models import (
    MergeDefaults,
    MergePolicy,
    RemoteRouter,
    RouterDecl,
    SelectionCriteria,
    ServiceDecl,
    UnifiedConfiguration,
    UpstreamSpec,
)
from traefik_fed.internal.traefik.client import TraefikClient
from traefik_fed.internal.traefik.filters import select_routers

logger = logging.getLogger(__name__)

SERVICE_SUFFIX = "traefik"


def service_name(upstream: UpstreamSpec) -> str:
    return f"{upstream.name}-{SERVICE_SUFFIX}"


def router_name(upstream: UpstreamSpec, router: RemoteRouter) -> str:
    # "memos@docker" from host1 -> "host1-memos"
    return f"{upstream.name}-{router.base_name}"


class Aggregator:
    """Builds one UnifiedConfiguration per call from all configured upstreams.

    Each upstream is fetched on its own worker thread. A failing upstream is
    logged and contributes nothing; aggregate() itself never raises.
    """

    def __init__(self, upstreams: Sequence[UpstreamSpec], criteria: SelectionCriteria,
                 defaults: MergeDefaults, merge_policy: MergePolicy = MergePolicy.REPLACE,
                 clients: Optional[Dict[str, TraefikClient]] = None):
        self.upstreams = list(upstreams)
        self.criteria = criteria
        self.defaults = defaults
        self.merge_policy = MergePolicy(merge_policy)
        if clients is None:
            clients = {upstream.name: TraefikClient(upstream.name, upstream.api_url) for upstream in self.upstreams}
        self.clients = clients

    def aggregate(self) -> UnifiedConfiguration:
        routers: Dict[str, RouterDecl] = {}
        services: Dict[str, ServiceDecl] = {}

        if not self.upstreams:
            return UnifiedConfiguration(routers=routers, services=services)

        with ThreadPoolExecutor(max_workers=len(self.upstreams), thread_name_prefix="upstream-fetch") as pool:
            futures = [pool.submit(self._fetch_selected, upstream) for upstream in self.upstreams]
            # Merge in configured order so the output does not depend on which fetch finished first.
            results = [future.result() for future in futures]

        for upstream, selected in zip(self.upstreams, results):
            if not selected:
                continue
            upstream_routers, service = self._build_upstream(upstream, selected)
            services[service_name(upstream)] = service
            routers.update(upstream_routers)

        return UnifiedConfiguration(routers=routers, services=services)

    def _fetch_selected(self, upstream: UpstreamSpec) -> List[RemoteRouter]:
        client = self.clients[upstream.name]
        try:
            fetched = client.get_routers()
        except UpstreamError as e:
            logger.error(f"Failed to aggregate upstream {upstream.name}: {e}")
            return []
        except Exception as e:
            logger.error(f"Unexpected error fetching upstream {upstream.name}: {e}", exc_info=True)
            return []

        selected = select_routers(fetched, self.criteria)
        logger.info(f"Fetched routers from upstream {upstream.name}: total={len(fetched)}, selected={len(selected)}")
        for router in selected:
            logger.debug(
                f"Router will be aggregated: upstream={upstream.name} name={router.name} provider={router.provider} "
                f"status={router.status} rule={router.rule} entrypoints={list(router.entry_points)} service={router.service}"
            )
        return selected

    def _build_upstream(self, upstream: UpstreamSpec,
                        selected: List[RemoteRouter]) -> Tuple[Dict[str, RouterDecl], ServiceDecl]:
        service = ServiceDecl(servers=(upstream.server_url,))
        routers = {router_name(upstream, router): self._merge(router, service_name(upstream)) for router in selected}
        return routers, service

    def _merge(self, router: RemoteRouter, service: str) -> RouterDecl:
        inherit = self.merge_policy is MergePolicy.INHERIT

        entry_points = self.defaults.entry_points
        if not entry_points and inherit:
            entry_points = router.entry_points

        middlewares = self.defaults.middlewares
        if not middlewares and inherit:
            middlewares = router.middlewares

        tls = self.defaults.tls if self.defaults.tls is not None else router.tls

        return RouterDecl(
            rule=router.rule,
            service=service,
            entry_points=entry_points,
            middlewares=middlewares,
            tls=tls,
        )
