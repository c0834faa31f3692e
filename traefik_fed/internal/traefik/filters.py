from typing import Iterable, List

from traefik_fed.internal.domain.models import INTERNAL_PROVIDER, RemoteRouter, SelectionCriteria


def select_routers(routers: Iterable[RemoteRouter], criteria: SelectionCriteria) -> List[RemoteRouter]:
    """Keep the routers matching ``criteria``, preserving input order.

    Routers from the ``internal`` provider (Traefik's own API and dashboard
    routes) are always dropped. An empty ``criteria.provider`` or
    ``criteria.status`` matches anything.
    """
    selected = []
    for router in routers:
        if router.provider == INTERNAL_PROVIDER:
            continue
        if criteria.provider and router.provider != criteria.provider:
            continue
        if criteria.status and router.status != criteria.status:
            continue
        selected.append(router)
    return selected
