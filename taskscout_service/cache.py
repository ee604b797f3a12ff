"""Entity-scoped read cache with explicit invalidation keys.

Every entity type owns one namespace. Reads are keyed by the namespace's
current version, so invalidating an entity is a single counter bump and
every list cached under the old version stops being served.

Usage::

    from taskscout_service import cache as entity_cache

    data = entity_cache.cached(entity_cache.TICKETS, (user_id, query), load)
    entity_cache.invalidate(entity_cache.TICKETS, entity_cache.BIDS)
"""
from __future__ import annotations

import json
import logging
from typing import Any, Callable, Iterable, Sequence

from django.core.cache import cache
from django.db import transaction
from rest_framework.renderers import JSONRenderer
from rest_framework.response import Response

logger = logging.getLogger(__name__)

TICKETS = "tickets"
WORK_ORDERS = "work_orders"
BIDS = "bids"
INVOICES = "invoices"
ORGANIZATIONS = "organizations"
VENDORS = "vendors"
LOCATIONS = "locations"
USERS = "users"

ENTITIES = (
    TICKETS,
    WORK_ORDERS,
    BIDS,
    INVOICES,
    ORGANIZATIONS,
    VENDORS,
    LOCATIONS,
    USERS,
)


def _version_key(entity: str) -> str:
    return f"entity-version:{entity}"


def namespace_version(entity: str) -> int:
    version = cache.get(_version_key(entity))
    if version is None:
        cache.add(_version_key(entity), 1, timeout=None)
        version = cache.get(_version_key(entity), 1)
    return int(version)


def cache_key(entity: str, parts: Iterable[Any] = ()) -> str:
    if entity not in ENTITIES:
        raise ValueError(f"Unknown cache entity: {entity!r}")
    return ":".join([entity, f"v{namespace_version(entity)}", *(str(part) for part in parts)])


def cached(entity: str, parts: Iterable[Any], loader: Callable[[], Any]) -> Any:
    """Return the cached value for ``parts`` under ``entity``, loading it on a miss."""

    key = cache_key(entity, parts)
    value = cache.get(key)
    if value is None:
        value = loader()
        cache.set(key, value)
    return value


def invalidate(*entities: str) -> None:
    """Drop everything cached under the given entity namespaces."""

    for entity in entities:
        key = _version_key(entity)
        try:
            cache.incr(key)
        except ValueError:
            # Missing counter: nothing was cached under it yet.
            cache.set(key, 2, timeout=None)
        logger.debug("Invalidated %s cache namespace", entity)


def invalidate_on_commit(*entities: str) -> None:
    """Invalidate now and again once the surrounding transaction commits."""

    invalidate(*entities)
    transaction.on_commit(lambda: invalidate(*entities))


class CachedListMixin:
    """Serve ``list`` through the entity cache and invalidate on writes.

    ``cache_entity`` names the namespace read by ``list``; ``invalidates``
    lists every namespace a create/update through this view makes stale.
    """

    cache_entity: str
    invalidates: Sequence[str] = ()

    def list(self, request, *args, **kwargs):  # type: ignore[override]
        def _load() -> Any:
            response = super(CachedListMixin, self).list(request, *args, **kwargs)
            return json.loads(JSONRenderer().render(response.data))

        user_id = getattr(request.user, "pk", None)
        query = "&".join(sorted(request.query_params.urlencode().split("&")))
        return Response(cached(self.cache_entity, (user_id, query), _load))

    def _invalidated_entities(self) -> Sequence[str]:
        return self.invalidates or (self.cache_entity,)

    def perform_create(self, serializer):  # type: ignore[override]
        super().perform_create(serializer)
        invalidate(*self._invalidated_entities())

    def perform_update(self, serializer):  # type: ignore[override]
        super().perform_update(serializer)
        invalidate(*self._invalidated_entities())
