"""
Sequential walking-route fetching.

OpenRouteService rate-limits aggressively, so every routing call in the
process goes through one lock and one rate limiter: exactly one request is
in flight at any time and consecutive requests are spaced by the configured
delay. Results land in the shared RouteCache.

Per request key the state moves ``pending -> in_flight -> cached | failed``;
a key already in the cache goes straight to ``cached``.
"""

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from walkscout.config import settings
from walkscout.exceptions import NoRouteFoundError, RoutingError, RoutingRateLimitedError
from walkscout.schemas.poi import Coordinate, PointOfInterest, WalkingRoute
from walkscout.services.rate_limit import RateLimiter
from walkscout.services.route_cache import RouteCache, RouteKey, route_key

logger = logging.getLogger(__name__)


class RoutingService(Protocol):
    async def route(self, origin: Coordinate, destination: Coordinate) -> WalkingRoute: ...


class RouteStatus(str, Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    CACHED = "cached"
    FAILED = "failed"


class FailureReason(str, Enum):
    RATE_LIMITED = "rate_limited"
    NO_ROUTE = "no_route"
    NETWORK = "network"


@dataclass(frozen=True)
class RouteState:
    status: RouteStatus
    reason: FailureReason | None = None
    error: str | None = None

    @property
    def loading(self) -> bool:
        return self.status in (RouteStatus.PENDING, RouteStatus.IN_FLIGHT)


@dataclass(frozen=True)
class RouteRequest:
    origin: Coordinate
    poi: PointOfInterest


_CACHED = RouteState(RouteStatus.CACHED)


class RouteFetchSequencer:
    def __init__(
        self,
        client: RoutingService,
        cache: RouteCache,
        delay_s: float | None = None,
    ):
        self.client = client
        self.cache = cache
        delay = settings.route_fetch_delay_s if delay_s is None else delay_s
        self.rate_limiter = RateLimiter(delay, name="routing")
        self._lock = asyncio.Lock()
        self._states: dict[RouteKey, RouteState] = {}
        self._inflight: dict[RouteKey, asyncio.Future] = {}

    def status(self, origin: Coordinate, poi: PointOfInterest) -> RouteState | None:
        if self.cache.contains(origin, poi):
            return _CACHED
        return self._states.get(route_key(origin, poi))

    def enqueue(self, requests: Iterable[RouteRequest]) -> asyncio.Task:
        """Fetch a batch in the background. The returned task never raises for routing failures."""
        claimed = self._claim(list(requests))
        return asyncio.ensure_future(self._process(claimed))

    async def run_batch(self, requests: Iterable[RouteRequest]) -> list[RouteState]:
        claimed = self._claim(list(requests))
        return await self._process(claimed)

    async def fetch_one(self, origin: Coordinate, poi: PointOfInterest) -> WalkingRoute | None:
        cached = self.cache.get(origin, poi)
        if cached is not None:
            return cached
        await self.run_batch([RouteRequest(origin, poi)])
        return self.cache.get(origin, poi)

    def _claim(self, requests: list[RouteRequest]) -> list[tuple[RouteRequest, RouteKey, bool]]:
        """
        Register a batch before any await so that overlapping batches coalesce.

        A batch owns a key only if nobody else is already fetching it; keys
        owned elsewhere are awaited rather than fetched twice.
        """
        loop = asyncio.get_running_loop()
        claimed = []
        for req in requests:
            key = route_key(req.origin, req.poi)
            if self.cache.contains(req.origin, req.poi):
                self._states[key] = _CACHED
                claimed.append((req, key, False))
            elif key in self._inflight:
                claimed.append((req, key, False))
            else:
                self._inflight[key] = loop.create_future()
                self._states[key] = RouteState(RouteStatus.PENDING)
                claimed.append((req, key, True))
        return claimed

    async def _process(self, claimed: list[tuple[RouteRequest, RouteKey, bool]]) -> list[RouteState]:
        owned = [(req, key) for req, key, is_owner in claimed if is_owner]
        rate_limited = False
        try:
            for i, (req, key) in enumerate(owned):
                if rate_limited:
                    self._finish(key, RouteState(
                        RouteStatus.FAILED, FailureReason.RATE_LIMITED, "skipped after rate limit"
                    ))
                    continue
                state = await self._fetch(req, key, i + 1, len(owned))
                if state.reason is FailureReason.RATE_LIMITED:
                    rate_limited = True
                    logger.warning(
                        "Routing rate limit hit, failing %d remaining request(s)", len(owned) - i - 1
                    )
                self._finish(key, state)
        finally:
            for req, key in owned:
                future = self._inflight.get(key)
                if future is not None and not future.done():
                    self._finish(key, RouteState(RouteStatus.FAILED, FailureReason.NETWORK, "cancelled"))

        results = []
        for req, key, is_owner in claimed:
            state = self._states.get(key)
            future = self._inflight.get(key)
            if not is_owner and future is not None:
                state = await asyncio.shield(future)
            results.append(_CACHED if self.cache.contains(req.origin, req.poi) else state)
        return results

    async def _fetch(self, req: RouteRequest, key: RouteKey, position: int, total: int) -> RouteState:
        async with self._lock:
            await self.rate_limiter.wait()
            self._states[key] = RouteState(RouteStatus.IN_FLIGHT)
            logger.debug("Fetching route %d/%d: %s", position, total, req.poi.name)
            try:
                route = await self.client.route(req.origin, req.poi.location)
            except RoutingRateLimitedError as e:
                return RouteState(RouteStatus.FAILED, FailureReason.RATE_LIMITED, str(e))
            except NoRouteFoundError as e:
                return RouteState(RouteStatus.FAILED, FailureReason.NO_ROUTE, str(e))
            except RoutingError as e:
                logger.warning("Route fetch failed for %s: %s", req.poi.name, e)
                return RouteState(RouteStatus.FAILED, FailureReason.NETWORK, str(e))
            except Exception as e:
                logger.warning("Unexpected routing failure for %s: %s", req.poi.name, e)
                return RouteState(RouteStatus.FAILED, FailureReason.NETWORK, str(e))

        self.cache.put(req.origin, req.poi, route)
        logger.debug(
            "Route for %s: %d min, %d m", req.poi.name, route.duration_minutes, route.distance_meters
        )
        return _CACHED

    def _finish(self, key: RouteKey, state: RouteState) -> None:
        self._states[key] = state
        future = self._inflight.pop(key, None)
        if future is not None and not future.done():
            future.set_result(state)
