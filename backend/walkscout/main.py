import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from walkscout.api.routes import router
from walkscout.config import settings
from walkscout.database import async_session, init_db
from walkscout.services.dataset_loader import DatasetLoader
from walkscout.services.geocoding_client import NominatimClient
from walkscout.services.overpass_client import OverpassClient
from walkscout.services.route_cache import RouteCache
from walkscout.services.route_sequencer import RouteFetchSequencer
from walkscout.services.routing_client import OpenRouteServiceClient
from walkscout.services.sessions import SessionRegistry


def build_registry() -> SessionRegistry:
    return SessionRegistry(
        geocoder=NominatimClient(),
        datasets=DatasetLoader(),
        supermarkets=OverpassClient(),
        sequencer=RouteFetchSequencer(OpenRouteServiceClient(), RouteCache()),
        session_factory=async_session,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    if not hasattr(app.state, "sessions"):
        app.state.sessions = build_registry()
    yield


def create_app() -> FastAPI:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = FastAPI(title="walkscout", lifespan=lifespan)
    app.include_router(router)
    return app


app = create_app()
