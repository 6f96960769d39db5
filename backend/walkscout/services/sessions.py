import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from walkscout.exceptions import UnknownSessionError
from walkscout.services.dataset_loader import DatasetLoader
from walkscout.services.preferences import PreferenceStore
from walkscout.services.route_sequencer import RouteFetchSequencer
from walkscout.services.search import Geocoder, SearchOrchestrator, SupermarketFinder

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    In-process search sessions.

    All sessions share the dataset loader, the route cache and the single
    route sequencer, so only one routing call is in flight process-wide.
    """

    def __init__(
        self,
        geocoder: Geocoder,
        datasets: DatasetLoader,
        supermarkets: SupermarketFinder,
        sequencer: RouteFetchSequencer,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ):
        self.geocoder = geocoder
        self.datasets = datasets
        self.supermarkets = supermarkets
        self.sequencer = sequencer
        self.session_factory = session_factory
        self._sessions: dict[str, SearchOrchestrator] = {}

    async def create(self, session_id: str | None = None) -> tuple[str, SearchOrchestrator]:
        session_id = session_id or uuid.uuid4().hex
        preferences = None
        if self.session_factory is not None:
            preferences = PreferenceStore(self.session_factory, namespace=session_id)
        orchestrator = SearchOrchestrator(
            geocoder=self.geocoder,
            datasets=self.datasets,
            supermarkets=self.supermarkets,
            sequencer=self.sequencer,
            preferences=preferences,
        )
        await orchestrator.start()
        self._sessions[session_id] = orchestrator
        logger.info("Created search session %s", session_id)
        return session_id, orchestrator

    def get(self, session_id: str) -> SearchOrchestrator:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise UnknownSessionError(session_id) from None

    def __len__(self) -> int:
        return len(self._sessions)
