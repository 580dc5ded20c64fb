"""
Component wiring for the worker process.
"""

from typing import Optional

from loguru import logger

from documents import DocumentRepository, MemoryDocumentRepository, MongoDocumentRepository, TextExtractor
from llm import ReasoningChains, ReasoningClient
from matcher import MatchingEngine
from pipeline import EvaluationPipeline, MatcherPipeline, PipelineOrchestrator
from scoring import ScoringEngine
from scraper import ListingProvider, build_listing_provider
from shared.config import Settings, get_settings
from shared.database import Database, JobStore, MemoryJobStore, MongoJobStore
from shared.models import JobType
from shared.vectorstore import VectorStore, build_vector_store

from .queue import WorkQueue
from .service import JobService, build_queues


class WorkerApp:
    """
    Builds every component once and passes them down explicitly.

    Components are created in ``initialize`` and released in ``cleanup``.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

        self.database: Optional[Database] = None
        self.store: Optional[JobStore] = None
        self.documents: Optional[DocumentRepository] = None
        self.reasoning: Optional[ReasoningClient] = None
        self.vector_store: Optional[VectorStore] = None
        self.provider: Optional[ListingProvider] = None
        self.orchestrator: Optional[PipelineOrchestrator] = None
        self.queues: dict[JobType, WorkQueue] = {}
        self.service: Optional[JobService] = None

    async def initialize(self) -> None:
        """Initialize all components."""
        logger.info("Initializing worker...")

        if self.settings.store_backend == "mongo":
            self.database = Database(self.settings)
            await self.database.connect()
            await self.database.ensure_indexes()
            self.store = MongoJobStore(self.database)
            self.documents = MongoDocumentRepository(self.database)
        else:
            logger.warning("Using in-memory job store - jobs do not survive restarts")
            self.store = MemoryJobStore()
            self.documents = MemoryDocumentRepository()

        self.reasoning = ReasoningClient(self.settings)
        chains = ReasoningChains(self.reasoning)
        extractor = TextExtractor()
        self.vector_store = build_vector_store(self.settings, self.reasoning.embed)
        self.provider = build_listing_provider(self.settings)

        evaluation = EvaluationPipeline(
            chains,
            self.documents,
            extractor,
            ScoringEngine(),
            vector_store=self.vector_store,
            settings=self.settings,
        )
        await evaluation.seed_rubrics()

        self.orchestrator = PipelineOrchestrator(
            self.store,
            [
                evaluation,
                MatcherPipeline(
                    chains,
                    self.documents,
                    extractor,
                    self.provider,
                    MatchingEngine(top_n=self.settings.matcher_top_n),
                    settings=self.settings,
                ),
            ],
            settings=self.settings,
        )
        self.queues = build_queues(self.orchestrator, self.settings)
        self.service = JobService(self.store, self.queues)

        logger.info("Worker initialized successfully")

    def start(self) -> None:
        for queue in self.queues.values():
            queue.start()

    async def join(self) -> None:
        for queue in self.queues.values():
            await queue.join()

    async def cleanup(self) -> None:
        """Cleanup resources."""
        for queue in self.queues.values():
            await queue.close()
        if self.provider:
            await self.provider.close()
        if self.reasoning:
            await self.reasoning.close()
        if self.database:
            await self.database.disconnect()
