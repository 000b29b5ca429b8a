"""
Application wiring for the LearnHub assessment core.

Builds the process-wide service instances from ``Settings`` at start-up.
Nothing in the core reads configuration implicitly; every component gets
its values through these factories.

Usage:
    app = await start_application()
    ...
    await app.shutdown()
"""

from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from learnhub.assessments.collaborators import CompletionCollaborator, CompletionLog
from learnhub.assessments.evaluation import AnswerEvaluator
from learnhub.assessments.insights import InsightsGenerator
from learnhub.assessments.question_generation import QuestionGenerator
from learnhub.assessments.repositories import InMemoryAssessmentRepository, InMemorySessionRepository
from learnhub.assessments.service import AssessmentSessionService
from learnhub.assessments.sql_repository import SqlAssessmentRepository, SqlSessionRepository
from learnhub.common.cache import CacheBackend, MemoryCacheBackend
from learnhub.common.cache.redis import RedisCacheBackend
from learnhub.common.logger import app_logger, configure_logger
from learnhub.config import Settings, get_settings
from learnhub.database.init_db import close_database, create_engine, create_session_factory, create_tables
from learnhub.llm.gateway import LLMGateway, build_openai_client
from learnhub.llm.models import default_purposes

logger = app_logger.getChild("bootstrap")


def build_cache(settings: Settings) -> Optional[CacheBackend]:
    """Create the LLM response cache, or None when caching is disabled."""
    if not settings.cache.enabled:
        return None
    if settings.cache.use_redis:
        return RedisCacheBackend(
            url=settings.cache.redis_url,
            key_prefix=settings.cache.key_prefix,
            default_ttl=settings.llm.response_cache_ttl,
        )
    return MemoryCacheBackend(
        max_size=settings.llm.response_cache_size,
        default_ttl=settings.llm.response_cache_ttl,
    )


def build_gateway(settings: Settings, cache: Optional[CacheBackend] = None, client=None) -> LLMGateway:
    """Create the LLM gateway; the OpenAI client is built from settings unless given."""
    if client is None:
        client = build_openai_client(
            settings.openai_api_key,
            base_url=settings.llm.base_url,
            timeout_seconds=settings.llm.timeout_seconds,
        )
    return LLMGateway(
        client,
        purposes=default_purposes(settings.llm.primary_model, settings.llm.light_model),
        fallback_model=settings.llm.fallback_model,
        max_retries=settings.llm.max_retries,
        max_context_tokens=settings.llm.max_context_tokens,
        cache=cache,
        cache_ttl=settings.llm.response_cache_ttl,
    )


@dataclass
class Application:
    """Handles to the shared services and the resources they hold."""
    settings: Settings
    gateway: LLMGateway
    service: AssessmentSessionService
    cache: Optional[CacheBackend] = None
    engine: Optional[AsyncEngine] = None
    collaborators: List[CompletionCollaborator] = field(default_factory=list)

    async def shutdown(self) -> None:
        """Release the database pool and the cache connection."""
        if self.engine is not None:
            await close_database(self.engine)
        if isinstance(self.cache, RedisCacheBackend):
            await self.cache.close()
        logger.info("Application shutdown complete")


async def start_application(
    settings: Optional[Settings] = None,
    client=None,
    collaborators: Optional[List[CompletionCollaborator]] = None,
    use_database: bool = True
) -> Application:
    """
    Build every service from settings.

    Args:
        settings: Settings to use (process-wide settings when omitted)
        client: Chat-completion client override, e.g. a test double
        collaborators: Services notified after completions
        use_database: Use SQL repositories; in-memory ones otherwise

    Returns:
        The wired application
    """
    settings = settings or get_settings()
    configure_logger(
        level=settings.logging.level,
        use_json=settings.logging.json_format,
        log_file=settings.logging.file,
    )

    cache = build_cache(settings)
    gateway = build_gateway(settings, cache=cache, client=client)

    engine = None
    if use_database:
        engine = create_engine(settings.database.url, settings.database.echo, settings.database.pool_size)
        await create_tables(engine)
        session_factory = create_session_factory(engine)
        assessment_repository = SqlAssessmentRepository(session_factory)
        session_repository = SqlSessionRepository(session_factory)
    else:
        assessment_repository = InMemoryAssessmentRepository()
        session_repository = InMemorySessionRepository()

    collaborators = list(collaborators) if collaborators is not None else [CompletionLog()]
    service = AssessmentSessionService(
        assessment_repository,
        session_repository,
        AnswerEvaluator(gateway),
        question_generator=QuestionGenerator(gateway, settings.assessment.default_question_count),
        insights_generator=InsightsGenerator(gateway),
        collaborators=collaborators,
        abandon_after_hours=settings.assessment.abandon_after_hours,
    )

    logger.info(f"Application startup complete ({settings.environment})")
    return Application(
        settings=settings,
        gateway=gateway,
        service=service,
        cache=cache,
        engine=engine,
        collaborators=collaborators,
    )
