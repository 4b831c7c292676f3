# src/service/factory.py - v1
"""Wire an InteractionCacheService from Settings.

Stores, LLM client and providers are created here once and injected; the
service itself never reads configuration.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from medcache.analysis.llm_provider import LLMAnalysisProvider
from medcache.cache.cache_factory import create_cache_store
from medcache.catalog.catalog_factory import create_catalog_store
from medcache.config.settings import Settings
from medcache.core.clock import Clock, utcnow
from medcache.core.retry import RetryPolicy
from medcache.enrichment.extractor import LLMExtractionProvider
from medcache.enrichment.pipeline import MedicationEnricher
from medcache.history.consultation_logger import ConsultationHistoryLogger
from medcache.history.history_factory import create_history_store
from medcache.llm.client_factory import create_llm_client
from medcache.service.interaction_cache import InteractionCacheService

if TYPE_CHECKING:
    from medcache.llm.base_client import BaseLLMClient

logger = logging.getLogger(__name__)


def retry_policy_from_settings(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.store_retry_max_attempts,
        base_delay_s=settings.store_retry_delay_s,
    )


def build_service(
    settings: Settings | None = None,
    llm: BaseLLMClient | None = None,
    clock: Clock = utcnow,
) -> InteractionCacheService:
    """Build a fully wired service.

    Args:
        settings: Application settings. Loaded from .env if None.
        llm: Pre-built LLM client (tests inject a mock). Created from
            settings when None.
        clock: Time source shared by every component.

    Returns:
        InteractionCacheService ready for get_or_compute().
    """
    settings = settings or Settings()
    policy = retry_policy_from_settings(settings)
    llm = llm or create_llm_client(settings.llm_provider, settings.llm_model, settings)

    analysis_provider = LLMAnalysisProvider(
        llm,
        temperature=settings.llm_analysis_temperature,
        timeout_s=settings.llm_timeout_s,
    )
    history_logger = ConsultationHistoryLogger(
        create_history_store(settings), retry_policy=policy, clock=clock
    )

    enricher: MedicationEnricher | None = None
    if settings.enrichment_enabled:
        extractor = LLMExtractionProvider(
            llm,
            temperature=settings.llm_extraction_temperature,
            max_tokens=settings.llm_extraction_max_tokens,
        )
        enricher = MedicationEnricher(
            create_catalog_store(settings),
            extractor=extractor,
            extraction_enabled=settings.extraction_enabled,
            retry_policy=policy,
            clock=clock,
        )

    logger.debug(
        "Service wired: cache=%s, history=%s, enrichment=%s, provider=%s:%s",
        settings.cache_backend, settings.history_backend,
        settings.enrichment_enabled, settings.llm_provider, settings.llm_model,
    )
    return InteractionCacheService(
        cache_store=create_cache_store(settings),
        analysis_provider=analysis_provider,
        history_logger=history_logger,
        enricher=enricher,
        ttl_days=settings.cache_ttl_days,
        cache_enabled=settings.cache_enabled,
        retry_policy=policy,
        clock=clock,
    )
