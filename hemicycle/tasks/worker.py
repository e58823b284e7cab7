"""ARQ WorkerSettings for the ingestion cycle.

Collaborators are built once in ``startup`` and handed to each job through the
arq context. One cycle is enqueued at startup, then the cron takes over.

Worker is started with: arq hemicycle.tasks.worker.WorkerSettings
"""

from arq.connections import RedisSettings
from arq.cron import cron

from hemicycle.core.config import Settings, settings
from hemicycle.core.db import close_db_pool, get_db_pool
from hemicycle.core.fetcher import ResilientFetcher
from hemicycle.core.logging_setup import configure_logging
from hemicycle.repositories.postgres import PostgresStore
from hemicycle.repositories.store import IngestionStore, MemoryStore
from hemicycle.services.notifier import LogNotifier, Notifier, WebhookNotifier, close_notifier
from hemicycle.services.taxonomy import TaxonomyReconciler, load_theme_nodes
from hemicycle.tasks.ingest_cycle import run_ingestion_cycle

configure_logging(settings.LOG_LEVEL, settings.ENVIRONMENT)


def taxonomy_loader(config: Settings):
    """Reload the theme dataset on every call, so edits apply on the next cycle."""

    def load() -> TaxonomyReconciler:
        return TaxonomyReconciler(
            load_theme_nodes(config.TAXONOMY_PATH),
            max_label_length=config.MAX_THEME_LENGTH,
        )

    return load


async def build_store(config: Settings) -> IngestionStore:
    if not config.DATABASE_URL:
        return MemoryStore()
    return PostgresStore(await get_db_pool(config.DATABASE_URL))


def build_notifier(config: Settings) -> Notifier:
    if config.NOTIFY_WEBHOOK_URL:
        return WebhookNotifier(config.NOTIFY_WEBHOOK_URL)
    return LogNotifier()


async def startup(ctx: dict) -> None:
    ctx["settings"] = settings
    ctx["fetcher"] = ResilientFetcher.from_settings(settings)
    ctx["store"] = await build_store(settings)
    ctx["notifier"] = build_notifier(settings)
    ctx["taxonomy_loader"] = taxonomy_loader(settings)
    await ctx["redis"].enqueue_job("run_ingestion_cycle")


async def shutdown(ctx: dict) -> None:
    if "fetcher" in ctx:
        await ctx["fetcher"].aclose()
    if "notifier" in ctx:
        await close_notifier(ctx["notifier"])
    await close_db_pool()


class WorkerSettings:
    """
    ARQ worker configuration.

    max_jobs: 1. A cycle already fans out internally, and two overlapping
    cycles would double the load on the remote sites.
    job_timeout: configurable via INGEST_JOB_TIMEOUT.
    """

    functions = [run_ingestion_cycle]

    cron_jobs = [
        cron(run_ingestion_cycle, hour=settings.SCRAPE_HOURS, minute=0),
    ]

    on_startup = startup
    on_shutdown = shutdown

    redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)

    max_jobs = 1
    job_timeout = settings.INGEST_JOB_TIMEOUT
    health_check_interval = 30
