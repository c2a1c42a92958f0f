"""
Emergency pipeline: normalize -> evaluate -> resolve -> notify + audit.

Each sample is an independent invocation. The pipeline reports only whether
an emergency was triggered; contact lookup, delivery and audit failures are
logged and contained so they never reach the ingestion caller.

Architecture pattern: injected collaborators with isolated failure domains
"""

import asyncio
from collections.abc import Iterable, Mapping
from typing import Any

import httpx
import structlog

from core.config import AppConfig, get_config
from core.domain.models import EmergencyOutcome, IngestionResult, Sample
from core.observability import configure_logging
from core.services.audit import AuditLogger
from core.services.contacts import ContactResolver, SqliteSubjectStore, SubjectStore
from core.services.normalizer import normalize
from core.services.notifications import NotificationChannel, NotificationDispatcher, build_channel
from core.services.rules import RuleEngine

logger = structlog.get_logger(__name__)

CHECK_FAILED_WARNING = "emergency check failed"

RawSample = Sample | Mapping[str, Any]


class EmergencyPipeline:
    """
    Runs one sample through the full emergency check.

    Notification and audit run concurrently and are awaited before returning;
    an error in one never prevents the other or changes the result.
    """

    def __init__(
        self,
        engine: RuleEngine,
        resolver: ContactResolver,
        dispatcher: NotificationDispatcher,
        audit_logger: AuditLogger,
        max_concurrent_samples: int = 32,
    ) -> None:
        self.engine = engine
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.audit_logger = audit_logger
        self.max_concurrent_samples = max_concurrent_samples
        self.logger = logger.bind(component="emergency_pipeline")

    async def on_sample(self, subject_id: str | int, raw_sample: RawSample | None) -> IngestionResult:
        try:
            outcome = self.engine.evaluate(normalize(raw_sample))
        except Exception as e:
            self.logger.exception("emergency_check_failed", subject_id=subject_id, error=str(e))
            return IngestionResult(triggered=False, warning=CHECK_FAILED_WARNING)

        if not outcome.triggered:
            return IngestionResult(triggered=False)

        try:
            await self._handle_emergency(subject_id, outcome)
        except Exception as e:
            # Outcome is already known; side-effect trouble must not downgrade it.
            self.logger.exception("emergency_handling_failed", subject_id=subject_id, error=str(e))

        return IngestionResult(triggered=True)

    async def _handle_emergency(self, subject_id: str | int, outcome: EmergencyOutcome) -> None:
        message = outcome.reason or ""
        self.logger.warning(
            "emergency_triggered",
            subject_id=subject_id,
            rule=outcome.severity_rule.value,
            reason=message,
        )

        resolved = await self.resolver.resolve(subject_id)
        if resolved.is_err():
            self.logger.error(
                "emergency_not_notified",
                subject_id=subject_id,
                error=str(resolved.unwrap_err()),
            )
            return

        subject = resolved.unwrap()
        results = await asyncio.gather(
            self.dispatcher.dispatch(subject.emergency_contact, subject.display_name, message),
            self.audit_logger.record(subject.display_name, subject.emergency_contact, message),
            return_exceptions=True,
        )

        for step, result in zip(("notification", "audit"), results, strict=True):
            if isinstance(result, BaseException):
                self.logger.error(
                    "emergency_side_effect_failed",
                    step=step,
                    subject_id=subject_id,
                    error=str(result),
                )

        self.logger.info(
            "emergency_handled",
            subject_id=subject_id,
            delivery=getattr(results[0], "value", "error"),
            audited=results[1] is True,
        )

    async def process_many(
        self, samples: Iterable[tuple[str | int, RawSample | None]]
    ) -> list[IngestionResult]:
        """
        Evaluate many samples concurrently, returning results in input order.

        Invocations are independent: two samples for the same subject may be
        handled in parallel and in any order.
        """
        semaphore = asyncio.Semaphore(self.max_concurrent_samples)

        async def _bounded(subject_id: str | int, raw: RawSample | None) -> IngestionResult:
            async with semaphore:
                return await self.on_sample(subject_id, raw)

        async with asyncio.TaskGroup() as task_group:
            tasks = [
                task_group.create_task(_bounded(subject_id, raw)) for subject_id, raw in samples
            ]

        results = [task.result() for task in tasks]
        self.logger.info(
            "sample_batch_processed",
            total=len(results),
            triggered=sum(1 for r in results if r.triggered),
        )
        return results


def build_pipeline(
    config: AppConfig | None = None,
    store: SubjectStore | None = None,
    channel: NotificationChannel | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> EmergencyPipeline:
    """Wire a pipeline from configuration, with optional injected collaborators."""
    config = config or get_config()
    configure_logging(config.logging)

    store = store or SqliteSubjectStore(config.database.path)
    channel = channel or build_channel(config.notification, http_client=http_client)

    pipeline = EmergencyPipeline(
        engine=RuleEngine(config.rules),
        resolver=ContactResolver(store),
        dispatcher=NotificationDispatcher(channel),
        audit_logger=AuditLogger(config.audit.log_file_path),
        max_concurrent_samples=config.pipeline.max_concurrent_samples,
    )
    logger.info(
        "emergency_pipeline_initialized",
        environment=config.environment,
        channel=channel.name,
        store=type(store).__name__,
    )
    return pipeline
