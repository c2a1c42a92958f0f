"""
Tests for the emergency pipeline orchestrator.

Covers:
- Clear samples never touch the subject store
- Triggered samples notify and audit
- Subject-not-found aborts notify and audit but still reports triggered
- Delivery and audit failures are isolated from each other and the result
- Internal errors degrade to triggered=False with a warning
- Concurrent batch processing keeps input order
- build_pipeline wiring from AppConfig
"""

from pathlib import Path

import pytest

from core.config import AppConfig, AuditConfig, DatabaseConfig, PipelineConfig
from core.domain.models import EmergencyOutcome, IngestionResult, NormalizedSample, Subject
from core.services.audit import AuditLogger
from core.services.contacts import ContactResolver, InMemorySubjectStore, SqliteSubjectStore
from core.services.errors import DeliveryError
from core.services.notifications import NotificationDispatcher, StubChannel
from core.services.pipeline import CHECK_FAILED_WARNING, EmergencyPipeline, build_pipeline
from core.services.rules import RuleEngine

BRADYCARDIA_SAMPLE = {"heart_rate": 38}
FALL_SAMPLE = {"heart_rate": 72, "acceleration": {"x": 10, "y": 10, "z": 15}}
CLEAR_SAMPLE = {"heart_rate": 72, "acceleration": {"x": 10, "y": 10, "z": 10}}


class RecordingChannel:
    """Test double that implements the NotificationChannel protocol."""

    name = "recording"

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.sent: list[tuple[str, str]] = []

    async def send(self, to: str, body: str) -> None:
        self.sent.append((to, body))
        if self.error is not None:
            raise self.error


class CountingStore(InMemorySubjectStore):
    """In-memory store that counts lookups."""

    def __init__(self) -> None:
        super().__init__()
        self.lookups = 0

    async def get_subject(self, subject_id: str | int) -> Subject | None:
        self.lookups += 1
        return await super().get_subject(subject_id)


class ExplodingAuditLogger(AuditLogger):
    async def record(self, subject_name: str, contact: str | None, message: str) -> bool:
        raise RuntimeError("disk on fire")


class ExplodingEngine(RuleEngine):
    def evaluate(self, sample: NormalizedSample) -> EmergencyOutcome:
        raise RuntimeError("engine bug")


@pytest.fixture
def store() -> CountingStore:
    store = CountingStore()
    store.add(1, "Ada", "+15550001111")
    store.add(2, None, None)
    return store


@pytest.fixture
def log_path(tmp_path: Path) -> Path:
    return tmp_path / "emergency.log"


def _pipeline(
    store: InMemorySubjectStore,
    log_path: Path,
    channel: RecordingChannel | None = None,
    audit_logger: AuditLogger | None = None,
    engine: RuleEngine | None = None,
) -> EmergencyPipeline:
    return EmergencyPipeline(
        engine=engine or RuleEngine(),
        resolver=ContactResolver(store),
        dispatcher=NotificationDispatcher(channel or RecordingChannel()),
        audit_logger=audit_logger or AuditLogger(log_path),
    )


def _audit_lines(log_path: Path) -> list[str]:
    if not log_path.exists():
        return []
    return log_path.read_text(encoding="utf-8").splitlines()


class TestOnSample:
    @pytest.mark.asyncio
    async def test_clear_sample_skips_resolution(
        self, store: CountingStore, log_path: Path
    ) -> None:
        channel = RecordingChannel()
        pipeline = _pipeline(store, log_path, channel)

        result = await pipeline.on_sample(1, CLEAR_SAMPLE)

        assert result == IngestionResult(triggered=False)
        assert store.lookups == 0
        assert channel.sent == []
        assert _audit_lines(log_path) == []

    @pytest.mark.asyncio
    async def test_triggered_sample_notifies_and_audits(
        self, store: CountingStore, log_path: Path
    ) -> None:
        channel = RecordingChannel()
        pipeline = _pipeline(store, log_path, channel)

        result = await pipeline.on_sample(1, BRADYCARDIA_SAMPLE)

        assert result == IngestionResult(triggered=True)
        assert channel.sent == [("+15550001111", "Emergency for Ada: Low heart rate detected: 38")]
        lines = _audit_lines(log_path)
        assert len(lines) == 1
        assert lines[0].endswith(
            "| EMERGENCY | user:Ada | contact:+15550001111 | msg:Low heart rate detected: 38"
        )

    @pytest.mark.asyncio
    async def test_fall_reason_reaches_audit(self, store: CountingStore, log_path: Path) -> None:
        await _pipeline(store, log_path).on_sample(1, FALL_SAMPLE)

        assert "msg:Possible fall detected. Accel magnitude: 20.62" in _audit_lines(log_path)[0]

    @pytest.mark.asyncio
    async def test_no_contact_still_audits(self, store: CountingStore, log_path: Path) -> None:
        channel = RecordingChannel()

        result = await _pipeline(store, log_path, channel).on_sample(2, BRADYCARDIA_SAMPLE)

        assert result.triggered
        assert channel.sent == []
        assert "| user:user#2 | contact:null |" in _audit_lines(log_path)[0]

    @pytest.mark.asyncio
    async def test_unknown_subject_aborts_side_effects(
        self, store: CountingStore, log_path: Path
    ) -> None:
        channel = RecordingChannel()

        result = await _pipeline(store, log_path, channel).on_sample(404, BRADYCARDIA_SAMPLE)

        assert result == IngestionResult(triggered=True)
        assert channel.sent == []
        assert _audit_lines(log_path) == []

    @pytest.mark.parametrize("error", [DeliveryError("rejected", 500), RuntimeError("boom")])
    @pytest.mark.asyncio
    async def test_delivery_failure_does_not_block_audit(
        self, store: CountingStore, log_path: Path, error: Exception
    ) -> None:
        channel = RecordingChannel(error=error)

        result = await _pipeline(store, log_path, channel).on_sample(1, BRADYCARDIA_SAMPLE)

        assert result == IngestionResult(triggered=True)
        assert len(channel.sent) == 1
        assert len(_audit_lines(log_path)) == 1

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_block_delivery(
        self, store: CountingStore, log_path: Path
    ) -> None:
        channel = RecordingChannel()
        pipeline = _pipeline(store, log_path, channel, audit_logger=ExplodingAuditLogger(log_path))

        result = await pipeline.on_sample(1, BRADYCARDIA_SAMPLE)

        assert result == IngestionResult(triggered=True)
        assert len(channel.sent) == 1

    @pytest.mark.asyncio
    async def test_engine_failure_degrades_with_warning(
        self, store: CountingStore, log_path: Path
    ) -> None:
        pipeline = _pipeline(store, log_path, engine=ExplodingEngine())

        result = await pipeline.on_sample(1, BRADYCARDIA_SAMPLE)

        assert result == IngestionResult(triggered=False, warning=CHECK_FAILED_WARNING)
        assert store.lookups == 0

    @pytest.mark.asyncio
    async def test_malformed_sample_is_not_an_error(
        self, store: CountingStore, log_path: Path
    ) -> None:
        result = await _pipeline(store, log_path).on_sample(
            1, {"heart_rate": "fast", "acceleration": "sideways"}
        )

        assert result == IngestionResult(triggered=False)

    @pytest.mark.asyncio
    async def test_partial_vector_does_not_trigger(
        self, store: CountingStore, log_path: Path
    ) -> None:
        result = await _pipeline(store, log_path).on_sample(
            1, {"acceleration": {"x": 30, "y": 30, "z": None}}
        )

        assert not result.triggered

    @pytest.mark.asyncio
    async def test_repeated_samples_retrigger_every_time(
        self, store: CountingStore, log_path: Path
    ) -> None:
        channel = RecordingChannel()
        pipeline = _pipeline(store, log_path, channel)

        for _ in range(3):
            await pipeline.on_sample(1, BRADYCARDIA_SAMPLE)

        assert len(channel.sent) == 3
        assert len(_audit_lines(log_path)) == 3


class TestProcessMany:
    @pytest.mark.asyncio
    async def test_results_keep_input_order(self, store: CountingStore, log_path: Path) -> None:
        channel = RecordingChannel()
        pipeline = _pipeline(store, log_path, channel)
        pipeline.max_concurrent_samples = 2

        results = await pipeline.process_many(
            [
                (1, CLEAR_SAMPLE),
                (1, BRADYCARDIA_SAMPLE),
                (404, FALL_SAMPLE),
                (2, {"heart_rate": 190}),
                (1, None),
            ]
        )

        assert [r.triggered for r in results] == [False, True, True, True, False]
        assert len(channel.sent) == 1  # subject 2 has no contact, 404 is unknown
        assert len(_audit_lines(log_path)) == 2

    @pytest.mark.asyncio
    async def test_same_subject_concurrently(self, store: CountingStore, log_path: Path) -> None:
        pipeline = _pipeline(store, log_path)

        results = await pipeline.process_many([(1, BRADYCARDIA_SAMPLE)] * 20)

        assert all(r.triggered for r in results)
        assert len(_audit_lines(log_path)) == 20


class TestBuildPipeline:
    def test_wires_components_from_config(self, tmp_path: Path) -> None:
        config = AppConfig(
            audit=AuditConfig(log_file_path=str(tmp_path / "emergency.log")),
            database=DatabaseConfig(path=str(tmp_path / "cardio.db")),
            pipeline=PipelineConfig(max_concurrent_samples=4),
        )

        pipeline = build_pipeline(config)

        assert isinstance(pipeline.dispatcher.channel, StubChannel)
        assert isinstance(pipeline.resolver.store, SqliteSubjectStore)
        assert pipeline.audit_logger.log_file_path == tmp_path / "emergency.log"
        assert pipeline.max_concurrent_samples == 4

    @pytest.mark.asyncio
    async def test_end_to_end_with_sqlite_and_stub(self, tmp_path: Path) -> None:
        config = AppConfig(
            audit=AuditConfig(log_file_path=str(tmp_path / "emergency.log")),
            database=DatabaseConfig(path=str(tmp_path / "cardio.db")),
        )
        store = SqliteSubjectStore(config.database.path)
        await store.ensure_schema()
        subject_id = await store.register("Ada", emergency_contact="+15550001111")
        channel = StubChannel()

        pipeline = build_pipeline(config, store=store, channel=channel)
        result = await pipeline.on_sample(subject_id, {"heart_rate": 200})

        assert result.triggered
        assert list(channel.attempts) == [
            ("+15550001111", "Emergency for Ada: Very high heart rate detected: 200")
        ]
        assert len(_audit_lines(tmp_path / "emergency.log")) == 1
