"""
End-to-end check of the emergency pipeline.

This script exercises:
1. Configuration loading and validation
2. Rule evaluation over scripted wearable scenarios
3. Notification dispatch (log-only stub unless SMS credentials are set)
4. Audit logging
5. Failure isolation when delivery breaks or the subject is unknown

Run with: uv run python demo_pipeline.py
"""

import asyncio
import tempfile
from functools import partial
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from core.config import AuditConfig, get_config, print_config_summary, validate_config
from core.services.contacts import InMemorySubjectStore
from core.services.errors import DeliveryError
from core.services.normalizer import normalize
from core.services.pipeline import build_pipeline
from core.services.rules import RuleEngine

console = Console()

SCENARIOS: list[tuple[str, dict[str, Any]]] = [
    ("resting", {"heart_rate": 68, "acceleration": {"x": 0.1, "y": 0.2, "z": 9.8}}),
    ("bradycardia", {"heart_rate": 38}),
    ("tachycardia", {"heart_rate": 195, "acceleration": {"x": 12, "y": 12, "z": 12}}),
    ("hard fall", {"heart_rate": 95, "acceleration": {"x": 10, "y": 10, "z": 15}}),
    ("brisk walk", {"heart_rate": 120, "acceleration": {"x": 10, "y": 10, "z": 10}}),
    ("lost z axis", {"heart_rate": 90, "acceleration": {"x": 30, "y": 30}}),
    ("garbled", {"heart_rate": "n/a", "accel": "???"}),
]


class FlakyChannel:
    """Channel that always fails, to show failures stay contained."""

    name = "flaky"

    async def send(self, to: str, body: str) -> None:
        raise DeliveryError("carrier unavailable", status_code=503)


def _demo_store() -> InMemorySubjectStore:
    store = InMemorySubjectStore()
    store.add(1, "Ada Lovelace", "+15550001111")
    store.add(2, None, None)
    return store


async def check_configuration() -> bool:
    """Check configuration loading and validation."""

    console.print(Panel("🔧 Checking Configuration", style="blue"))

    try:
        validate_config()
        print_config_summary()
        return True

    except Exception as e:
        console.print(f"❌ Configuration check failed: {e}", style="red")
        return False


async def check_rule_engine() -> bool:
    """Run every scenario through normalization and the rule engine."""

    console.print(Panel("🩺 Checking Rule Engine", style="blue"))

    engine = RuleEngine(get_config().rules)

    table = Table(title="Rule Evaluation")
    table.add_column("Scenario", style="cyan")
    table.add_column("Triggered", style="white")
    table.add_column("Rule", style="magenta")
    table.add_column("Reason", style="yellow")

    for label, raw in SCENARIOS:
        outcome = engine.evaluate(normalize(raw))
        table.add_row(
            label,
            "🚨 yes" if outcome.triggered else "no",
            outcome.severity_rule.value,
            outcome.reason or "-",
        )

    console.print(table)
    return True


async def check_pipeline(workdir: Path) -> bool:
    """Run the scenarios through the full pipeline with the configured channel."""

    console.print(Panel("🚀 Checking Full Pipeline", style="blue"))

    config = get_config().model_copy(
        update={"audit": AuditConfig(log_file_path=str(workdir / "emergency.log"))}
    )
    pipeline = build_pipeline(config, store=_demo_store())

    results = await pipeline.process_many([(1, raw) for _, raw in SCENARIOS])
    triggered = sum(1 for r in results if r.triggered)
    console.print(f"✅ {triggered}/{len(results)} samples triggered an emergency", style="green")

    log_lines = (workdir / "emergency.log").read_text(encoding="utf-8").splitlines()
    console.print(f"📝 {len(log_lines)} audit records written", style="green")
    for line in log_lines:
        console.print(f"  {line}", style="dim")

    return len(log_lines) == triggered


async def check_failure_isolation(workdir: Path) -> bool:
    """Delivery failures and unknown subjects must not leak to the caller."""

    console.print(Panel("🛡️ Checking Failure Isolation", style="blue"))

    log_path = workdir / "isolation.log"
    config = get_config().model_copy(update={"audit": AuditConfig(log_file_path=str(log_path))})
    pipeline = build_pipeline(config, store=_demo_store(), channel=FlakyChannel())

    failed_delivery = await pipeline.on_sample(1, {"heart_rate": 30})
    unknown_subject = await pipeline.on_sample(999, {"heart_rate": 30})

    audit_lines = log_path.read_text(encoding="utf-8").splitlines() if log_path.exists() else []

    ok = failed_delivery.triggered and unknown_subject.triggered and len(audit_lines) == 1
    style = "green" if ok else "red"
    console.print(f"Delivery failure still audited: {len(audit_lines) == 1}", style=style)
    console.print(f"Unknown subject reported triggered: {unknown_subject.triggered}", style=style)
    return ok


async def run_all_checks() -> None:
    """Run all pipeline checks."""

    console.print(Panel("🧪 CardioGuard - Pipeline Checks", style="bold blue"))

    with tempfile.TemporaryDirectory() as tmp:
        workdir = Path(tmp)
        checks = [
            ("Configuration", check_configuration),
            ("Rule Engine", check_rule_engine),
            ("Full Pipeline", partial(check_pipeline, workdir)),
            ("Failure Isolation", partial(check_failure_isolation, workdir)),
        ]

        results = []
        for check_name, check_func in checks:
            console.print(f"\n{'=' * 60}")
            try:
                results.append((check_name, await check_func()))
            except Exception as e:
                console.print(f"❌ {check_name} failed with exception: {e}", style="red")
                results.append((check_name, False))

    # Summary
    console.print(f"\n{'=' * 60}")
    console.print(Panel("📋 Check Results Summary", style="bold"))

    summary_table = Table()
    summary_table.add_column("Check", style="cyan")
    summary_table.add_column("Result", style="white")

    passed = 0
    for check_name, result in results:
        if result:
            summary_table.add_row(check_name, "✅ PASSED")
            passed += 1
        else:
            summary_table.add_row(check_name, "❌ FAILED")

    console.print(summary_table)
    console.print(f"\n🎯 Results: {passed}/{len(results)} checks passed")


if __name__ == "__main__":
    try:
        asyncio.run(run_all_checks())
    except KeyboardInterrupt:
        console.print("\n👋 Checks stopped by user", style="yellow")
