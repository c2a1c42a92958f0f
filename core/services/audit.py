"""
Append-only emergency audit log.

One line per triggered emergency, written whether or not the notification
went out. Appends run in a worker thread and are serialized by a lock, so
concurrent pipeline invocations never interleave partial lines.
"""

import asyncio
import threading
from pathlib import Path

import structlog

from core.domain.models import AuditRecord
from core.services.errors import AuditWriteError

logger = structlog.get_logger(__name__)


class AuditLogger:
    """Writes AuditRecords to a UTF-8 text file."""

    def __init__(self, log_file_path: str | Path) -> None:
        self.log_file_path = Path(log_file_path)
        self._lock = threading.Lock()
        self.logger = logger.bind(component="audit_logger", path=str(self.log_file_path))

    def _append(self, line: str) -> None:
        with self._lock:
            try:
                self.log_file_path.parent.mkdir(parents=True, exist_ok=True)
                with self.log_file_path.open("a", encoding="utf-8") as fh:
                    fh.write(line)
            except OSError as e:
                raise AuditWriteError(f"Failed to write emergency log: {e}") from e

    async def write(self, record: AuditRecord) -> None:
        """Append a record. Raises AuditWriteError on I/O failure."""
        await asyncio.to_thread(self._append, record.to_line())

    async def record(self, subject_name: str, contact: str | None, message: str) -> bool:
        """Append a record for a triggered emergency; never raises."""
        audit_record = AuditRecord(subject_name=subject_name, contact=contact, message=message)
        try:
            await self.write(audit_record)
        except AuditWriteError as e:
            self.logger.error("audit_write_failed", subject=subject_name, error=str(e))
            return False

        self.logger.info("audit_record_written", subject=subject_name)
        return True
