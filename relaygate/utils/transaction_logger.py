"""
Transaction logging for request statistics
"""

import csv
import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict

from .logging import setup_logging

logger = setup_logging()


@dataclass
class TransactionRecord:
    """Data structure for a single transaction record"""
    timestamp: str
    request_id: str
    resource_key: Optional[str] = None
    requested_provider: Optional[str] = None
    max_attempts: Optional[int] = None

    # What actually happened
    status: Optional[str] = None  # success, all_providers_failed, busy
    provider_used: Optional[str] = None
    model_used: Optional[str] = None
    attempts: int = 0
    models_tried: int = 0
    keys_rotated: int = 0

    # Performance metrics
    total_time_ms: Optional[int] = None
    backoff_wait_ms: Optional[int] = None

    # Usage metrics
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None

    # Results and reasons
    finish_reason: Optional[str] = None
    failure_kind: Optional[str] = None
    error_message: Optional[str] = None


class TransactionLogger:
    """Handles CSV logging of detailed transaction statistics"""

    def __init__(self, enabled: bool = True, log_dir: str = "logs"):
        self.enabled = enabled
        self.log_dir = Path(log_dir)
        self.csv_file = self.log_dir / "transactions.csv"
        self._write_lock = asyncio.Lock()

        if self.enabled:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self._ensure_headers()

    def _ensure_headers(self):
        """Ensure CSV headers are written"""
        if not self.csv_file.exists():
            with open(self.csv_file, 'w', newline='', encoding='utf-8') as f:
                writer = csv.DictWriter(f, fieldnames=self._get_fieldnames())
                writer.writeheader()

    def _get_fieldnames(self) -> list:
        """Get CSV fieldnames from TransactionRecord"""
        return list(TransactionRecord.__dataclass_fields__.keys())

    async def log_transaction(self, record: TransactionRecord):
        """Log a transaction record to CSV"""
        if not self.enabled:
            return

        try:
            async with self._write_lock:
                with open(self.csv_file, 'a', newline='', encoding='utf-8') as f:
                    writer = csv.DictWriter(f, fieldnames=self._get_fieldnames())
                    writer.writerow(asdict(record))

                logger.debug("Transaction logged", request_id=record.request_id)

        except OSError as e:
            logger.error("Failed to log transaction",
                         request_id=record.request_id,
                         error=str(e))

    def create_record(self, request_id: str, resource_key: Optional[str] = None) -> TransactionRecord:
        """Create a new transaction record with defaults"""
        return TransactionRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            request_id=request_id,
            resource_key=resource_key
        )

    async def get_stats_summary(self) -> Dict[str, Any]:
        """Get basic statistics summary from the CSV file"""
        if not self.enabled or not self.csv_file.exists():
            return {"enabled": False}

        try:
            total_requests = 0
            successful_requests = 0
            busy_rejections = 0
            total_attempts = 0
            providers_used = {}
            models_used = {}
            failure_kinds = {}

            with open(self.csv_file, 'r', newline='', encoding='utf-8') as f:
                reader = csv.DictReader(f)

                for row in reader:
                    total_requests += 1

                    if row['status'] == 'success':
                        successful_requests += 1
                    elif row['status'] == 'busy':
                        busy_rejections += 1

                    if row['attempts']:
                        total_attempts += int(row['attempts'])

                    if row['provider_used']:
                        provider = row['provider_used']
                        providers_used[provider] = providers_used.get(provider, 0) + 1

                    if row['model_used']:
                        model = row['model_used']
                        models_used[model] = models_used.get(model, 0) + 1

                    if row['failure_kind']:
                        kind = row['failure_kind']
                        failure_kinds[kind] = failure_kinds.get(kind, 0) + 1

            return {
                "enabled": True,
                "total_requests": total_requests,
                "successful_requests": successful_requests,
                "busy_rejections": busy_rejections,
                "success_rate": successful_requests / total_requests if total_requests > 0 else 0,
                "average_attempts": total_attempts / total_requests if total_requests > 0 else 0,
                "providers_used": providers_used,
                "models_used": models_used,
                "failure_kinds": failure_kinds,
                "log_file": str(self.csv_file)
            }

        except (OSError, ValueError, KeyError) as e:
            logger.error("Failed to generate stats summary", error=str(e))
            return {"enabled": True, "error": str(e)}


# Global instance that can be configured
_transaction_logger: Optional[TransactionLogger] = None


def init_transaction_logger(enabled: bool = True, log_dir: str = "logs") -> TransactionLogger:
    """Initialize the global transaction logger"""
    global _transaction_logger
    _transaction_logger = TransactionLogger(enabled=enabled, log_dir=log_dir)
    return _transaction_logger


def get_transaction_logger() -> Optional[TransactionLogger]:
    """Get the global transaction logger instance"""
    return _transaction_logger
