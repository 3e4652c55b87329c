"""
Tests for transaction logging
"""

import csv

import pytest

from relaygate.utils.transaction_logger import TransactionLogger


@pytest.mark.asyncio
async def test_transaction_logging(tmp_path):
    logger = TransactionLogger(enabled=True, log_dir=str(tmp_path))

    record1 = logger.create_record(request_id="test-001", resource_key="video-42")
    record1.status = "success"
    record1.provider_used = "gemini"
    record1.model_used = "gemini-2.5-flash"
    record1.attempts = 3
    record1.keys_rotated = 2
    record1.total_time_ms = 1500
    record1.input_tokens = 100
    record1.output_tokens = 50
    record1.finish_reason = "STOP"

    record2 = logger.create_record(request_id="test-002")
    record2.status = "all_providers_failed"
    record2.failure_kind = "pool_exhausted"
    record2.error_message = "All 3 API keys for gemini are currently rate limited"
    record2.attempts = 3
    record2.total_time_ms = 750

    await logger.log_transaction(record1)
    await logger.log_transaction(record2)

    assert logger.csv_file.exists()
    with open(logger.csv_file, 'r', newline='', encoding='utf-8') as f:
        rows = list(csv.DictReader(f))

    assert len(rows) == 2
    assert rows[0]['request_id'] == 'test-001'
    assert rows[0]['resource_key'] == 'video-42'
    assert rows[0]['model_used'] == 'gemini-2.5-flash'
    assert rows[0]['input_tokens'] == '100'
    assert rows[1]['failure_kind'] == 'pool_exhausted'
    assert rows[1]['provider_used'] == ''

    stats = await logger.get_stats_summary()
    assert stats['total_requests'] == 2
    assert stats['successful_requests'] == 1
    assert stats['success_rate'] == 0.5
    assert stats['average_attempts'] == 3
    assert stats['providers_used'] == {'gemini': 1}
    assert stats['failure_kinds'] == {'pool_exhausted': 1}


@pytest.mark.asyncio
async def test_disabled_logger_writes_nothing(tmp_path):
    log_dir = tmp_path / "logs"
    logger = TransactionLogger(enabled=False, log_dir=str(log_dir))

    await logger.log_transaction(logger.create_record(request_id="ignored"))

    assert not log_dir.exists()
    assert await logger.get_stats_summary() == {"enabled": False}


@pytest.mark.asyncio
async def test_header_written_once(tmp_path):
    TransactionLogger(enabled=True, log_dir=str(tmp_path))
    logger = TransactionLogger(enabled=True, log_dir=str(tmp_path))
    await logger.log_transaction(logger.create_record(request_id="only"))

    lines = logger.csv_file.read_text(encoding='utf-8').splitlines()
    assert len(lines) == 2
    assert lines[0].startswith("timestamp,request_id,resource_key")
