import json
import logging
from pathlib import Path

from envrisk.common.constants import JSON_LOG_FIELDS
from envrisk.common.ids import generate_run_id
from envrisk.common.logging import JsonLineFormatter, build_logger, log_event
from envrisk.common.time_utils import isoformat_utc, utc_now


def test_generate_run_id_prefix():
    assert generate_run_id().startswith("run-")


def test_utc_now_is_timezone_aware():
    assert utc_now().utcoffset().total_seconds() == 0
    assert isoformat_utc(utc_now()).endswith("+00:00")


def test_json_line_formatter_emits_stable_fields():
    record = logging.LogRecord("envrisk.test", logging.INFO, __file__, 1, "source done", None, None)
    record.source = "sems"
    record.rows_out = 3

    payload = json.loads(JsonLineFormatter().format(record))

    assert set(JSON_LOG_FIELDS) <= set(payload)
    assert payload["message"] == "source done"
    assert payload["source"] == "sems"
    assert payload["rows_out"] == 3
    assert payload["run_id"] is None


def test_build_logger_writes_json_lines(tmp_path: Path):
    log_path = tmp_path / "logs" / "run-x.log.jsonl"
    logger = build_logger("run-x", level="DEBUG", log_path=log_path)

    log_event(logger, "run started", run_id="run-x", event="RUN_START", status="ok")
    for handler in logger.handlers:
        handler.flush()

    lines = log_path.read_text(encoding="utf-8").strip().splitlines()
    assert json.loads(lines[-1])["event"] == "RUN_START"
