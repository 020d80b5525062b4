"""Tests for the structured logger."""

from __future__ import annotations

import json
import logging
import threading

from shared.logger import InspectLogger


def test_json_file_sink(tmp_path):
    log_file = tmp_path / "logs" / "parser.log"
    log = InspectLogger(
        "test-json", log_level="DEBUG", log_file=log_file, json_logs=True, console_output=False
    )
    with log.operation("load_headers"):
        log.debug("e_lfanew=0x%X", 0x80, sections=2)
    for handler in log.underlying.handlers:
        handler.flush()

    record = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
    assert record["msg"] == "e_lfanew=0x80"
    assert record["level"] == "DEBUG"
    assert record["component"] == "test-json"
    assert record["operation"] == "load_headers"
    assert record["fields"] == {"sections": 2}


def test_reconfiguration_replaces_handlers():
    InspectLogger("test-reconf", console_output=True)
    log = InspectLogger("test-reconf", console_output=False)
    handlers = log.underlying.handlers
    assert len(handlers) == 1
    assert isinstance(handlers[0], logging.NullHandler)


def test_level_and_name():
    log = InspectLogger("test-level", log_level="warning", console_output=False)
    assert log.underlying.name == "peinspect.test-level"
    assert log.underlying.level == logging.WARNING
    assert log.tool_name == "test-level"


def test_timed_reports_elapsed():
    log = InspectLogger("test-timed", console_output=False)
    with log.timed("parse") as timer:
        pass
    assert timer.elapsed >= 0.0


def test_operations_nest(tmp_path):
    log_file = tmp_path / "nest.log"
    log = InspectLogger("test-nest", log_level="DEBUG", log_file=log_file, json_logs=True, console_output=False)
    with log.operation("outer"):
        with log.operation("inner"):
            log.debug("a")
        log.debug("b")
    log.debug("c")
    for handler in log.underlying.handlers:
        handler.flush()

    ops = [json.loads(line)["operation"] for line in log_file.read_text(encoding="utf-8").splitlines()]
    assert ops == ["inner", "outer", "-"]
    assert log.current_operation is None


def test_below_level_is_dropped(tmp_path):
    log_file = tmp_path / "quiet.log"
    log = InspectLogger("test-quiet", log_level="INFO", log_file=log_file, console_output=False)
    log.debug("hidden")
    log.info("shown %d", 1)
    for handler in log.underlying.handlers:
        handler.flush()
    text = log_file.read_text(encoding="utf-8")
    assert "hidden" not in text
    assert "shown 1" in text


def test_operations_are_per_thread(tmp_path):
    log_file = tmp_path / "threads.log"
    log = InspectLogger("test-threads", log_level="DEBUG", log_file=log_file, json_logs=True, console_output=False)
    barrier = threading.Barrier(4)

    def work(name: str) -> None:
        with log.operation(name):
            barrier.wait()
            log.debug("inside", worker=name)
            barrier.wait()

    threads = [threading.Thread(target=work, args=(f"op-{i}",)) for i in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    for handler in log.underlying.handlers:
        handler.flush()

    records = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
    assert len(records) == 4
    for record in records:
        assert record["operation"] == record["fields"]["worker"]
    assert log.current_operation is None
