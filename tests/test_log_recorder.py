# tests/test_log_recorder.py
from datetime import datetime, timedelta

import pytest

from hookpanel.service.models.db_model import WebhookLog, utcnow
from hookpanel.static.log_recorder import LogRecorder, WebhookCall, format_run_block
from hookpanel.static.process_runner import ErrorType, ExecutionResult


@pytest.fixture
def recorder(settings):
    return LogRecorder()


def make_result(success=True, output="hello\n", error="", exit_code=0):
    return ExecutionResult(
        success=success,
        output=output,
        error=error,
        exit_code=exit_code,
        duration=0.25,
        timestamp=datetime(2024, 5, 1, 12, 0, 0),
        error_type=None if success else ErrorType.EXIT,
    )


def test_run_block_layout():
    block = format_run_block(
        make_result(success=False, output="a\nb\n", error="bad\n", exit_code=3),
        datetime(2024, 5, 1, 12, 0, 1),
    )

    assert "=== Script execution started [2024-05-01 12:00:00] ===" in block
    assert "[STDOUT] a\n[STDOUT] b" in block
    assert "[STDERR] bad" in block
    assert "Result: failed (exit code: 3, duration: 0.25s)" in block
    assert "=== Script execution finished [2024-05-01 12:00:01] ===" in block


def test_append_read_and_clear(recorder):
    assert recorder.read_script_log("s1") == ""
    assert recorder.clear_script_log("s1") is False

    recorder.record_run("s1", make_result())
    recorder.record_run("s1", make_result(output="second\n"))

    text = recorder.read_script_log("s1")
    assert text.count("Script execution started") == 2
    assert text.index("[STDOUT] hello") < text.index("[STDOUT] second")

    assert recorder.clear_script_log("s1") is True
    assert recorder.read_script_log("s1") == ""


def test_logs_are_per_script(recorder):
    recorder.record_run("s1", make_result(output="one\n"))
    recorder.record_run("s2", make_result(output="two\n"))

    assert "two" not in recorder.read_script_log("s1")
    assert "one" not in recorder.read_script_log("s2")


def test_log_is_capped_keeping_newest(settings):
    recorder = LogRecorder(max_bytes=2048)
    for i in range(100):
        recorder.append_script_log("s1", f"line {i:04d} " + "x" * 40 + "\n")

    text = recorder.read_script_log("s1")
    assert len(text.encode()) <= 2048
    assert text.startswith("line ")
    assert text.rstrip().endswith("x")
    assert "line 0099" in text
    assert "line 0000" not in text


def test_delete_script_log(recorder):
    recorder.record_run("s1", make_result())
    recorder.delete_script_log("s1")
    assert recorder.read_script_log("s1") == ""


def test_record_webhook_call(recorder, db):
    call = WebhookCall(
        script_id="s1",
        method="POST",
        status=200,
        response_time=42,
        headers={"content-type": "application/json"},
        body='{"a": 1}',
        source_ip="10.0.0.1",
        user_agent="curl/8.0",
    )
    log_id = recorder.record_webhook_call(call)

    entry = db.query(WebhookLog).filter(WebhookLog.id == log_id).one()
    assert entry.status == 200
    assert entry.response_time == 42
    assert entry.trigger_source == "webhook"
    assert entry.body == '{"a": 1}'
    assert '"content-type"' in entry.headers


def test_webhook_body_is_truncated(settings, db):
    recorder = LogRecorder(max_body_bytes=16)
    log_id = recorder.record_webhook_call(
        WebhookCall(script_id="s1", method="POST", status=200, response_time=1, body="z" * 100)
    )
    assert db.get(WebhookLog, log_id).body == "z" * 16


def test_list_filters_and_pagination(recorder, db, make_script):
    script = make_script(name="deploy")
    for status in (200, 200, 401, 500):
        recorder.record_webhook_call(
            WebhookCall(script_id=script.id, method="POST", status=status, response_time=status)
        )
    recorder.record_webhook_call(
        WebhookCall(script_id="gone", method="POST", status=404, response_time=1)
    )

    rows, total, page, page_size = recorder.list_webhook_logs(db, script_id=script.id)
    assert total == 4
    assert all(name == "deploy" for _, name in rows)

    _, total, _, _ = recorder.list_webhook_logs(db, status=400)
    assert total == 2

    _, total, _, _ = recorder.list_webhook_logs(db, status=500)
    assert total == 1

    rows, total, page, page_size = recorder.list_webhook_logs(db, page=2, page_size=2)
    assert total == 5
    assert len(rows) == 2
    assert (page, page_size) == (2, 2)

    rows, _, _, _ = recorder.list_webhook_logs(db, sort_field="response_time", sort_order="asc")
    assert [log.response_time for log, _ in rows] == [1, 200, 200, 401, 500]

    # Calls for unknown scripts have no name
    rows, _, _, _ = recorder.list_webhook_logs(db, script_id="gone")
    assert rows[0][1] is None


def test_stats_and_clear(recorder, db):
    for status, ms in ((200, 10), (200, 30), (500, 50)):
        recorder.record_webhook_call(WebhookCall(script_id="s1", method="POST", status=status, response_time=ms))
    recorder.record_webhook_call(WebhookCall(script_id="s2", method="POST", status=200, response_time=5))

    stats = recorder.webhook_stats(db, "s1")
    assert stats["total_calls"] == 3
    assert stats["success_calls"] == 2
    assert stats["failed_calls"] == 1
    assert stats["success_rate"] == pytest.approx(200 / 3)
    assert stats["avg_response_time"] == pytest.approx(30.0)
    assert stats["today_calls"] == 3
    assert stats["last_call_time"] is not None

    assert recorder.clear_webhook_logs(db, "s1") == 3
    assert recorder.webhook_stats(db, "s1")["total_calls"] == 0
    assert recorder.webhook_stats(db)["total_calls"] == 1


def test_stats_with_no_calls(recorder, db):
    stats = recorder.webhook_stats(db, "nothing")
    assert stats["total_calls"] == 0
    assert stats["success_rate"] == 0.0
    assert stats["last_call_time"] is None


def test_purge_drops_only_old_rows(recorder, db):
    db.add(WebhookLog(script_id="s1", method="POST", status=200, response_time=1,
                      created_at=utcnow() - timedelta(days=40)))
    db.add(WebhookLog(script_id="s1", method="POST", status=200, response_time=1))
    db.commit()

    assert recorder.purge_webhook_logs(30) == 1
    db.expire_all()
    assert db.query(WebhookLog).count() == 1
