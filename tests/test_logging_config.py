import json
import logging

from worldforge.utils.logging_config import CampaignAdapter, JSONFormatter, get_logger


def _record(msg="hello", **extra):
    record = logging.LogRecord("worldforge.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_single_line_json_with_extras(self):
        line = JSONFormatter().format(_record(campaign_id="c1", status="review", duration_ms=12))
        entry = json.loads(line)
        assert entry["message"] == "hello"
        assert entry["level"] == "INFO"
        assert entry["campaign_id"] == "c1"
        assert entry["status"] == "review"
        assert entry["duration_ms"] == 12
        assert "pipeline_id" not in entry
        assert "\n" not in line


class TestCampaignAdapter:

    def test_injects_campaign_and_extras(self):
        adapter = CampaignAdapter(logging.getLogger("worldforge.test"), "c1", pipeline_id="p1")
        msg, kwargs = adapter.process("scan", {"extra": {"status": "scanning"}})
        assert msg == "scan"
        assert kwargs["extra"] == {"status": "scanning", "campaign_id": "c1", "pipeline_id": "p1"}


class TestGetLogger:

    def test_namespaced(self):
        assert get_logger("scanner").name == "worldforge.scanner"
        assert get_logger("worldforge.minter").name == "worldforge.minter"
