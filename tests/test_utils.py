from datetime import datetime, timezone

import pytest

from emailops.core.exceptions import ValidationError
from emailops.jobs.definitions import (
    parse_anomaly_payload,
    parse_benchmark_payload,
    parse_cleanup_payload,
    parse_metrics_payload,
)
from emailops.utils.date_utils import parse_datetime, to_iso
from emailops.utils.parsing import first_present, safe_ratio, to_int
from shared.utils.logging import sanitize_log_data


class TestParseDatetime:
    def test_iso_with_z(self):
        assert parse_datetime("2024-03-01T10:00:00Z") == datetime(2024, 3, 1, 10, tzinfo=timezone.utc)

    def test_naive_sql_string_is_utc(self):
        assert parse_datetime("2024-03-01 10:00:00").tzinfo == timezone.utc

    def test_seconds_and_milliseconds(self):
        assert parse_datetime(1709287200) == parse_datetime(1709287200000)

    @pytest.mark.parametrize("value", [None, "", "0000-00-00 00:00:00", "not a date", 0, True])
    def test_empty_values(self, value):
        assert parse_datetime(value) is None

    def test_to_iso(self):
        assert to_iso(datetime(2024, 3, 1, 10, 0, 0)) == "2024-03-01T10:00:00Z"


class TestParsing:
    def test_to_int(self):
        assert to_int("12") == 12
        assert to_int("12.0") == 12
        assert to_int(None, default=3) == 3
        assert to_int("n/a") == 0

    def test_safe_ratio(self):
        assert safe_ratio(5, 0) == 0.0
        assert safe_ratio(1, 4) == 0.25

    def test_first_present(self):
        assert first_present({"a": "", "b": 0}, "a", "b") == 0
        assert first_present(None, "a", default="x") == "x"


class TestPayloads:
    def test_metrics_payload_campaign_optional(self):
        assert parse_metrics_payload({"clientId": "c"}).campaign_id is None
        assert parse_metrics_payload({"clientId": "c", "campaignId": "x"}).campaign_id == "x"

    def test_benchmark_period_days(self):
        assert parse_benchmark_payload({}).days == 7
        assert parse_benchmark_payload({"period": "quarterly"}).days == 90

    def test_anomaly_client_filter(self):
        assert parse_anomaly_payload(None).client_id is None
        with pytest.raises(ValidationError):
            parse_anomaly_payload({"clientId": ""})

    def test_cleanup_defaults(self):
        payload = parse_cleanup_payload({}, default_days=7)
        assert payload.older_than_days == 7
        assert payload.only_resolved is False

    def test_non_mapping_payload(self):
        with pytest.raises(ValidationError):
            parse_metrics_payload(["clientId"])


class TestSanitizeLogData:
    def test_secrets_are_masked(self):
        sanitized = sanitize_log_data({"clientId": "c1", "apiKey": "secret", "nested": {"accessToken": "t"}})
        assert sanitized["clientId"] == "c1"
        assert sanitized["apiKey"] != "secret"
        assert sanitized["nested"]["accessToken"] != "t"
