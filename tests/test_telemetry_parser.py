# tests/test_telemetry_parser.py
"""Unit tests for the telemetry payload parser."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from datetime import datetime
from cafeteria_analytics.exceptions import MalformedPayload
from cafeteria_analytics.services.telemetry_parser import parse_telemetry, parse_timestamp


class TestPayloadDecoding:
    def test_plain_field_names(self):
        raw = parse_telemetry(b'{"deviceId": "C-01", "occupancy": 12, "avg_dwell": 300, "incount": 410}')
        assert raw.device_id == "C-01"
        assert raw.metrics["occupancy"] == 12
        assert raw.metrics["avg_dwell"] == 300
        assert raw.metrics["incount"] == 410

    def test_prefixed_field_names(self):
        raw = parse_telemetry('{"healthy_station_occupancy": 7, "two_good_estimate_wait_time": 540}')
        assert raw.metrics["occupancy"] == 7
        assert raw.metrics["estimate_wait_time"] == 540

    def test_base_name_wins_over_prefix(self):
        raw = parse_telemetry(b'{"occupancy": 3, "mini_meals_occupancy": 9}')
        assert raw.metrics["occupancy"] == 3

    def test_missing_fields_are_none(self):
        raw = parse_telemetry(b'{"cafeteriaCode": "srr-4a"}')
        assert raw.cafeteria_code == "srr-4a"
        assert raw.device_id is None
        assert all(v is None for v in raw.metrics.values())

    def test_numeric_device_id_becomes_string(self):
        raw = parse_telemetry(b'{"deviceId": 42}')
        assert raw.device_id == "42"

    def test_invalid_json_rejected(self):
        with pytest.raises(MalformedPayload):
            parse_telemetry(b"occupancy=12")

    def test_non_object_json_rejected(self):
        with pytest.raises(MalformedPayload):
            parse_telemetry(b"[1, 2, 3]")

    def test_empty_payload_rejected(self):
        with pytest.raises(MalformedPayload):
            parse_telemetry(b"   ")


class TestTimestamps:
    def test_iso_timestamp(self):
        raw = parse_telemetry(b'{"timestamp": "2024-01-17T14:30:00"}')
        assert raw.timestamp == datetime(2024, 1, 17, 14, 30)
        assert raw.timestamp_from_payload is True

    def test_space_separated_timestamp(self):
        assert parse_timestamp("2024-01-17 14:30:00") == datetime(2024, 1, 17, 14, 30)

    def test_aware_timestamp_converted_to_local(self):
        # 09:00 UTC is 14:30 in Asia/Kolkata
        assert parse_timestamp("2024-01-17T09:00:00Z") == datetime(2024, 1, 17, 14, 30)

    def test_bad_timestamp_falls_back_to_now(self):
        raw = parse_telemetry(b'{"timestamp": "yesterday"}')
        assert raw.timestamp_from_payload is False
        assert isinstance(raw.timestamp, datetime)
        assert raw.timestamp.tzinfo is None

    def test_missing_timestamp_falls_back_to_now(self):
        raw = parse_telemetry(b'{"occupancy": 1}')
        assert raw.timestamp_from_payload is False
