"""Tests del cliente de serie temporal.

Usa un doble en memoria de InfluxDBClient: las escrituras se guardan como
line protocol y las consultas devuelven FluxTables reales.

Ejecutar:
    pytest tests/test_influx_store.py -v
"""

import threading
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from influxdb_client.client.flux_table import FluxRecord, FluxTable

from homelab_ingest.core.domain.reading import MEASUREMENT
from homelab_ingest.infrastructure.persistence.influx_store import TimeSeriesStore


# =============================================================================
# DOBLES
# =============================================================================

def _parse_line(line: str) -> dict:
    """Parsea una línea de line protocol simple (sin espacios escapados)."""
    parts = line.split(" ")
    head, fields = parts[0], parts[1]
    measurement, *tag_pairs = head.split(",")
    tags = dict(pair.split("=", 1) for pair in tag_pairs)
    key, raw = fields.split("=", 1)
    return {
        "measurement": measurement,
        "tags": tags,
        "field": key,
        "value": float(raw),
        "time": int(parts[2]) if len(parts) > 2 else None,
    }


class FakeWriteApi:
    def __init__(self):
        self.lines = []
        self.calls = 0
        self.fail = False
        self.closed = False

    def write(self, bucket, org, record):
        self.calls += 1
        if self.fail:
            raise ConnectionError("influx down")
        self.lines.extend(p.to_line_protocol() for p in record)

    def close(self):
        self.closed = True


class FakeQueryApi:
    def __init__(self, write_api: FakeWriteApi):
        self._write_api = write_api
        self.queries = []
        self.fail = False

    def query(self, query, org=None):
        self.queries.append(query)
        if self.fail:
            raise ConnectionError("query failed")

        # last() por serie: el último punto escrito gana
        latest = {}
        for line in self._write_api.lines:
            point = _parse_line(line)
            if point["measurement"] != MEASUREMENT:
                continue
            if f'r.device_id == "{point["tags"]["device_id"]}"' not in query:
                continue
            latest[point["tags"]["sensor_type"]] = point

        tables = []
        for sensor_type, point in latest.items():
            table = FluxTable()
            table.records.append(
                FluxRecord(
                    table=len(tables),
                    values={
                        "_measurement": MEASUREMENT,
                        "_field": "value",
                        "_value": point["value"],
                        "device_id": point["tags"]["device_id"],
                        "sensor_type": sensor_type,
                    },
                )
            )
            tables.append(table)
        return tables


@pytest.fixture
def fake_client():
    client = MagicMock()
    write_api = FakeWriteApi()
    client.write_api.return_value = write_api
    client.query_api.return_value = FakeQueryApi(write_api)
    client.ping.return_value = True
    return client


@pytest.fixture
def store(fake_client) -> TimeSeriesStore:
    s = TimeSeriesStore(fake_client, bucket="iot_data", org="homelab", buffer_size=3)
    yield s
    s.close()


# =============================================================================
# TEST 1: ESCRITURA CON BUFFER
# =============================================================================

class TestWritePoint:
    """Las escrituras se aceptan al entrar al buffer, no al persistir."""

    def test_write_is_buffered_not_sent(self, store, fake_client):
        accepted = store.write_point(
            MEASUREMENT,
            {"device_id": "esp32-001", "sensor_type": "temperature"},
            {"value": 22.5},
        )

        assert accepted is True
        assert fake_client.write_api.return_value.calls == 0
        assert store.get_stats()["pending"] == 1

    def test_flush_sends_line_protocol_with_service_tag(self, store, fake_client):
        store.write_point(
            MEASUREMENT,
            {"device_id": "esp32-001", "sensor_type": "temperature"},
            {"value": 22.5},
        )
        store.flush()

        lines = fake_client.write_api.return_value.lines
        assert lines == [
            "sensor_readings,device_id=esp32-001,sensor_type=temperature,service=homelab-iot value=22.5"
        ]
        assert store.get_stats()["pending"] == 0
        assert store.get_stats()["total_flushed"] == 1

    def test_explicit_timestamp(self, store, fake_client):
        ts = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)
        store.write_point(
            MEASUREMENT,
            {"device_id": "esp32-001", "sensor_type": "humidity"},
            {"value": 55},
            timestamp=ts,
        )
        store.flush()

        point = _parse_line(fake_client.write_api.return_value.lines[0])
        assert point["time"] == int(ts.timestamp()) * 1_000_000_000
        assert point["value"] == 55.0

    def test_flush_drains_in_batches(self, store, fake_client):
        for i in range(6):
            store.write_point(MEASUREMENT, {"device_id": f"d{i}", "sensor_type": "humidity"}, {"value": i})

        store.flush()

        write_api = fake_client.write_api.return_value
        assert len(write_api.lines) == 6
        assert write_api.calls == 2  # lotes de 3, 3

    def test_buffer_full_drops(self, store):
        results = [
            store.write_point(MEASUREMENT, {"device_id": "d", "sensor_type": "humidity"}, {"value": i})
            for i in range(7)
        ]

        assert results == [True] * 6 + [False]
        assert store.get_stats()["total_dropped"] == 1

    def test_write_failure_loses_batch(self, store, fake_client):
        fake_client.write_api.return_value.fail = True
        store.write_point(MEASUREMENT, {"device_id": "d", "sensor_type": "humidity"}, {"value": 1})

        store.flush()  # no lanza

        stats = store.get_stats()
        assert stats["pending"] == 0
        assert stats["total_failed"] == 1
        assert stats["total_flushed"] == 0

    def test_concurrent_appends_are_all_flushed(self, fake_client):
        store = TimeSeriesStore(fake_client, bucket="b", org="o", buffer_size=1000)

        def producer(n):
            for i in range(100):
                store.write_point(MEASUREMENT, {"device_id": f"dev{n}", "sensor_type": "humidity"}, {"value": i})

        threads = [threading.Thread(target=producer, args=(n,)) for n in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        store.close()
        assert len(fake_client.write_api.return_value.lines) == 500


# =============================================================================
# TEST 2: CICLO DE VIDA
# =============================================================================

class TestLifecycle:

    def test_close_flushes_and_releases_session(self, fake_client):
        store = TimeSeriesStore(fake_client, bucket="b", org="o")
        store.start()
        store.write_point(MEASUREMENT, {"device_id": "d", "sensor_type": "humidity"}, {"value": 1})

        store.close()

        write_api = fake_client.write_api.return_value
        assert len(write_api.lines) == 1
        assert write_api.closed is True
        fake_client.close.assert_called_once()

    def test_close_is_idempotent(self, fake_client):
        store = TimeSeriesStore(fake_client, bucket="b", org="o")
        store.close()
        store.close()

        fake_client.close.assert_called_once()

    def test_write_after_close_is_rejected(self, fake_client):
        store = TimeSeriesStore(fake_client, bucket="b", org="o")
        store.close()

        assert store.write_point(MEASUREMENT, {"device_id": "d", "sensor_type": "humidity"}, {"value": 1}) is False

    def test_periodic_flush(self, fake_client):
        store = TimeSeriesStore(fake_client, bucket="b", org="o", flush_interval=0.05)
        store.start()
        store.write_point(MEASUREMENT, {"device_id": "d", "sensor_type": "humidity"}, {"value": 1})

        write_api = fake_client.write_api.return_value
        for _ in range(50):
            if write_api.lines:
                break
            threading.Event().wait(0.02)

        assert len(write_api.lines) == 1
        store.close()


# =============================================================================
# TEST 3: CONSULTA DE ÚLTIMOS VALORES
# =============================================================================

class TestQueryLatest:

    def test_round_trip(self, store):
        store.write_point(MEASUREMENT, {"device_id": "esp32-001", "sensor_type": "temperature"}, {"value": 22.5})
        store.write_point(MEASUREMENT, {"device_id": "esp32-001", "sensor_type": "humidity"}, {"value": 61.0})
        store.flush()

        assert store.query_latest("esp32-001") == {"temperature": 22.5, "humidity": 61.0}

    def test_last_write_wins(self, store):
        store.write_point(MEASUREMENT, {"device_id": "esp32-001", "sensor_type": "temperature"}, {"value": 20.0})
        store.write_point(MEASUREMENT, {"device_id": "esp32-001", "sensor_type": "temperature"}, {"value": 21.0})
        store.flush()

        assert store.query_latest("esp32-001") == {"temperature": 21.0}

    def test_unflushed_point_not_visible(self, store):
        store.write_point(MEASUREMENT, {"device_id": "esp32-001", "sensor_type": "temperature"}, {"value": 22.5})

        assert store.query_latest("esp32-001") == {}

    def test_no_readings_returns_empty(self, store):
        assert store.query_latest("unknown-device") == {}

    def test_query_shape(self, store, fake_client):
        store.query_latest("esp32-001")

        query = fake_client.query_api.return_value.queries[0]
        assert 'from(bucket: "iot_data")' in query
        assert "range(start: -24h)" in query
        assert 'r._measurement == "sensor_readings"' in query
        assert 'r.device_id == "esp32-001"' in query
        assert 'r._field == "value"' in query
        assert "last()" in query

    def test_device_id_is_escaped(self, store):
        query = store.build_latest_query('evil" or true //')

        assert 'r.device_id == "evil\\" or true //"' in query

    def test_query_error_propagates(self, store, fake_client):
        fake_client.query_api.return_value.fail = True

        with pytest.raises(ConnectionError):
            store.query_latest("esp32-001")

    def test_ping(self, store, fake_client):
        assert store.ping() is True
        fake_client.ping.side_effect = ConnectionError("down")
        assert store.ping() is False
