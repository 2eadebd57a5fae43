"""
Unit tests for Connection, driven through a scripted in-memory transport.
"""

import socket
import threading

import pytest

from openmlhttp import (
    API_KEY_PARAM,
    ConnectError,
    Connection,
    ConnectionConfig,
    FileField,
    ParameterError,
    ProtocolError,
    ResponseParseError,
    TransportTimeout,
)

from conftest import ScriptedTransport, http_response


def request_line(raw: bytes) -> str:
    return raw.split(b"\r\n", 1)[0].decode()


class TestConnectionBasics:
    """Tests for construction and simple exchanges."""

    def test_default_target_is_production(self, transport):
        conn = Connection(transport=transport)
        assert (conn.host, conn.port, conn.prefix) == ("www.openml.org", 443, "/api/v1/json")

    def test_explicit_target(self, transport):
        conn = Connection("localhost", 8443, "/api", transport=transport)
        assert (conn.host, conn.port, conn.prefix) == ("localhost", 8443, "/api")

    def test_invalid_port_rejected(self, transport):
        with pytest.raises(ValueError):
            Connection("localhost", 70000, transport=transport)

    def test_get_returns_json(self, connection, transport):
        transport.responses.append(http_response(200, b'{"data": {"dataset": []}}'))

        result = connection.get("/data/list", [("limit", "5")])

        assert result == {"data": {"dataset": []}}
        assert transport.connects == [("www.openml.org", 443)]
        assert request_line(transport.writes[0]) == (
            "GET /api/v1/json/data/list?limit=5 HTTP/1.1"
        )

    @pytest.mark.parametrize("chunk_size", [None, 1])
    def test_content_length_body_regardless_of_read_sizes(self, config, chunk_size):
        transport = ScriptedTransport([http_response(200, b"[1,2]")], chunk_size=chunk_size)
        conn = Connection(config=config, transport=transport)

        assert conn.get("/x") == [1, 2]
        assert conn.is_connected

    def test_post_form(self, connection, transport):
        transport.responses.append(http_response(200, b'{"data_tag": {"id": "61"}}'))

        connection.post("/data/tag", [("data_id", "61"), ("tag", "study_1")])

        raw = transport.writes[0]
        assert request_line(raw) == "POST /api/v1/json/data/tag HTTP/1.1"
        assert b"Content-Type: application/x-www-form-urlencoded\r\n" in raw
        assert raw.endswith(b"\r\n\r\ndata_id=61&tag=study_1")

    def test_post_multipart(self, connection, transport):
        transport.responses.append(http_response(200, b'{"upload_run": {"run_id": "1"}}'))

        connection.post("/run", [
            ("task_id", "59"),
            ("predictions|text/plain|predictions.arff", "@relation p"),
        ])

        raw = transport.writes[0]
        assert b"Content-Type: multipart/form-data; boundary=" in raw
        assert b'name="predictions"; filename="predictions.arff"' in raw
        assert raw.index(b'name="task_id"') < raw.index(b'name="predictions"')

    def test_delete_and_alias(self, connection, transport):
        transport.responses += [http_response(200, b"{}"), http_response(200, b"{}")]

        connection.delete("/data/61")
        connection.del_("/data/62")

        assert request_line(transport.writes[0]) == "DELETE /api/v1/json/data/61 HTTP/1.1"
        assert request_line(transport.writes[1]) == "DELETE /api/v1/json/data/62 HTTP/1.1"

    def test_connection_reused(self, connection, transport):
        transport.responses += [http_response(200, b"1"), http_response(200, b"2")]

        assert connection.get("/a") == 1
        assert connection.get("/b") == 2
        assert len(transport.connects) == 1
        assert connection.exchanges == 2

    def test_empty_success_body_is_none(self, connection, transport):
        transport.responses.append(http_response(204, b"", reason="No Content", headers=()))
        assert connection.get("/x") is None


class TestAPIKey:
    """Tests for API key handling."""

    def test_key_appended_to_query(self, connection, transport):
        transport.responses.append(http_response(200, b"{}"))
        connection.key = "abc123"

        connection.get("/task/59", [("a", "1")])

        assert request_line(transport.writes[0]) == (
            f"GET /api/v1/json/task/59?a=1&{API_KEY_PARAM}=abc123 HTTP/1.1"
        )

    def test_key_is_last_multipart_part(self, connection, transport):
        transport.responses.append(http_response(200, b"{}"))
        connection.set_key("abc123")

        connection.post("/run", [("f|text/plain", "x")])

        raw = transport.writes[0]
        assert raw.index(b'name="f"') < raw.index(b'name="api_key"')
        assert b"abc123" in raw

    def test_no_key_no_param(self, connection, transport):
        transport.responses.append(http_response(200, b"{}"))
        connection.get("/x")
        assert b"api_key" not in transport.writes[0]

    def test_key_from_config(self, transport):
        transport.responses.append(http_response(200, b"{}"))
        conn = Connection(config=ConnectionConfig(api_key="cfgkey"), transport=transport)

        conn.get("/x")

        assert conn.key == "cfgkey"
        assert b"api_key=cfgkey" in transport.writes[0]

    def test_key_never_logged(self, connection, transport, caplog):
        transport.responses.append(http_response(200, b"{}"))
        connection.key = "secretkey"

        with caplog.at_level("DEBUG", logger="openmlhttp"):
            connection.get("/task/59", [("a", "1")])

        assert caplog.records
        assert "secretkey" not in caplog.text


class TestLogicalFailures:
    """Non-2xx replies are returned as the status code."""

    def test_404_returns_status_number(self, connection, transport):
        transport.responses.append(http_response(404, b"{}", reason="Not Found"))

        result = connection.get("/data/999999")

        assert result == 404
        assert isinstance(result, int)

    def test_error_body_not_parsed(self, connection, transport):
        transport.responses.append(
            http_response(500, b"<html>Internal Error</html>", reason="Internal Server Error")
        )
        assert connection.post("/x") == 500

    def test_logical_failure_keeps_connection(self, connection, transport):
        transport.responses += [http_response(412, b"{}"), http_response(200, b"{}")]

        assert connection.get("/a") == 412
        assert connection.get("/b") == {}
        assert len(transport.connects) == 1


class TestErrors:
    """Transport, protocol and parse failures are raised."""

    def test_closed_before_any_bytes(self, connection, transport):
        transport.responses.append(b"")

        with pytest.raises(ProtocolError):
            connection.get("/x")
        assert not connection.is_connected

    def test_connect_refused(self, connection, transport):
        transport.connect_error = ConnectionRefusedError("refused")

        with pytest.raises(ConnectError) as exc_info:
            connection.get("/x")
        assert exc_info.value.host == "www.openml.org"
        assert exc_info.value.port == 443
        assert transport.writes == []

    def test_connect_timeout(self, connection, transport):
        transport.connect_error = socket.timeout("timed out")
        with pytest.raises(TransportTimeout):
            connection.get("/x")

    def test_read_timeout_invalidates_transport(self, connection, transport):
        transport.responses += [socket.timeout("timed out"), http_response(200, b"{}")]

        with pytest.raises(TransportTimeout):
            connection.get("/x")
        assert not connection.is_connected

        assert connection.get("/x") == {}
        assert len(transport.connects) == 2

    def test_reset_during_read(self, connection, transport):
        transport.responses.append(ConnectionResetError("reset by peer"))
        with pytest.raises(ConnectError):
            connection.get("/x")
        assert not connection.is_connected

    def test_truncated_body(self, connection, transport):
        transport.responses.append(http_response(200, b'{"a": 1}')[:-3])

        with pytest.raises(ProtocolError):
            connection.get("/x")
        assert not connection.is_connected

    def test_garbage_status_line(self, connection, transport):
        transport.responses.append(b"SSH-2.0-OpenSSH_8.9\r\n\r\n")
        with pytest.raises(ProtocolError):
            connection.get("/x")

    def test_invalid_json_is_parse_error(self, connection, transport):
        transport.responses.append(http_response(200, b"<oml:error/>"))

        with pytest.raises(ResponseParseError) as exc_info:
            connection.get("/x")

        assert exc_info.value.status == 200
        assert not isinstance(exc_info.value, ProtocolError)
        assert not connection.is_connected

    def test_reconnects_after_invalid_json(self, connection, transport):
        transport.responses += [http_response(200, b"<oml:error/>"), http_response(200, b"{}")]

        with pytest.raises(ResponseParseError):
            connection.get("/x")

        assert connection.get("/x") == {}
        assert len(transport.connects) == 2

    def test_malformed_marker_never_touches_network(self, connection, transport):
        with pytest.raises(ParameterError):
            connection.post("/data", [("file|text/plain|", "content")])

        assert transport.connects == []
        assert transport.writes == []

    def test_file_in_get_is_parameter_error(self, connection, transport):
        with pytest.raises(ParameterError):
            connection.get("/data", [("file|text/plain", "content")])
        assert transport.writes == []

    def test_unsafe_filename_never_sent(self, connection, transport):
        field = FileField("f", "x", "text/plain", 'a.txt"\r\nX-Injected: 1')

        with pytest.raises(ParameterError):
            connection.post("/run", [field])

        assert transport.writes == []

    def test_response_timeout(self, transport):
        config = ConnectionConfig(response_timeout=0.05)
        transport.read_delay = 0.02
        transport.chunk_size = 1
        transport.responses.append(http_response(200, b"{}"))
        conn = Connection(config=config, transport=transport)

        with pytest.raises(TransportTimeout):
            conn.get("/x")
        assert not conn.is_connected


class TestConnectionLifecycle:
    """Tests for reconnection and closing."""

    def test_connection_close_header(self, connection, transport):
        transport.responses += [
            http_response(200, b"{}", headers=(("Connection", "close"),)),
            http_response(200, b"{}"),
        ]

        connection.get("/a")
        assert not connection.is_connected

        connection.get("/b")
        assert len(transport.connects) == 2

    def test_close_delimited_response(self, connection, transport):
        transport.responses.append(http_response(200, b'{"ok": true}', content_length=False))

        assert connection.get("/x") == {"ok": True}
        assert not connection.is_connected

    def test_chunked_response(self, connection, transport):
        transport.responses.append(
            b"HTTP/1.1 200 OK\r\nTransfer-Encoding: chunked\r\n\r\n"
            b"6\r\n{\"a\": \r\n2\r\n1}\r\n0\r\n\r\n"
        )
        assert connection.get("/x") == {"a": 1}
        assert connection.is_connected

    def test_trailing_bytes_drop_connection(self, connection, transport):
        transport.responses.append(http_response(200, b"{}") + b"junk")

        assert connection.get("/x") == {}
        assert not connection.is_connected

    def test_idle_connection_reopened(self, transport):
        transport.responses += [http_response(200, b"{}"), http_response(200, b"{}")]
        conn = Connection(config=ConnectionConfig(keep_alive_timeout=0.0), transport=transport)

        conn.get("/a")
        conn.get("/b")

        assert len(transport.connects) == 2

    def test_close_and_context_manager(self, config, transport):
        transport.responses.append(http_response(200, b"{}"))

        with Connection(config=config, transport=transport) as conn:
            conn.get("/x")
            assert conn.is_connected

        assert not conn.is_connected


class TestTestMode:
    """Tests for switching to the test server."""

    def test_before_connecting(self, connection, transport):
        transport.responses.append(http_response(200, b"{}"))

        connection.enable_test_mode()
        connection.get("/task/1")

        assert transport.connects == [("test.openml.org", 443)]
        assert b"Host: test.openml.org\r\n" in transport.writes[0]
        assert request_line(transport.writes[0]) == "GET /api/v1/json/task/1 HTTP/1.1"

    def test_after_connecting_forces_reconnect(self, connection, transport):
        transport.responses += [http_response(200, b"{}"), http_response(200, b"{}")]

        connection.get("/task/1")
        assert connection.is_connected

        connection.enable_test_mode()
        assert not connection.is_connected

        connection.get("/task/1")
        assert transport.connects == [("www.openml.org", 443), ("test.openml.org", 443)]

    def test_set_target(self, connection, transport):
        transport.responses.append(http_response(200, b"{}"))

        connection.set_target("localhost", 8443, "")
        connection.get("/x")

        assert transport.connects == [("localhost", 8443)]
        assert b"Host: localhost:8443\r\n" in transport.writes[0]

    @pytest.mark.parametrize("host, port, prefix", [
        ("", 443, ""),
        ("localhost", 0, ""),
        ("localhost", 443, "api/v1"),
    ])
    def test_set_target_rejects_invalid(self, connection, host, port, prefix):
        with pytest.raises(ValueError):
            connection.set_target(host, port, prefix)
        assert (connection.host, connection.port, connection.prefix) == (
            "www.openml.org", 443, "/api/v1/json"
        )


class TestConcurrency:
    """Concurrent callers share the connection without interleaving."""

    def test_requests_never_interleave(self, config):
        response = http_response(200, b'{"n": 1}')
        transport = ScriptedTransport([response] * 6, chunk_size=8, read_delay=0.002)
        conn = Connection(config=config, transport=transport)

        barrier = threading.Barrier(3)
        results = []
        errors = []

        def worker(name):
            barrier.wait()
            try:
                for _ in range(2):
                    results.append(conn.get(f"/{name}"))
            except Exception as e:  # collected for the assertion below
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(n,)) for n in "abc"]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert errors == []
        assert results == [{"n": 1}] * 6

        # Each write is one whole request, followed by all reads of its reply
        reads_per_response = -(-len(response) // 8)
        kinds = [kind for kind, _ in transport.events]
        assert kinds == (["write"] + ["read"] * reads_per_response) * 6

        for raw in transport.writes:
            assert raw.count(b" HTTP/1.1\r\n") == 1
            assert raw.endswith(b"\r\n\r\n")

    def test_key_change_waits_for_exchange(self, config):
        """Mutating the key while an exchange runs takes effect on the next call."""
        transport = ScriptedTransport(
            [http_response(200, b"{}")] * 2, chunk_size=4, read_delay=0.005
        )
        conn = Connection(config=config, transport=transport)

        first = threading.Thread(target=conn.get, args=("/a",))
        first.start()
        while not transport.writes:
            pass
        conn.key = "late"
        first.join(timeout=10)

        conn.get("/b")

        assert b"api_key" not in transport.writes[0]
        assert b"api_key=late" in transport.writes[1]

    def test_access_log_names_host_of_exchange(self, config, caplog):
        """A target switch queued behind an exchange does not leak into its log line."""
        transport = ScriptedTransport([http_response(200, b"{}")], chunk_size=4, read_delay=0.005)
        conn = Connection(config=config, transport=transport)

        with caplog.at_level("INFO", logger="openmlhttp.access"):
            first = threading.Thread(target=conn.get, args=("/task/1",))
            first.start()
            while not transport.writes:
                pass
            conn.set_target("localhost", 8443, "")
            first.join(timeout=10)

        access = [r.getMessage() for r in caplog.records if r.name == "openmlhttp.access"]
        assert len(access) == 1
        assert access[0].startswith("GET www.openml.org/api/v1/json/task/1 200 ")
        assert conn.host == "localhost"
