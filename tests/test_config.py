"""
Tests for command line configuration.
"""

import pytest

from kvrest.config import DEFAULT_SERVE_ADDRESS, ListenAddress, parse_address, parse_args


class TestParseAddress:
    def test_host_port(self):
        address = parse_address("10.0.0.1:8080")
        assert address == ListenAddress(host="10.0.0.1", port=8080)
        assert not address.is_unix
        assert str(address) == "10.0.0.1:8080"

    def test_empty_host_listens_everywhere(self):
        assert parse_address(":7000") == ListenAddress(host="0.0.0.0", port=7000)

    def test_unix_socket(self):
        address = parse_address("/tmp/kvrest.sock")
        assert address.is_unix
        assert address.unix_path == "/tmp/kvrest.sock"
        assert str(address) == "/tmp/kvrest.sock"

    @pytest.mark.parametrize("value", ["", "localhost", "host:", "host:http", "host:70000"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_address(value)


class TestParseArgs:
    def test_defaults(self):
        config = parse_args(["/var/db"])
        assert config.db_path == "/var/db"
        assert config.addresses == [parse_address(DEFAULT_SERVE_ADDRESS)]
        assert config.prefix == ""
        assert config.fsync_interval_ms == 0

    def test_repeated_serve_addresses(self):
        config = parse_args(["db", "-s", "127.0.0.1:9000", "--serveaddr", "./kv.sock"])
        assert [str(a) for a in config.addresses] == ["127.0.0.1:9000", "./kv.sock"]

    @pytest.mark.parametrize(
        "prefix, expected",
        [("/api", "/api"), ("api/", "/api"), ("/", ""), ("/v1/kv", "/v1/kv")],
    )
    def test_prefix_normalized(self, prefix, expected):
        assert parse_args(["db", "--prefix", prefix]).prefix == expected

    def test_fsync_interval(self):
        assert parse_args(["db", "--fsync-interval-ms", "250"]).fsync_interval_ms == 250

    @pytest.mark.parametrize(
        "argv",
        [[], ["db", "-s", "nope"], ["db", "--fsync-interval-ms", "20000"]],
    )
    def test_invalid_arguments_exit(self, argv):
        with pytest.raises(SystemExit):
            parse_args(argv)
