"""Tests for visitor key derivation."""

import re

from shortlinks.services.fingerprint import _fnv1a_64, _to_base36, compute_visitor_key


class TestFNV1a:

    def test_reference_vectors(self):
        assert _fnv1a_64(b"") == 0xCBF29CE484222325
        assert _fnv1a_64(b"a") == 0xAF63DC4C8601EC8C
        assert _fnv1a_64(b"foobar") == 0x85944171F73967E8

    def test_base36(self):
        assert _to_base36(0) == "0"
        assert _to_base36(35) == "z"
        assert _to_base36(36) == "10"


class TestComputeVisitorKey:

    def test_deterministic(self):
        first = compute_visitor_key("198.51.100.4", "Mozilla/5.0", "en-US")
        second = compute_visitor_key("198.51.100.4", "Mozilla/5.0", "en-US")
        assert first == second

    def test_stable_value(self):
        """No per-process salt: the key is a fixed function of the inputs."""
        assert compute_visitor_key("", "", "") == _to_base36(_fnv1a_64(b"||"))

    def test_short_printable_key(self):
        key = compute_visitor_key("2001:db8::1", "Mozilla/5.0 (X11; Linux x86_64)", "de-DE,de;q=0.9")
        assert re.fullmatch(r"[0-9a-z]{1,13}", key)

    def test_order_sensitive(self):
        assert compute_visitor_key("a", "b", "c") != compute_visitor_key("b", "a", "c")

    def test_each_input_matters(self):
        base = compute_visitor_key("198.51.100.4", "UA", "en")
        assert compute_visitor_key("198.51.100.5", "UA", "en") != base
        assert compute_visitor_key("198.51.100.4", "UA2", "en") != base
        assert compute_visitor_key("198.51.100.4", "UA", "fr") != base

    def test_missing_inputs_never_raise(self):
        assert compute_visitor_key(None, None, None) == compute_visitor_key("", "", "")
        assert compute_visitor_key(None, "UA", None)
