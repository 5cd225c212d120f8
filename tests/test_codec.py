"""
Tests for codec selection and serialization.
"""

from __future__ import annotations

from datetime import datetime

import pytest

from shmcache import codec
from shmcache.codec import (
    CODEC_PRIORITY,
    Codec,
    JSONCodec,
    MsgpackCodec,
    PickleCodec,
    available_modes,
    decode,
    encode,
    resolve_mode,
)
from shmcache.exceptions import ConfigError, DecodeError, EncodeError, NoCodecAvailable
from shmcache.types import CodecMode


class _Unavailable(Codec):
    mode = CodecMode.MSGPACK

    def available(self) -> bool:
        return False


SAMPLE = {
    "name": "files:php",
    "count": 3,
    "ratio": 0.25,
    "ok": True,
    "missing": None,
    "items": ["a", "b", {"nested": [1, 2, 3]}],
}


class TestResolveMode:
    """Test codec mode negotiation."""

    def test_registry_order(self) -> None:
        """Test that binary formats are probed before text."""
        modes = [c.mode for c in CODEC_PRIORITY]
        assert modes == [CodecMode.MSGPACK, CodecMode.PICKLE, CodecMode.JSON]

    def test_auto_probe_picks_first_available(self) -> None:
        """Test that the first available codec in the registry wins."""
        assert resolve_mode() == available_modes()[0]

    def test_auto_probe_skips_unavailable(self) -> None:
        """Test that unavailable backends are skipped."""
        registry = (_Unavailable(), JSONCodec(), PickleCodec())
        assert resolve_mode(registry=registry) == CodecMode.JSON

    def test_no_codec_available(self) -> None:
        """Test that an empty probe is a fatal configuration error."""
        with pytest.raises(NoCodecAvailable):
            resolve_mode(registry=(_Unavailable(),))

        with pytest.raises(ConfigError):
            resolve_mode(registry=())

    def test_explicit_mode_used_verbatim(self) -> None:
        """Test that an explicit request bypasses probing."""
        assert resolve_mode("json", registry=()) == CodecMode.JSON
        assert resolve_mode(CodecMode.PICKLE, registry=()) == CodecMode.PICKLE

    def test_unknown_mode_rejected(self) -> None:
        """Test that a name outside the known modes is a ConfigError."""
        with pytest.raises(ConfigError) as exc_info:
            resolve_mode("igbinary")

        assert "igbinary" in str(exc_info.value)


class TestRoundTrip:
    """Test encode/decode per mode."""

    @pytest.mark.parametrize("mode", available_modes())
    def test_round_trip(self, mode: CodecMode) -> None:
        """Test that structured values survive every available mode."""
        assert decode(encode(SAMPLE, mode), mode) == SAMPLE

    @pytest.mark.parametrize("mode", available_modes())
    def test_encode_is_deterministic(self, mode: CodecMode) -> None:
        """Test that the same value encodes to the same bytes."""
        assert encode(SAMPLE, mode) == encode(SAMPLE, mode)

    def test_binary_modes_keep_bytes(self) -> None:
        """Test that bytes survive the binary codecs."""
        value = {"blob": b"\x00\x01\xff"}
        assert decode(encode(value, "pickle"), "pickle") == value
        if MsgpackCodec().available():
            assert decode(encode(value, "msgpack"), "msgpack") == value

    def test_default_mode_keeps_tuples(self) -> None:
        """Test that the auto-probed codec returns tuples as tuples."""
        mode = resolve_mode()
        value = {"pair": (1, 2), "nested": [(3, (4, 5)), [6]], (7, 8): "key"}
        assert decode(encode(value, mode), mode) == value

    @pytest.mark.skipif(not MsgpackCodec().available(), reason="msgpack not installed")
    def test_msgpack_keeps_tuples_and_lists_apart(self) -> None:
        """Test that tuples and lists decode to their own types."""
        out = decode(encode({"t": (1, 2), "l": [1, 2]}, "msgpack"), "msgpack")
        assert type(out["t"]) is tuple
        assert type(out["l"]) is list

    @pytest.mark.skipif(not MsgpackCodec().available(), reason="msgpack not installed")
    @pytest.mark.parametrize("value", [{1, 2}, datetime(2024, 1, 1), object()])
    def test_msgpack_rejects_unsupported_types(self, value: object) -> None:
        """Test that types outside msgpack raise EncodeError instead of degrading."""
        with pytest.raises(EncodeError):
            encode({"v": value}, "msgpack")

    def test_pickle_keeps_python_types(self) -> None:
        """Test that pickle preserves tuples and non-string keys."""
        value = {1: (2, 3), "s": {4, 5}}
        assert decode(encode(value, "pickle"), "pickle") == value

    def test_json_is_lossy_for_non_string_keys(self) -> None:
        """Test the documented JSON limitation on map keys and tuples."""
        value = {1: (2, 3)}
        assert decode(encode(value, "json"), "json") == {"1": [2, 3]}

    def test_json_is_text(self) -> None:
        """Test that JSON mode stores human-readable bytes."""
        assert encode({"a": 1}, "json") == b'{"a":1}'


class TestErrors:
    """Test encode/decode failures."""

    def test_json_rejects_bytes(self) -> None:
        """Test that bytes are not representable in JSON mode."""
        with pytest.raises(EncodeError) as exc_info:
            encode({"blob": b"\x00"}, "json")

        assert exc_info.value.context["mode"] == "json"

    def test_pickle_rejects_lambda(self) -> None:
        """Test that unpicklable values raise EncodeError."""
        with pytest.raises(EncodeError):
            encode(lambda: None, "pickle")

    @pytest.mark.parametrize("mode", available_modes())
    def test_truncated_payload(self, mode: CodecMode) -> None:
        """Test that truncated payloads raise DecodeError."""
        payload = encode(SAMPLE, mode)
        with pytest.raises(DecodeError):
            decode(payload[: len(payload) // 2], mode)

    def test_garbage_payload(self) -> None:
        """Test that garbage is never decoded to a placeholder value."""
        with pytest.raises(DecodeError):
            decode(b"\xff\xfe not json", "json")
        with pytest.raises(DecodeError):
            decode(b"", "pickle")

    def test_mode_mismatch(self) -> None:
        """Test that a payload written in one mode fails in another."""
        payload = encode(SAMPLE, "pickle")
        with pytest.raises(DecodeError):
            decode(payload, "json")

    def test_missing_backend_fails_on_use(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that an explicitly chosen but uninstalled backend fails on first use."""
        monkeypatch.setattr(codec, "msgpack", None)

        assert resolve_mode("msgpack") == CodecMode.MSGPACK
        assert CodecMode.MSGPACK not in available_modes()
        with pytest.raises(ConfigError):
            encode(SAMPLE, "msgpack")
