"""
Serialization codecs for cached values.

Each handle stores values in exactly one CodecMode. Codecs are held in a
static, ordered registry; when no mode is requested the first available
codec wins:

1. msgpack - compact binary
2. pickle  - Python-native binary, any picklable object
3. json    - human-readable text via orjson

msgpack mode carries tuples as an extension type, so they come back as
tuples. It only knows the msgpack base types: sets, datetimes and custom
objects raise EncodeError, and subclasses of the base types (str enums,
OrderedDict) are rejected too.

JSON mode is lossy: non-string map keys are stringified, tuples come back
as lists, NaN/Infinity become null, and bytes are rejected with EncodeError.

Pickle mode trusts the backing file. Decoding a pickle runs arbitrary code,
and a freshly initialized file is writable by every local user, so only use
it where every user sharing the file is trusted.
"""

from __future__ import annotations

import pickle
from typing import Any, Iterable

import orjson

from shmcache.exceptions import ConfigError, DecodeError, EncodeError, NoCodecAvailable
from shmcache.types import CodecMode

try:
    import msgpack
except ImportError:  # probed, not required at import time
    msgpack = None

PICKLE_PROTOCOL = 5

_ENCODE_ERRORS = (TypeError, ValueError, OverflowError, AttributeError, pickle.PicklingError)


class Codec:
    """One serialization backend."""

    mode: CodecMode

    def available(self) -> bool:
        return True

    def _encode(self, value: Any) -> bytes:
        raise NotImplementedError

    def _decode(self, payload: bytes) -> Any:
        raise NotImplementedError

    def _require(self) -> None:
        if not self.available():
            raise ConfigError(
                "Codec backend is not installed",
                context={"mode": self.mode.value},
            )

    def encode(self, value: Any) -> bytes:
        """Serialize `value`, raising EncodeError if it is not representable."""
        self._require()
        try:
            return self._encode(value)
        except _ENCODE_ERRORS as e:
            raise EncodeError(
                f"Cannot encode value: {e}",
                context={"mode": self.mode.value, "type": type(value).__name__},
            ) from e

    def decode(self, payload: bytes) -> Any:
        """Deserialize `payload`, raising DecodeError on malformed input."""
        self._require()
        try:
            return self._decode(bytes(payload))
        except Exception as e:
            raise DecodeError(
                f"Cannot decode payload: {e}",
                context={"mode": self.mode.value, "size": len(payload)},
            ) from e

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(available={self.available()})"


MSGPACK_TUPLE_EXT = 1


class MsgpackCodec(Codec):
    """msgpack with tuples kept distinct from lists.

    strict_types stops msgpack from folding tuples into arrays; they reach
    _pack_ext instead and travel as extension type MSGPACK_TUPLE_EXT.
    """

    mode = CodecMode.MSGPACK

    def available(self) -> bool:
        return msgpack is not None

    def _pack_ext(self, obj: Any) -> Any:
        if type(obj) is tuple:
            return msgpack.ExtType(MSGPACK_TUPLE_EXT, self._encode(list(obj)))
        raise TypeError(f"msgpack cannot serialize {type(obj).__name__}")

    def _unpack_ext(self, code: int, data: bytes) -> Any:
        if code == MSGPACK_TUPLE_EXT:
            return tuple(self._decode(data))
        raise ValueError(f"Unknown msgpack extension type {code}")

    def _encode(self, value: Any) -> bytes:
        return msgpack.packb(
            value,
            default=self._pack_ext,
            use_bin_type=True,
            strict_types=True,
        )

    def _decode(self, payload: bytes) -> Any:
        return msgpack.unpackb(
            payload,
            ext_hook=self._unpack_ext,
            raw=False,
            strict_map_key=False,
        )


class PickleCodec(Codec):
    """Standard library pickle.

    Never decode a pickle from a file that untrusted users can write:
    pickle.loads runs whatever the payload tells it to.
    """

    mode = CodecMode.PICKLE

    def _encode(self, value: Any) -> bytes:
        return pickle.dumps(value, protocol=PICKLE_PROTOCOL)

    def _decode(self, payload: bytes) -> Any:
        return pickle.loads(payload)


class JSONCodec(Codec):
    mode = CodecMode.JSON

    def _encode(self, value: Any) -> bytes:
        return orjson.dumps(value, option=orjson.OPT_NON_STR_KEYS)

    def _decode(self, payload: bytes) -> Any:
        return orjson.loads(payload)


CODEC_PRIORITY: tuple[Codec, ...] = (MsgpackCodec(), PickleCodec(), JSONCodec())

_CODECS: dict[CodecMode, Codec] = {codec.mode: codec for codec in CODEC_PRIORITY}


def parse_mode(requested: CodecMode | str) -> CodecMode:
    """Convert a mode name into a CodecMode, raising ConfigError if unknown."""
    try:
        return CodecMode(requested)
    except ValueError:
        raise ConfigError(
            f"Unknown codec mode {requested!r}",
            context={"known": [m.value for m in CodecMode]},
        ) from None


def resolve_mode(
    requested: CodecMode | str | None = None,
    registry: Iterable[Codec] = CODEC_PRIORITY,
) -> CodecMode:
    """Pick the codec mode for a handle.

    An explicit request is taken verbatim; whether its backend is installed
    is only checked on first use. Otherwise the registry is probed in order.

    Args:
        requested: Mode requested by the caller, if any.
        registry: Ordered codecs to probe.

    Returns:
        The resolved CodecMode.

    Raises:
        ConfigError: If the requested name is not a known mode.
        NoCodecAvailable: If nothing in the registry is available.
    """
    if requested:
        return parse_mode(requested)

    for codec in registry:
        if codec.available():
            return codec.mode

    raise NoCodecAvailable("No serialization formats available")


def get_codec(mode: CodecMode | str) -> Codec:
    return _CODECS[parse_mode(mode)]


def encode(value: Any, mode: CodecMode | str) -> bytes:
    """Encode `value` with the codec for `mode`."""
    return get_codec(mode).encode(value)


def decode(payload: bytes, mode: CodecMode | str) -> Any:
    """Decode `payload` with the codec for `mode`."""
    return get_codec(mode).decode(payload)


def available_modes() -> list[CodecMode]:
    """Modes whose backends can be used in this process, in probe order."""
    return [codec.mode for codec in CODEC_PRIORITY if codec.available()]
