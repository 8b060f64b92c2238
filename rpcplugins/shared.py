"""Constants, context keys, codec registry and service argument types shared by client and server."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

__all__ = [
    "DEFAULT_RPC_PATH",
    "AUTH_KEY",
    "SERVER_ADDRESS",
    "SERVER_TIMEOUT",
    "SEND_FILE_SERVICE_NAME",
    "STREAM_SERVICE_NAME",
    "TRACE",
    "Codec",
    "CODECS",
    "register_codec",
    "ContextKey",
    "REQ_METADATA_KEY",
    "RES_METADATA_KEY",
    "FileTransferArgs",
    "FileTransferReply",
    "DownloadFileArgs",
    "StreamServiceArgs",
    "StreamServiceReply",
]

DEFAULT_RPC_PATH = "/_rpcx_"
AUTH_KEY = "__AUTH"
SERVER_ADDRESS = "__ServerAddress"
SERVER_TIMEOUT = "__ServerTimeout"
SEND_FILE_SERVICE_NAME = "_filetransfer"
STREAM_SERVICE_NAME = "_streamservice"

# Enables trace logging; meant for testing only.
TRACE = False


class Codec(Protocol):
    """Serializes values to bytes and back."""

    def encode(self, value: Any) -> bytes: ...

    def decode(self, data: bytes, value: Any) -> Any: ...


CODECS: dict[int, Codec] = {}


def register_codec(serialize_type: int, codec: Codec) -> None:
    """Register ``codec`` for ``serialize_type``, replacing any earlier one."""
    CODECS[serialize_type] = codec


@dataclass(frozen=True)
class ContextKey:
    """A context key that never collides with plain string keys."""

    name: str


REQ_METADATA_KEY = ContextKey("__req_metadata")
RES_METADATA_KEY = ContextKey("__res_metadata")


@dataclass
class FileTransferArgs:
    file_name: str = ""
    file_size: int = 0
    meta: dict[str, str] = field(default_factory=dict)


@dataclass
class FileTransferReply:
    token: bytes = b""
    addr: str = ""


@dataclass
class DownloadFileArgs:
    file_name: str = ""
    meta: dict[str, str] = field(default_factory=dict)


@dataclass
class StreamServiceArgs:
    meta: dict[str, str] = field(default_factory=dict)


@dataclass
class StreamServiceReply:
    token: bytes = b""
    addr: str = ""