"""A plugin that copies everything clients send to a writer."""

from __future__ import annotations

from typing import Any

__all__ = ["TeeConn", "TeeConnPlugin"]


class TeeConn:
    """Wraps a connection and copies every chunk read from it to ``writer``.

    Errors from the writer are ignored; everything else is delegated to the
    wrapped connection.
    """

    def __init__(self, conn: Any, writer: Any = None) -> None:
        self.conn = conn
        self.writer = writer

    def _copy(self, data: bytes) -> None:
        if data and self.writer is not None:
            try:
                self.writer.write(data)
            except (OSError, ValueError):
                pass

    def recv(self, bufsize: int, *args: Any) -> bytes:
        data = self.conn.recv(bufsize, *args)
        self._copy(data)
        return data

    def read(self, size: int = -1) -> bytes:
        data = self.conn.read(size)
        self._copy(data)
        return data

    def __getattr__(self, name: str) -> Any:
        return getattr(self.conn, name)


class TeeConnPlugin:
    """Wraps accepted connections so that their input is copied to a writer."""

    def __init__(self, writer: Any = None) -> None:
        self.writer = writer

    def update(self, writer: Any) -> None:
        """Set the writer for later connections; None stops copying."""
        self.writer = writer

    def handle_conn_accept(self, conn: Any) -> tuple[TeeConn, bool]:
        return TeeConn(conn, self.writer), True