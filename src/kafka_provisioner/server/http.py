"""Minimal async HTTP/1.1 front end for the provisioner.

Built on ``asyncio.start_server``; each connection carries exactly one
request and is closed after the response.  The handler does blocking broker
calls, so it runs in the loop's default executor and connections are served
concurrently.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from http import HTTPStatus
from urllib.parse import urlsplit

import structlog

from kafka_provisioner.provisioning.handler import ProvisionerHandler, ProvisionResponse

logger = structlog.get_logger()

_MAX_HEADER_LINES = 100


class BadRequest(Exception):
    """Raised when the request head cannot be parsed."""


class ProvisionerServer:
    """Async TCP server that hands each HTTP request to a ProvisionerHandler.

    Parameters
    ----------
    handler:
        Request handler; must be safe to call from several threads at once.
    host, port:
        Listen address.  Port ``0`` picks a free port (see :attr:`port`).
    read_timeout:
        Seconds allowed for the client to send the request head.
    """

    def __init__(
        self,
        handler: ProvisionerHandler,
        host: str = "0.0.0.0",  # noqa: S104
        port: int = 8080,
        read_timeout: float = 5.0,
    ) -> None:
        self._handler = handler
        self._host = host
        self._port = port
        self._read_timeout = read_timeout
        self._server: asyncio.Server | None = None

    @property
    def port(self) -> int:
        if self._server is not None and self._server.sockets:
            return int(self._server.sockets[0].getsockname()[1])
        return self._port

    async def start(self) -> None:
        self._server = await asyncio.start_server(
            self._handle, host=self._host, port=self._port
        )
        logger.info("server.started", host=self._host, port=self.port)

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
            logger.info("server.stopped")

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        assert self._server is not None
        try:
            await self._server.serve_forever()
        finally:
            await self.stop()

    async def _handle(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        try:
            method, target = await asyncio.wait_for(
                self._read_request(reader), timeout=self._read_timeout
            )
            path = urlsplit(target).path or "/"
            loop = asyncio.get_running_loop()
            response = await loop.run_in_executor(
                None, self._handler.handle, method, path
            )
            logger.debug(
                "server.request", method=method, path=path, status=response.status
            )
            await self._respond(writer, response)
        except BadRequest as exc:
            logger.info("server.bad_request", error=str(exc))
            with suppress(Exception):
                await self._respond(
                    writer, ProvisionResponse.text(HTTPStatus.BAD_REQUEST, str(exc))
                )
        except (TimeoutError, asyncio.IncompleteReadError, ConnectionError):
            logger.debug("server.connection_dropped", exc_info=True)
        except Exception:
            logger.exception("server.request_error")
            with suppress(Exception):
                await self._respond(
                    writer,
                    ProvisionResponse.text(
                        HTTPStatus.INTERNAL_SERVER_ERROR, "internal server error"
                    ),
                )
        finally:
            try:
                writer.close()
                await writer.wait_closed()
            except Exception:
                pass

    @staticmethod
    async def _read_request(reader: asyncio.StreamReader) -> tuple[str, str]:
        """Read the request head, drain any body and return ``(method, target)``."""
        request_line = await reader.readline()
        if not request_line:
            raise asyncio.IncompleteReadError(b"", None)
        method, target = ProvisionerServer._parse_request_line(request_line)

        content_length = 0
        for _ in range(_MAX_HEADER_LINES):
            line = await reader.readline()
            if line in (b"\r\n", b"\n", b""):
                break
            name, _, value = line.decode("latin-1").partition(":")
            if name.strip().lower() == "content-length":
                try:
                    content_length = int(value.strip())
                except ValueError as exc:
                    msg = f"invalid Content-Length: {value.strip()!r}"
                    raise BadRequest(msg) from exc
        else:
            msg = "too many header lines"
            raise BadRequest(msg)

        if content_length > 0:
            await reader.readexactly(content_length)
        return method, target

    @staticmethod
    def _parse_request_line(request_line: bytes) -> tuple[str, str]:
        parts = request_line.decode("utf-8", errors="replace").strip().split()
        if len(parts) != 3 or not parts[2].startswith("HTTP/"):
            msg = "malformed request line"
            raise BadRequest(msg)
        return parts[0], parts[1]

    @staticmethod
    async def _respond(writer: asyncio.StreamWriter, response: ProvisionResponse) -> None:
        status = HTTPStatus(response.status)
        header = f"HTTP/1.1 {status.value} {status.phrase}\r\n"
        if response.content_type:
            header += f"Content-Type: {response.content_type}\r\n"
        header += (
            f"Content-Length: {len(response.body)}\r\n"
            f"Connection: close\r\n"
            f"\r\n"
        )
        writer.write(header.encode() + response.body)
        await writer.drain()
