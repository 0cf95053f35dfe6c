"""Minimal HTTP server for operator actions."""

from __future__ import annotations

import asyncio
import hmac
import json
import re
from typing import TYPE_CHECKING, Any

from loguru import logger

from reportbot.schedule.executor import ALREADY_RUNNING, SCHEDULE_NOT_FOUND

if TYPE_CHECKING:
    from reportbot.schedule.executor import ScheduleExecutor
    from reportbot.schedule.service import SchedulerService
    from reportbot.schedule.storage import JsonScheduleStore


_STATUS_TEXT = {
    200: "OK",
    400: "Bad Request",
    401: "Unauthorized",
    404: "Not Found",
    405: "Method Not Allowed",
    409: "Conflict",
    500: "Internal Server Error",
}

_RUNS_ROUTE = re.compile(r"^/schedules/([^/]+)/runs$")
_RUN_NOW_ROUTE = re.compile(r"^/schedules/([^/]+)/run$")


class AdminHttpServer:
    """Serve health, schedule listing, run history and the manual trigger."""

    def __init__(
        self,
        host: str,
        port: int,
        store: JsonScheduleStore,
        executor: ScheduleExecutor,
        scheduler: SchedulerService | None = None,
        token: str = "",
    ):
        self.host = host
        self.port = port
        self.store = store
        self.executor = executor
        self.scheduler = scheduler
        self.token = token
        self._server: asyncio.AbstractServer | None = None

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle_client, self.host, self.port)
        logger.info("Admin HTTP server listening on {}:{}", self.host, self.port)

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("Admin HTTP server stopped")

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            request_line = await reader.readline()
            if not request_line:
                return

            try:
                method, target, _ = request_line.decode("utf-8").strip().split(" ", 2)
            except ValueError:
                await self._write_response(writer, 400, {"status": "error", "message": "invalid request"})
                return

            headers: dict[str, str] = {}
            while True:
                line = await reader.readline()
                if line in (b"\r\n", b""):
                    break
                decoded = line.decode("utf-8", errors="ignore").strip()
                if ":" not in decoded:
                    continue
                name, value = decoded.split(":", 1)
                headers[name.strip().lower()] = value.strip()

            content_length = int(headers.get("content-length", "0") or "0")
            if content_length > 0:
                await reader.readexactly(content_length)

            status, payload = await self.handle_request(method, target, headers)
            await self._write_response(writer, status, payload)
        except asyncio.IncompleteReadError:
            logger.debug("Client disconnected before request body completed")
        except Exception as e:  # noqa: BLE001
            logger.exception("Unhandled admin HTTP error: {}", e)
            await self._write_response(writer, 500, {"status": "error", "message": "internal error"})
        finally:
            writer.close()
            await writer.wait_closed()

    async def handle_request(
        self,
        method: str,
        target: str,
        headers: dict[str, str],
    ) -> tuple[int, dict[str, Any]]:
        path, _, query = target.partition("?")
        path = path.rstrip("/") or "/"

        if method == "GET" and path == "/health":
            return 200, {"status": "ok"}

        if not self._authorized(headers):
            return 401, {"status": "error", "message": "invalid token"}

        if path == "/status":
            if method != "GET":
                return 405, {"status": "error", "message": "method not allowed"}
            return 200, self.scheduler.status() if self.scheduler else {"running": False}

        if path == "/schedules":
            if method != "GET":
                return 405, {"status": "error", "message": "method not allowed"}
            schedules = self.store.list_schedules()
            return 200, {"schedules": [s.model_dump(mode="json", by_alias=True) for s in schedules]}

        match = _RUNS_ROUTE.match(path)
        if match:
            if method != "GET":
                return 405, {"status": "error", "message": "method not allowed"}
            schedule_id = match.group(1)
            if self.store.get_schedule(schedule_id) is None:
                return 404, {"status": "error", "message": SCHEDULE_NOT_FOUND}
            runs = self.store.list_runs(schedule_id, limit=_parse_limit(query))
            return 200, {"runs": [r.model_dump(mode="json", by_alias=True) for r in runs]}

        match = _RUN_NOW_ROUTE.match(path)
        if match:
            if method != "POST":
                return 405, {"status": "error", "message": "method not allowed"}
            result = await self.executor.run_now(match.group(1))
            if result.message == SCHEDULE_NOT_FOUND:
                return 404, result.to_dict()
            if result.message == ALREADY_RUNNING:
                return 409, result.to_dict()
            return 200, result.to_dict()

        return 404, {"status": "error", "message": f"route not found: {path}"}

    def _authorized(self, headers: dict[str, str]) -> bool:
        if not self.token:
            return True
        auth = headers.get("authorization", "")
        if auth.startswith("Bearer ") and hmac.compare_digest(auth[7:].encode(), self.token.encode()):
            return True
        return hmac.compare_digest(headers.get("x-api-key", "").encode(), self.token.encode())

    async def _write_response(self, writer: asyncio.StreamWriter, status: int, body: dict[str, Any]) -> None:
        body_bytes = json.dumps(body, ensure_ascii=False).encode("utf-8")
        status_text = _STATUS_TEXT.get(status, "OK")
        headers = [
            f"HTTP/1.1 {status} {status_text}\r\n",
            "Content-Type: application/json; charset=utf-8\r\n",
            f"Content-Length: {len(body_bytes)}\r\n",
            "Connection: close\r\n",
            "\r\n",
        ]
        writer.writelines([h.encode("utf-8") for h in headers])
        writer.write(body_bytes)
        await writer.drain()


def _parse_limit(query: str) -> int | None:
    for part in query.split("&"):
        key, _, value = part.partition("=")
        if key == "limit" and value.isdigit():
            return int(value)
    return None
