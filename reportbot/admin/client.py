"""Client for the admin HTTP server of a running ``reportbot serve``."""

import httpx
from loguru import logger

from reportbot.config.schema import AdminConfig
from reportbot.schedule.executor import RunNowResult


def admin_base_url(config: AdminConfig) -> str:
    host = "127.0.0.1" if config.host in ("0.0.0.0", "") else config.host
    return f"http://{host}:{config.port}"


async def request_run_now(
    config: AdminConfig,
    schedule_id: str,
    transport: httpx.AsyncBaseTransport | None = None,
    timeout_s: float = 600.0,
) -> RunNowResult | None:
    """Ask the serving process to run ``schedule_id`` now.

    Returns None when no admin server is reachable, so the caller can decide
    how to run without it.
    """
    headers = {"Authorization": f"Bearer {config.token}"} if config.token else {}
    url = f"{admin_base_url(config)}/schedules/{schedule_id}/run"

    async with httpx.AsyncClient(transport=transport, timeout=timeout_s) as client:
        try:
            response = await client.post(url, headers=headers)
        except httpx.ConnectError:
            logger.debug(f"No admin server at {url}")
            return None

    try:
        body = response.json()
    except ValueError:
        body = {}

    if "success" in body:
        return RunNowResult(
            success=bool(body["success"]),
            message=body.get("message", ""),
            run_id=body.get("run_id"),
        )
    return RunNowResult(
        success=False,
        message=body.get("message") or f"admin server answered {response.status_code}",
    )
