"""Wire the scheduler, renderer and delivery channel together from config."""

from loguru import logger

from reportbot.admin.http_server import AdminHttpServer
from reportbot.config.schema import Config
from reportbot.delivery.graph_mail import GraphMailChannel
from reportbot.render.engine import BrowserEngine
from reportbot.render.orchestrator import ReportRenderer
from reportbot.schedule.executor import ScheduleExecutor
from reportbot.schedule.lock import ExecutionLock
from reportbot.schedule.matcher import resolve_timezone
from reportbot.schedule.service import SchedulerService
from reportbot.schedule.storage import JsonScheduleStore


def store_path(config: Config):
    return config.data_path / "schedules.json"


class ReportApp:
    """Owns every long-lived resource of a running reportbot process."""

    def __init__(self, config: Config, with_admin: bool = True):
        self.config = config
        self.timezone = resolve_timezone(config.scheduler.timezone)
        self.store = JsonScheduleStore(store_path(config))
        self.lock = ExecutionLock()
        self.engine = BrowserEngine(
            headless=config.renderer.headless,
            launch_args=config.renderer.launch_args,
        )
        self.renderer = ReportRenderer(self.engine, config.renderer)
        self.channel = GraphMailChannel(config.delivery)
        self.executor = ScheduleExecutor(
            repository=self.store,
            renderer=self.renderer,
            channel=self.channel,
            lock=self.lock,
            timezone=self.timezone,
            delivery=config.delivery,
            guard_manual_runs=config.scheduler.guard_manual_runs,
        )
        self.scheduler = SchedulerService(
            repository=self.store,
            executor=self.executor,
            lock=self.lock,
            timezone=self.timezone,
            tick_interval_s=config.scheduler.tick_interval_s,
        )
        self.admin: AdminHttpServer | None = None
        if with_admin and config.admin.enabled:
            self.admin = AdminHttpServer(
                host=config.admin.host,
                port=config.admin.port,
                store=self.store,
                executor=self.executor,
                scheduler=self.scheduler,
                token=config.admin.token,
            )

    async def start(self) -> None:
        if not self.channel.is_configured():
            logger.warning("Delivery channel is not configured; scheduled runs will fail")
        await self.scheduler.start()
        if self.admin:
            await self.admin.start()

    async def stop(self) -> None:
        if self.admin:
            await self.admin.stop()
        await self.scheduler.stop()
        await self.channel.close()
        if self.engine.is_running:
            await self.engine.shutdown()
