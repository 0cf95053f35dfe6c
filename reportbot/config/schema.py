"""Configuration schema using Pydantic."""

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchedulerConfig(BaseModel):
    """Tick loop configuration."""
    timezone: str = "America/Sao_Paulo"  # IANA name; schedules are matched in this zone
    tick_interval_s: int = Field(default=60, ge=1)
    guard_manual_runs: bool = True  # manual runs refuse to start while a tick run holds the lock


class RendererConfig(BaseModel):
    """Playwright rendering configuration."""
    base_url: str = "http://localhost:5000"
    username: str = ""
    password: str = ""
    headless: bool = True
    launch_args: list[str] = Field(default_factory=lambda: [
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-dev-shm-usage",
        "--disable-gpu",
    ])

    dashboard_path: str = "/dashboard"
    print_path: str = "/report/print/{subject_id}"

    page_load_timeout_s: float = 60.0
    login_form_timeout_s: float = 15.0
    login_timeout_s: float = 120.0
    navigation_timeout_s: float = 120.0
    ready_poll_interval_s: float = Field(default=2.0, gt=0)
    ready_timeout_s: float = 60.0
    settle_delay_s: float = 3.0
    snapshot_chars: int = 500

    email_selector: str = '[data-testid="input-email"]'
    password_selector: str = '[data-testid="input-password"]'
    submit_selector: str = '[data-testid="button-login"]'
    login_error_selector: str = '[data-testid="error-message"]'
    ready_flag: str = "__REPORT_READY__"
    data_error_selector: str = '[data-error="true"]'
    spinner_selector: str = ".animate-spin"

    page_format: str = "A4"
    landscape: bool = True
    margin: str = "10mm"
    screenshot_width: int = 1200
    screenshot_height: int = 800

    def print_url(self, subject_id: str) -> str:
        return self.base_url.rstrip("/") + self.print_path.format(subject_id=subject_id)


class DeliveryConfig(BaseModel):
    """Microsoft Graph e-mail delivery configuration."""
    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = ""
    sender_email: str = ""
    timeout_s: float = 60.0
    logo_dir: str | None = None  # *.png files here are embedded inline, cid = file stem
    team_name: str = "Backup Operations"
    report_title: str = "Backup Report"


class StorageConfig(BaseModel):
    """Where schedules and runs are kept."""
    data_dir: str = "~/.reportbot"

    @property
    def path(self) -> Path:
        return Path(self.data_dir).expanduser()


class AdminConfig(BaseModel):
    """Admin HTTP surface configuration."""
    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 18791
    token: str = ""  # empty accepts every request


class Config(BaseSettings):
    """Root configuration for reportbot."""
    model_config = SettingsConfigDict(env_prefix="REPORTBOT_", env_nested_delimiter="__")

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    renderer: RendererConfig = Field(default_factory=RendererConfig)
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    admin: AdminConfig = Field(default_factory=AdminConfig)

    @property
    def data_path(self) -> Path:
        """Get expanded data directory."""
        return self.storage.path
