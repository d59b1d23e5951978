from decimal import Decimal
from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from vetclinic.domain.models import Channel


class SenderAdapter(Enum):
    HTTP = "http"
    LOG = "log"


class SchedulingConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SCHEDULING_", env_file=".env", extra="ignore")

    # None means the slot grid advances by the service duration.
    slot_step_minutes: int | None = Field(default=None, gt=0)
    allow_past_dates: bool = False
    transition_retries: int = Field(default=3, ge=1)
    store_timeout_seconds: float = Field(default=5.0, gt=0)
    emergency_surcharge_rate: Decimal = Decimal("0.50")


class CommunicationConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="COMMS_", env_file=".env", extra="ignore")

    reminder_lead_hours: list[int] = Field(default_factory=lambda: [24, 2])
    max_attempts: int = Field(default=3, ge=1)
    notify_on_create: bool = True
    notify_on_confirm: bool = True
    notify_on_cancel: bool = True
    deliver_immediately: bool = True
    send_timeout_seconds: float = Field(default=10.0, gt=0)
    max_concurrent_sends: int = Field(default=5, ge=1)
    retry_interval_seconds: float = Field(default=300.0, gt=0)
    default_channel: Channel = Channel.EMAIL


class GatewayConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="NOTIFY_GATEWAY_", env_file=".env", extra="ignore")

    adapter: SenderAdapter = SenderAdapter.LOG
    url: str = "http://localhost:8025/api/messages"
    api_key: str = ""


class AppConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    clinic_timezone: str = "America/Bogota"
    scheduling: SchedulingConfig = Field(default_factory=lambda: SchedulingConfig())
    communications: CommunicationConfig = Field(default_factory=lambda: CommunicationConfig())
    gateway: GatewayConfig = Field(default_factory=lambda: GatewayConfig())
