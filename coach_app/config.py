"""Runtime configuration for the coach notification service."""
from dataclasses import dataclass
import os
from dotenv import load_dotenv

# Load environment variables from a local .env when present
load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return float(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Scheduler, dispatcher and delivery settings.

    Values can be overridden through environment variables, mostly of the same
    name in upper case (e.g. ``TICK_INTERVAL_SECONDS``).
    """

    database_url: str = "sqlite:///./coach_notifications.db"
    environment: str = "development"

    # Dispatcher
    dispatcher_enabled: bool = True
    tick_interval_seconds: float = 60.0
    delivery_timeout_seconds: float = 10.0
    stale_claim_seconds: int = 300
    index_resync_ticks: int = 10
    daily_planning_enabled: bool = True

    # Retry policy
    max_retries: int = 3
    backoff_base_seconds: int = 60
    backoff_cap_seconds: int = 1800

    # Store
    creation_grace_seconds: int = 0
    conflict_retry_attempts: int = 3

    # Mutation limits
    max_snooze_minutes: int = 1440

    # Reminder planning
    default_time_zone: str = "UTC"
    pre_reminder_minutes: int = 15
    post_reminder_minutes: int = 15

    # Delivery
    default_channel: str = "in_app"
    webhook_url: str = ""
    delivery_callback_token: str = ""

    # Events
    dapr_enabled: bool = False
    dapr_pubsub_name: str = "coach-pubsub"
    dapr_topic: str = "notification-events"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        defaults = cls()
        return cls(
            database_url=os.environ.get("DATABASE_URL", defaults.database_url),
            environment=os.environ.get("ENVIRONMENT", defaults.environment),
            dispatcher_enabled=_env_bool("DISPATCHER_ENABLED", defaults.dispatcher_enabled),
            tick_interval_seconds=_env_float("TICK_INTERVAL_SECONDS", defaults.tick_interval_seconds),
            delivery_timeout_seconds=_env_float("DELIVERY_TIMEOUT_SECONDS", defaults.delivery_timeout_seconds),
            stale_claim_seconds=_env_int("STALE_CLAIM_SECONDS", defaults.stale_claim_seconds),
            index_resync_ticks=_env_int("INDEX_RESYNC_TICKS", defaults.index_resync_ticks),
            daily_planning_enabled=_env_bool("DAILY_PLANNING_ENABLED", defaults.daily_planning_enabled),
            max_retries=_env_int("MAX_RETRIES", defaults.max_retries),
            backoff_base_seconds=_env_int("BACKOFF_BASE_SECONDS", defaults.backoff_base_seconds),
            backoff_cap_seconds=_env_int("BACKOFF_CAP_SECONDS", defaults.backoff_cap_seconds),
            creation_grace_seconds=_env_int("CREATION_GRACE_SECONDS", defaults.creation_grace_seconds),
            conflict_retry_attempts=_env_int("CONFLICT_RETRY_ATTEMPTS", defaults.conflict_retry_attempts),
            max_snooze_minutes=_env_int("MAX_SNOOZE_MINUTES", defaults.max_snooze_minutes),
            default_time_zone=os.environ.get("DEFAULT_TIME_ZONE", defaults.default_time_zone),
            pre_reminder_minutes=_env_int("PRE_REMINDER_MINUTES", defaults.pre_reminder_minutes),
            post_reminder_minutes=_env_int("POST_REMINDER_MINUTES", defaults.post_reminder_minutes),
            default_channel=os.environ.get("DEFAULT_CHANNEL", defaults.default_channel),
            webhook_url=os.environ.get("CHAT_WEBHOOK_URL", defaults.webhook_url),
            delivery_callback_token=os.environ.get("DELIVERY_CALLBACK_TOKEN", defaults.delivery_callback_token),
            dapr_enabled=_env_bool("DAPR_ENABLED", defaults.dapr_enabled),
            dapr_pubsub_name=os.environ.get("DAPR_PUBSUB_NAME", defaults.dapr_pubsub_name),
            dapr_topic=os.environ.get("DAPR_TOPIC", defaults.dapr_topic),
        )


def get_settings() -> Settings:
    """Settings for the running process."""
    return Settings.from_env()
