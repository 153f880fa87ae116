"""
Tools Package
Time-window arithmetic and channel adapters for the dose engine
"""

from .time_windows import (
    utcnow,
    get_zone,
    parse_time_of_day,
    to_local,
    to_utc,
    local_today,
    local_to_utc,
    day_bounds_utc,
    week_bounds,
    month_bounds,
    scheduled_bucket,
    is_within_quiet_hours
)

from .channels import (
    ChannelDeliveryError,
    PushAdapter,
    EmailAdapter,
    SmsAdapter,
    OneSignalPushAdapter,
    ResendEmailAdapter,
    TwilioSmsAdapter,
    LoggingPushAdapter,
    LoggingEmailAdapter,
    LoggingSmsAdapter,
    ChannelAdapters,
    build_channel_adapters
)

__all__ = [
    # Time Windows
    "utcnow",
    "get_zone",
    "parse_time_of_day",
    "to_local",
    "to_utc",
    "local_today",
    "local_to_utc",
    "day_bounds_utc",
    "week_bounds",
    "month_bounds",
    "scheduled_bucket",
    "is_within_quiet_hours",

    # Channel Adapters
    "ChannelDeliveryError",
    "PushAdapter",
    "EmailAdapter",
    "SmsAdapter",
    "OneSignalPushAdapter",
    "ResendEmailAdapter",
    "TwilioSmsAdapter",
    "LoggingPushAdapter",
    "LoggingEmailAdapter",
    "LoggingSmsAdapter",
    "ChannelAdapters",
    "build_channel_adapters"
]
