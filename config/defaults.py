DEFAULT_DB_PATH = "rollcall.db"
DEFAULT_TIMEZONE = "UTC"
DEFAULT_CHANNEL_NAME = "general"
DEFAULT_TICK_SECONDS = 60

# A recurring event is posted once the local hour reaches CUTOFF_HOUR, or
# earlier when its start is at most LEAD_TIME_HOURS away.
DEFAULT_LEAD_TIME_HOURS = 2.0
DEFAULT_CUTOFF_HOUR = 9
