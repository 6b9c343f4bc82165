"""Constants for Pet Medication Reminder."""

# Integration domain must match the folder name under custom_components
DOMAIN = "pet_medication_reminder"

# Frequency periods
PERIOD_DAY = "day"
PERIOD_WEEK = "week"
PERIOD_MONTH = "month"
PERIODS = (PERIOD_DAY, PERIOD_WEEK, PERIOD_MONTH)

DOSAGE_UNITS = ("mg", "ml", "g", "tablet(s)", "drop(s)", "application(s)")

# Medication status
STATUS_ACTIVE = "active"
STATUS_COMPLETED = "completed"
STATUS_DISCONTINUED = "discontinued"
STATUSES = (STATUS_ACTIVE, STATUS_COMPLETED, STATUS_DISCONTINUED)

# Even-distribution daytime window and the fixed month length used to turn a
# monthly count into a daily rate. Approximations, not calendar facts.
DEFAULT_DAY_START = "08:00"
DEFAULT_DAY_END = "22:00"
MONTH_LENGTH_DAYS = 30
WEEK_LENGTH_DAYS = 7

# Reconciliation defaults
DEFAULT_HORIZON_HOURS = 24
DEFAULT_DEVICE_QUOTA = 64
DEFAULT_REFRESH_INTERVAL_MINUTES = 60
DEFAULT_OPERATION_TIMEOUT = 10.0

# YAML configuration keys
CONF_HORIZON_HOURS = "horizon_hours"
CONF_DEVICE_QUOTA = "device_quota"
CONF_REFRESH_INTERVAL = "refresh_interval_minutes"
CONF_OPERATION_TIMEOUT = "operation_timeout"
CONF_DAY_START = "day_start"
CONF_DAY_END = "day_end"

# Config entry keys
ATTR_MEDICATION_ID = "medication_id"
ATTR_PET = "pet"
ATTR_PET_ID = "pet_id"
ATTR_NAME = "name"
ATTR_DOSE_AMOUNT = "dose_amount"
ATTR_DOSE_UNIT = "dose_unit"
ATTR_TIMES_PER_PERIOD = "times_per_period"
ATTR_PERIOD = "period"
ATTR_TIMES = "times"
ATTR_START_DATE = "start_date"
ATTR_END_DATE = "end_date"
ATTR_INDEFINITE = "indefinite"
ATTR_REMINDERS_ENABLED = "reminders_enabled"
ATTR_REMINDER_LEAD = "reminder_lead_minutes"
ATTR_NOTIFY_SERVICES = "notify_services"
ATTR_STATUS = "status"
ATTR_LAST_ACTION = "last_action"

# Dose log states
STATE_GIVEN = "Given"
STATE_SKIPPED = "Skipped"

# Services
SERVICE_REFRESH = "refresh_reminders"
SERVICE_MARK_GIVEN = "mark_given"
SERVICE_MARK_SKIPPED = "mark_skipped"

# Mobile notification actions
ACTION_GIVEN = "MED_GIVEN"
ACTION_SKIP = "MED_SKIP"

# History persistence
HISTORY_STORE_KEY = f"{DOMAIN}_history"
HISTORY_STORE_VERSION = 1
SIGNAL_HISTORY_UPDATED = f"{DOMAIN}_history_updated"
SIGNAL_REMINDERS_UPDATED = f"{DOMAIN}_reminders_updated"

TRUNCATED_NOTIFICATION_ID = f"{DOMAIN}_limit_reached"
