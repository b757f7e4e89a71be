"""Constants used throughout the rollstat package."""

# Length / depth conversions (canonical unit: millimetre)
MM_PER_CM = 10.0
MM_PER_INCH = 25.4

# Speed conversions (canonical unit: metre per second)
MS_PER_KMH = 1 / 3.6
MS_PER_MPH = 0.44704
MS_PER_KNOT = 1852 / 3600

# Pressure conversions (canonical unit: hectopascal)
HPA_PER_KPA = 10.0
HPA_PER_INHG = 33.8639
HPA_PER_MMHG = 1.33322

# Temperature conversions (canonical unit: degree Celsius)
FAHRENHEIT_SCALE = 5.0 / 9.0
FAHRENHEIT_OFFSET = -32.0 * 5.0 / 9.0
KELVIN_OFFSET = -273.15

# Default configuration values
DEFAULT_ROLLING_PERIOD_HOURS = 24
DEFAULT_REJECT_OUT_OF_ORDER = False
DEFAULT_STATE_BACKEND = "sqlite"
DEFAULT_STATE_DB_PATH = "state/rollstat.db"
DEFAULT_STATE_JSON_PATH = "state/rollstat.json"
DEFAULT_HISTORY_DB_PATH = "state/history.db"

# Log rotation defaults
DEFAULT_LOG_MAX_BYTES = 10_485_760  # 10MB
DEFAULT_LOG_BACKUP_COUNT = 30
