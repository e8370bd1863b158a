"""
Shared constants used across the signal engine.
Single source of truth for every threshold, weight, cap and window the
detectors and scorers apply.  These values are the behavioural contract
of the scoring model; they are not read from the environment.
"""

# ─── Severity ordinal ──────────────────────────────────────

SEVERITY_ORDINAL = {
    "none": 0,
    "mild": 1,
    "moderate": 2,
    "severe": 3,
}
# Score used for a flare that carries no severity at all
ABSENT_SEVERITY_SCORE = 1

# ─── ADR temporal join ─────────────────────────────────────

ADR_WINDOW_HOURS = 48
MIN_DOSES_PER_MEDICATION = 2
MIN_WINDOW_HITS = 2
MIN_SIGNAL_CONFIDENCE = 0.15
MIN_SIGNAL_LIFT = 1.2
LIFT_WHEN_NO_BASELINE = 5.0

# Temporal pattern (avg onset hours, inclusive upper bounds)
ACUTE_MAX_HOURS = 24
SUBACUTE_MAX_HOURS = 168

# ─── WHO-UMC causality (confidence, lift, occurrences) ─────

CAUSALITY_RULES = [
    ("Certain", 0.8, 3.0, 5),
    ("Probable", 0.6, 2.0, 3),
    ("Possible", 0.4, 1.5, 2),
]
UNLIKELY_MIN_CONFIDENCE = 0.2
REPORTABLE_CAUSALITY = {"Certain", "Probable", "Possible"}

# ─── Risk tier composite ───────────────────────────────────

RISK_WEIGHT_CONFIDENCE = 30
RISK_WEIGHT_LIFT = 10
RISK_LIFT_CAP = 5.0
RISK_WEIGHT_SEVERE_RATIO = 60
RISK_TIERS = [
    ("critical", 70),
    ("high", 50),
    ("moderate", 30),
]
RISK_ORDER = {"critical": 0, "high": 1, "moderate": 2, "low": 3}

# ─── Predictive risk aggregator ────────────────────────────

BASELINE_RISK_SCORE = 20
RISK_SCORE_MIN = 0
RISK_SCORE_MAX = 100
PREDICTED_TIMEFRAME = "48 hours"

TREND_WINDOW_DAYS = 7
TREND_RATIO_NO_HISTORY = 2.0
TREND_RISING_RATIO = 1.5
TREND_RISING_WEIGHT = 15
TREND_RISING_CAP = 20
TREND_FALLING_RATIO = 0.5
TREND_FALLING_WEIGHT = 10
TREND_FALLING_CAP = 15

ESCALATION_SAMPLE = 10
ESCALATION_MIN_EACH = 3
ESCALATION_MIN_DIFF = 0.3
ESCALATION_WEIGHT = 12

TRIGGER_LOOKBACK_DAYS = 3
TRIGGER_MIN_CONFIDENCE = 0.5
TRIGGER_LIFT_WEIGHT = 8
TRIGGER_CAP = 25
TRIGGER_NAMES_IN_ADVICE = 3

ADR_FACTOR_WEIGHT = 10
ADR_FACTOR_CAP = 25
ADR_ACTIVE_TIERS = {"high", "critical"}

ENV_DISCOVERY_CATEGORY = "environment"
ENV_DISCOVERY_MIN_CONFIDENCE = 0.4
ENV_FACTOR_WEIGHT = 5
ENV_FACTOR_CAP = 15

POLYPHARMACY_MIN_MEDS = 3
POLYPHARMACY_WEIGHT = 5
POLYPHARMACY_CAP = 15

ADHERENCE_WINDOW_DAYS = 7
ADHERENCE_MIN_DAYS = 6
ADHERENCE_BONUS = 10
ADHERENCE_LOW_DAYS = 4

TIMELINE_DAYS = 90

# ─── Environmental / physiological analyzer ────────────────

ANALYZER_WINDOW_DAYS = 30
MIN_VARIABLE_SAMPLES = 5
MAX_CORRELATIONS = 8
STRENGTH_DIVISOR = 2.0

PRESSURE_SPLIT_MB = 1010
PRESSURE_MIN_BUCKET = 3
PRESSURE_MIN_DIFF = 0.3
PRESSURE_RISK_DIFF = 0.5
PRESSURE_CONF_DIVISOR = 15

HUMIDITY_SPLIT_PCT = 75
HUMIDITY_MIN_BUCKET = 3
HUMIDITY_MIN_DIFF = 0.3
HUMIDITY_RISK_DIFF = 0.4
HUMIDITY_CONF_DIVISOR = 15

COLD_MAX_C = 5
TEMPERATE_MAX_C = 25
COLD_MIN_BUCKET = 3
COLD_MIN_DIFF = 0.3
COLD_FALLBACK_SEVERITY = 2
COLD_CONF_DIVISOR = 10

AQI_POOR = 100
AQI_GOOD = 50
AQI_MIN_POOR = 2
AQI_FIXED_STRENGTH = 0.6
AQI_CONF_DIVISOR = 8

SLEEP_POOR_HOURS = 6
SLEEP_GOOD_HOURS = 7
SLEEP_MIN_BUCKET = 2
SLEEP_MIN_DIFF = 0.2
SLEEP_CONF_DIVISOR = 8
SLEEP_PATTERN_HOURS = 6.5
SLEEP_PATTERN_HIGH_CONF_SAMPLES = 10

HRV_LOW_FRACTION = 0.8
HRV_MIN_BUCKET = 2
HRV_MIN_DIFF = 0.3
HRV_CONF_DIVISOR = 8

STEPS_SEDENTARY = 3000
STEPS_ACTIVE = 5000
STEPS_MIN_BUCKET = 2
STEPS_MIN_DIFF = 0.3
STEPS_PROTECTIVE_DIFF = 0.4
STEPS_CONF_DIVISOR = 8

# (label, start hour inclusive, end hour exclusive); night is the remainder
TIME_SLOTS = [
    ("morning (6-12)", 6, 12),
    ("afternoon (12-18)", 12, 18),
    ("evening (18-22)", 18, 22),
]
NIGHT_SLOT = "night (22-6)"
PEAK_TIME_MIN_PCT = 35
PEAK_TIME_CONF_DIVISOR = 15

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
DAY_MIN_COUNT = 3
DAY_MIN_PCT = 20
DAY_HIGH_CONF_COUNT = 5

COMPOUND_MIN_EVENTS = 2
COMPOUND_MIN_SEVERITY = 2.0
COMPOUND_HIGH_CONF_EVENTS = 4
# Missing readings fall back to values outside the risk bucket
COMPOUND_DEFAULT_SLEEP = 8
COMPOUND_DEFAULT_PRESSURE = 1013

WEEKLY_CHANGE_THRESHOLD = 2

# Percentages in narrative text: severity difference * 33
PERCENT_PER_SEVERITY_POINT = 33

# ─── Unit conversion at ingestion ──────────────────────────

INHG_TO_MB = 33.8639
# Pressure readings below this are taken to be inHg
PRESSURE_INHG_CEILING = 100
# Temperature readings above this with no explicit unit are taken to be °F
FAHRENHEIT_FLOOR = 45
