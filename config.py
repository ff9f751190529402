"""
Configuration for the Queue Node simulator.
All times are in simulation MINUTES unless noted. Rates are per HOUR.
"""

# ============================================================================
# DEFAULT SCENARIO (Base Configuration)
# ============================================================================

DEFAULT_MODEL = "M/M/s"
DEFAULT_ARRIVAL_RATE = 45.0  # customers/hour (λ)
DEFAULT_AVG_SERVICE_TIME = 5.0  # minutes (1/μ)
DEFAULT_SERVER_COUNT = 5
DEFAULT_CAPACITY = 10  # K, used by M/M/s/K only
DEFAULT_POPULATION_SIZE = 20  # N, used by M/M/s//N only
DEFAULT_ERLANG_K = 2

# Operating hours (clock hours, 24h)
DEFAULT_OPEN_HOUR = 9
DEFAULT_CLOSE_HOUR = 17

DEFAULT_VIP_PROBABILITY = 0.0
DEFAULT_SL_TARGET = 0.5  # minutes (30 seconds)

# ============================================================================
# FEATURE DEFAULTS
# ============================================================================

# Impatience
DEFAULT_BALK_THRESHOLD = 5  # line length that triggers balking
DEFAULT_AVG_PATIENCE = 10.0  # minutes

# Retrial orbit
DEFAULT_AVG_RETRIAL_DELAY = 2.0  # minutes

# Breakdowns
DEFAULT_MTBF = 60.0  # minutes
DEFAULT_MTTR = 5.0  # minutes

# Heterogeneous efficiency
DEFAULT_SENIORITY_RATIO = 0.5
SENIOR_EFFICIENCY = 1.5  # seniors work 50% faster
JUNIOR_EFFICIENCY = 0.7  # juniors work 30% slower

# State-dependent rates ("panic")
DEFAULT_PANIC_THRESHOLD = 10
DEFAULT_PANIC_MULTIPLIER = 1.5

# Bulk arrivals / batch service
DEFAULT_MIN_GROUP_SIZE = 1
DEFAULT_MAX_GROUP_SIZE = 4
DEFAULT_MAX_BATCH_SIZE = 4

# Variable workload (items per customer)
DEFAULT_MIN_WORKLOAD_ITEMS = 1
DEFAULT_MAX_WORKLOAD_ITEMS = 5

# Skill mix (remainder of the probability mass is GENERAL)
DEFAULT_SKILL_RATIOS = {"Sales": 0.2, "Tech": 0.2, "Support": 0.2}

HOURS_PER_DAY = 24

# ============================================================================
# ENGINE CONSTANTS
# ============================================================================

SNAPSHOT_INTERVAL = 5.0  # sim minutes between history points
MAX_HISTORY_POINTS = 100
VISUAL_DEPARTURE_DURATION = 15.0  # minutes a departed customer stays visible
VISUAL_BALK_DURATION = 15.0  # minutes a balked customer stays visible
UTILIZATION_WINDOW = 60  # ticks in the per-server sliding window
NO_SERVER_WAIT_ESTIMATE = 999.0  # minutes, displayed when nobody is staffed
CONFIDENCE_Z = 1.96  # 95% confidence interval
INFINITE_SERVER_CAP = 100  # servers assumed by formulas for M/M/inf

# ============================================================================
# SIMULATION RUNS
# ============================================================================

TICK_MINUTES = 0.1  # sim minutes advanced per engine tick
MAX_RUN_MINUTES = 24 * 60  # hard stop for a single run
NUM_SEEDS = 5  # number of independent runs
RANDOM_SEED_BASE = 42

# ============================================================================
# OUTPUT
# ============================================================================

OUTPUT_DIR = "outputs"
LOG_DIR = f"{OUTPUT_DIR}/logs"
PLOT_DIR = f"{OUTPUT_DIR}/plots"
REPORT_DIR = f"{OUTPUT_DIR}/reports"

# Completed-customer CSV columns
COMPLETED_LOG_COLUMNS = [
    "customer_id",
    "arrival_time",
    "start_time",
    "finish_time",
    "wait_time",
    "service_time",
    "server_id",
    "customer_type",  # "VIP", "Impatient" or "Standard"
    "required_skill",
    "estimated_wait_time",
    "workload_items",
]

# ============================================================================
# METRICS & CONVERGENCE
# ============================================================================

# Little's Law check: L_obs / (λ_eff · W) within this tolerance
LITTLES_LAW_TOLERANCE = 0.1
