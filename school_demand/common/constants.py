"""Application constants."""

USER_AGENT = "school-demand/0.3 (+research; contact: configured-email)"
STAGES = (
    "fetch",
    "analyse",
)
DATASETS = ("schools", "census", "settlements")
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "dataset",
    "event",
    "status",
    "attempt",
    "duration_ms",
    "rows_in",
    "rows_out",
    "error_code",
    "message",
)
# Census 2016 SAPS theme 1.1, both sexes, single year of age 5..12.
DEFAULT_AGE_COLUMNS = tuple(f"T1_1AGE{age}T" for age in range(5, 13))
BOUNDARY_POLICIES = ("exclude", "include")
AMBIGUITY_POLICIES = ("first", "error")
EXCLUSION_REASONS = ("no_supply_data", "zero_supply", "no_demand_data")
REJECTED_SAMPLE_LIMIT = 50
