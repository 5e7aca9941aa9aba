"""Domain errors and failure typing."""


class PipelineError(Exception):
    """Base class for pipeline failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class ContractError(PipelineError):
    """Raised when strict input or output contracts are broken."""

    error_code = "CONTRACT_ERROR"


class StageError(PipelineError):
    """Raised for stage failures that halt the run."""

    error_code = "STAGE_ERROR"


class InputSchemaError(ContractError):
    """A dataset lacks a column every row depends on."""

    error_code = "INPUT_SCHEMA_ERROR"


class InputValidationError(StageError):
    error_code = "INPUT_VALIDATION_ERROR"


class MissingColumnError(InputValidationError):
    """A feature lacks an attribute required for aggregation."""

    error_code = "MISSING_COLUMN"


class CrsUndeclaredError(ConfigError):
    """Neither the dataset nor the configuration names a CRS."""

    error_code = "CRS_UNDECLARED"


class CrsMismatchError(ContractError):
    """Geometric comparison attempted across different CRSs."""

    error_code = "CRS_MISMATCH"


class JoinAmbiguityError(StageError):
    """A point lies within more than one polygon."""

    error_code = "JOIN_AMBIGUOUS"


class FetchError(StageError):
    """A dataset could not be fetched and no cached copy exists."""

    error_code = "FETCH_ERROR"
