"""Safe outputs: typed records, parsing, permissions and job synthesis.

The agent never writes to GitHub itself. It emits JSONL records naming a
safe-output type; downstream jobs with least-privilege permissions
validate and apply them.
"""

from aw_compiler.compiler.safe_outputs.config import (
    SafeOutputsConfig,
    parse_safe_outputs_config,
)
from aw_compiler.compiler.safe_outputs.job import (
    SAFE_OUTPUTS_JOB,
    build_handler_config,
    build_reporting_job,
    build_safe_outputs_job,
    ci_trigger_token,
    processing_step_token,
)
from aw_compiler.compiler.safe_outputs.permissions import (
    compute_safe_outputs_job_permissions,
    compute_safe_outputs_permissions,
)
from aw_compiler.compiler.safe_outputs.registry import (
    SAFE_OUTPUT_TYPES,
    get_type,
)

__all__ = [
    "SAFE_OUTPUTS_JOB",
    "SAFE_OUTPUT_TYPES",
    "SafeOutputsConfig",
    "build_handler_config",
    "build_reporting_job",
    "build_safe_outputs_job",
    "ci_trigger_token",
    "compute_safe_outputs_job_permissions",
    "compute_safe_outputs_permissions",
    "get_type",
    "parse_safe_outputs_config",
    "processing_step_token",
]
