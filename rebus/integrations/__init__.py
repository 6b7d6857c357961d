"""Integration check helpers."""

from .checks import (
    IntegrationCheckResult,
    check_database,
    check_prompt_service,
    check_render_service,
    run_all_checks,
)

__all__ = [
    "IntegrationCheckResult",
    "check_database",
    "check_prompt_service",
    "check_render_service",
    "run_all_checks",
]
