"""Check that the prompt service, the rendering service and the database answer.

Exits non-zero when any check fails, so it can gate a deploy.
"""

from __future__ import annotations

import asyncio
import sys

from rebus.integrations import IntegrationCheckResult, run_all_checks
from rebus.monitoring.logging import configure_logging


def _format_result(result: IntegrationCheckResult) -> str:
    status = "OK  " if result.success else "FAIL"
    return f"[{status}] {result.name:<18} {result.message}"


def main() -> int:
    configure_logging()
    results = asyncio.run(run_all_checks())
    for result in results:
        print(_format_result(result))
    return 0 if all(result.success for result in results) else 1


if __name__ == "__main__":
    sys.exit(main())
