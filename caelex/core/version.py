from __future__ import annotations

import os
import subprocess
from functools import lru_cache
from importlib.metadata import PackageNotFoundError, version

from ..config import settings
from ..utils.dates import utcnow

DISTRIBUTION_NAME = "caelex-compliance-api"
SERVICE_NAME = "caelex-compliance-api"


def _package_version() -> str:
    try:
        return version(DISTRIBUTION_NAME)
    except PackageNotFoundError:
        # Running from a source checkout that was never installed
        return "0+unknown"


def _git_sha() -> str:
    for variable in ("GIT_SHA", "SOURCE_COMMIT", "VERCEL_GIT_COMMIT_SHA"):
        if os.getenv(variable):
            return os.environ[variable]
    try:
        completed = subprocess.run(
            ["git", "rev-parse", "--short=12", "HEAD"],
            capture_output=True,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError):
        return "unknown"
    return completed.stdout.strip() or "unknown"


@lru_cache
def get_version_info() -> dict[str, str]:
    """Build metadata for ``/system/version``. Computed once per process."""
    return {
        "service": SERVICE_NAME,
        "version": _package_version(),
        "gitSha": _git_sha(),
        "buildTime": os.getenv("BUILD_TIME") or utcnow().isoformat(),
        "env": settings.app_env,
    }
