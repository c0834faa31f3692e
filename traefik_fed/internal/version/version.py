import os
import platform
from dataclasses import asdict, dataclass
from typing import Dict

# Set as environment variables by the container build (see Dockerfile).
VERSION_ENV = "TRAEFIK_FED_VERSION"
GIT_COMMIT_ENV = "TRAEFIK_FED_GIT_COMMIT"
BUILD_DATE_ENV = "TRAEFIK_FED_BUILD_DATE"

DEFAULT_VERSION = "dev"
DEFAULT_UNKNOWN = "unknown"


@dataclass(frozen=True)
class VersionInfo:
    version: str
    git_commit: str
    build_date: str
    python_version: str
    platform: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)

    def __str__(self) -> str:
        return (f"traefik-fed {self.version} ({self.git_commit}) built on {self.build_date} "
                f"with Python {self.python_version} for {self.platform}")


def get() -> VersionInfo:
    """Read version information once at process start."""
    return VersionInfo(
        version=os.getenv(VERSION_ENV) or DEFAULT_VERSION,
        git_commit=os.getenv(GIT_COMMIT_ENV) or DEFAULT_UNKNOWN,
        build_date=os.getenv(BUILD_DATE_ENV) or DEFAULT_UNKNOWN,
        python_version=platform.python_version(),
        platform=f"{platform.system().lower()}/{platform.machine().lower()}",
    )
