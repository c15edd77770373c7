"""Platform abstraction layer."""

from .detection import Platform, detect_platform, host_arch, runner_matches_host
from .http import HttpClient, HttpError, MockHttpClient, RealHttpClient
from .process import ProcessError, run, which

__all__ = [
    # detection
    "Platform",
    "detect_platform",
    "host_arch",
    "runner_matches_host",
    # http
    "HttpClient",
    "HttpError",
    "MockHttpClient",
    "RealHttpClient",
    # process
    "ProcessError",
    "run",
    "which",
]
