from __future__ import annotations

# Release host (gh) operations
GH_TIMEOUT_SECONDS = 60.0
GH_UPLOAD_TIMEOUT_SECONDS = 10 * 60.0
GH_CLONE_TIMEOUT_SECONDS = 15 * 60.0

# Local git operations (status, add, commit)
GIT_TIMEOUT_SECONDS = 30.0

# Network-bound git operations (push)
GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0

# Toolchains: compilers, doc generators, docker builds
BUILD_TIMEOUT_SECONDS = 2 * 60 * 60.0

# Idempotent read retry policy (gh reads, registry index probes)
READ_RETRY_ATTEMPTS = 3
READ_RETRY_DELAY_SECONDS = 1.0
