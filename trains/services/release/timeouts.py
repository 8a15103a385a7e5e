from __future__ import annotations

# GH / API operations
GH_TIMEOUT_SECONDS = 60.0

# Local git operations (status, checkout, add, commit)
GIT_TIMEOUT_SECONDS = 30.0

# Network-bound git operations (fetch, push)
GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0

# npm publish / dist-tag / view
NPM_TIMEOUT_SECONDS = 5 * 60.0

# Idempotent GH read retry policy
GH_READ_RETRY_ATTEMPTS = 3
GH_READ_RETRY_DELAY_SECONDS = 1.0

# Staging pull request merge polling (waits without a deadline)
PR_MERGE_POLL_SECONDS = 30.0
