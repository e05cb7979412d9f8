#!/usr/bin/env python3
"""
Constants for the Alma toolkit.

Centralized constants shared by the API client and the subcommands.
"""

PROJECT_NAME = "The Alma Toolkit"

# Prefix for environment variables which override unset flags
ENV_PREFIX = "ALMATOOLKIT_"

# Alma API connection defaults
DEFAULT_ALMA_API_HOST = "api-ca.hosted.exlibrisgroup.com"
DEFAULT_TIMEOUT = 60

# Stop issuing new calls once Alma reports fewer remaining calls than this
DEFAULT_THRESHOLD = 50000

# Concurrent workers per batch run
DEFAULT_CONCURRENCY = 5

# Alma caps list endpoints at 100 records per page
ALMA_PAGE_SIZE = 100

# Response header carrying the remaining daily API call budget
BUDGET_HEADER = "X-Exl-Api-Remaining"

# Per-second gateway limit (HTTP 429) retry policy
PER_SECOND_RETRY_ATTEMPTS = 3
PER_SECOND_RETRY_WAIT = 1.0

# Exit codes
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_ABORTED = 2
