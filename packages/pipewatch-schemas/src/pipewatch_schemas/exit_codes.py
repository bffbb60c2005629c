"""CLI exit code taxonomy and error-to-exit-code registry.

Exit code ranges:
- 0: Success
- 10-19: Client/input errors (config, validation)
- 20-29: Fetch errors (transport, upstream API)
- 99: Unexpected runtime errors
"""

from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """CLI exit codes by failure category."""

    SUCCESS = 0
    CONFIG_ERROR = 10
    VALIDATION_ERROR = 11
    NOT_FOUND = 12
    FETCH_ERROR = 20
    RUNTIME_ERROR = 99


# Domain error codes are qualified with a domain prefix; CLI-level codes are
# stored without one.
ERROR_CODE_TO_EXIT_CODE: dict[str, ExitCode] = {
    "config_error": ExitCode.CONFIG_ERROR,
    "validation_error": ExitCode.VALIDATION_ERROR,
    "not_found": ExitCode.NOT_FOUND,
    "runtime_error": ExitCode.RUNTIME_ERROR,
    "fetch.network_error": ExitCode.FETCH_ERROR,
    "fetch.server_error": ExitCode.FETCH_ERROR,
    "fetch.client_error": ExitCode.FETCH_ERROR,
    "fetch.parse_error": ExitCode.FETCH_ERROR,
    "fetch.io_error": ExitCode.FETCH_ERROR,
}


def resolve_exit_code(error_code: str, *, domain: str | None = None) -> ExitCode:
    """Resolve an error code string to its ExitCode.

    Args:
        error_code: The error code string (e.g. "config_error",
            "server_error").
        domain: Optional domain prefix (e.g. "fetch"). When provided, the
            lookup uses ``"{domain}.{error_code}"`` first, falling back to an
            unqualified lookup.

    Returns:
        The matching ExitCode, or RUNTIME_ERROR if no mapping is found.
    """
    if domain:
        qualified = f"{domain}.{error_code}"
        if qualified in ERROR_CODE_TO_EXIT_CODE:
            return ERROR_CODE_TO_EXIT_CODE[qualified]

    if error_code in ERROR_CODE_TO_EXIT_CODE:
        return ERROR_CODE_TO_EXIT_CODE[error_code]

    return ExitCode.RUNTIME_ERROR
