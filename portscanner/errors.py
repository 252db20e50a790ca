from __future__ import annotations

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INVALID_ARGUMENT = 2
EXIT_MISSING_CAPABILITY = 3
EXIT_PERMISSION_DENIED = 4


class ScanError(Exception):
    """Base class for errors that abort a scan before any job runs."""

    exit_code = EXIT_ERROR


class InvalidArgument(ScanError):
    exit_code = EXIT_INVALID_ARGUMENT


class InvalidPortSpec(InvalidArgument):
    pass


class UnresolvableHost(InvalidArgument):
    pass


class CapabilityUnavailable(ScanError):
    exit_code = EXIT_MISSING_CAPABILITY


class PermissionDenied(ScanError):
    exit_code = EXIT_PERMISSION_DENIED


class ProbeError(Exception):
    """
    Raised for a failure inside a single probe.
    The engine records the port as closed; it never reaches the caller.
    """


def exit_code_for(exc: BaseException) -> int:
    if isinstance(exc, ScanError):
        return exc.exit_code
    return EXIT_ERROR
