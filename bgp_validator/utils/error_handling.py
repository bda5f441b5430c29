#!/usr/bin/env python3
"""
BGP Validator Error Handling

Exception hierarchy, console formatting and command-line parameter checks.

Console lines:
- "✓ {message}"         success
- "⚠ {message}"         warning (e.g. an invalid or unknown verdict)
- "✗ {message}"         error
- "✗ Fatal: {message}"  fatal
followed by an indented "Suggestion:" line when guidance is available.
"""

import logging
from functools import wraps
from ipaddress import ip_network
from typing import Optional, Union

MAX_AS_NUMBER = 4294967295
# Longer sessions are accepted with a warning
LONG_SESSION_SECONDS = 7 * 24 * 3600


class ErrorSeverity:
    """Severity levels; FATAL and ERROR map to exit codes 2 and 1"""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"


class BGPValidatorError(Exception):
    """Base exception carrying severity, user guidance and optional details"""

    def __init__(self, message: str, severity: str = ErrorSeverity.ERROR,
                 guidance: Optional[str] = None, technical_details: Optional[str] = None):
        self.message = message
        self.severity = severity
        self.guidance = guidance
        self.technical_details = technical_details
        super().__init__(message)


class ValidationError(BGPValidatorError):
    """A command-line argument or directive field has an invalid value"""

    def __init__(self, message: str, parameter: str = None, guidance: str = None):
        self.parameter = parameter
        super().__init__(message, ErrorSeverity.ERROR, guidance)


class ConfigurationError(BGPValidatorError):
    """Configuration file or environment is invalid"""
    pass


class ConnectionError(BGPValidatorError):
    """A remote endpoint could not be reached"""
    pass


class StreamConnectionError(ConnectionError):
    """The RIS Live feed cannot be dialed"""
    pass


class ValidatorUnavailableError(ConnectionError):
    """The RPKI validity endpoint is unreachable or still warming up"""
    pass


class DecodeError(BGPValidatorError):
    """A feed frame cannot be decoded; the frame is skipped"""

    def __init__(self, message: str, frame: Optional[str] = None):
        self.frame = frame
        super().__init__(message, ErrorSeverity.WARNING, technical_details=frame)


class ErrorFormatter:
    """Render messages and exceptions as console lines"""

    SYMBOLS = {
        ErrorSeverity.INFO: "✓",
        ErrorSeverity.WARNING: "⚠",
        ErrorSeverity.ERROR: "✗",
        ErrorSeverity.FATAL: "✗ Fatal:",
    }

    @classmethod
    def format_message(cls, message: str, severity: str = ErrorSeverity.ERROR,
                       guidance: Optional[str] = None) -> str:
        formatted = f"{cls.SYMBOLS.get(severity, '•')} {message}"
        if guidance:
            formatted += f"\n  Suggestion: {guidance}"
        return formatted

    @classmethod
    def format_error(cls, error: Union[Exception, BGPValidatorError],
                     hide_technical: bool = True) -> str:
        """
        Format an exception for the console.

        BGPValidatorError keeps its own severity and guidance. OSError is what
        the result file and log directory raise. Anything else is unexpected
        and only named when hide_technical is off.
        """
        if isinstance(error, BGPValidatorError):
            formatted = cls.format_message(error.message, error.severity, error.guidance)
            if not hide_technical and error.technical_details:
                formatted += f"\n  Technical: {error.technical_details}"
            return formatted

        if isinstance(error, OSError):
            location = f": {error.filename}" if error.filename else ""
            return cls.format_message(
                f"{error.strerror or error}{location}", ErrorSeverity.ERROR,
                "Check the --output path and the logging.log_file location",
            )

        if hide_technical:
            return cls.format_message("Unexpected error occurred", ErrorSeverity.ERROR,
                                      "Check logs for details or run with --verbose")
        return cls.format_message(f"Unexpected {type(error).__name__}: {error}",
                                  ErrorSeverity.ERROR)


class ParameterValidator:
    """Checks for subscribe/validate arguments"""

    @staticmethod
    def validate_duration(duration: int, parameter_name: str = "duration") -> int:
        """Session length in whole seconds, > 0"""
        if isinstance(duration, bool) or not isinstance(duration, int):
            raise ValidationError(
                f"Duration must be an integer number of seconds, got {duration!r}",
                parameter_name,
                "Use a positive integer (e.g., 3600)"
            )
        if duration <= 0:
            raise ValidationError(
                f"Duration must be positive (>0 seconds), got {duration}",
                parameter_name,
                "Use a positive integer for the session length (e.g., 3600)"
            )
        if duration > LONG_SESSION_SECONDS:
            logging.getLogger('bgp-validator.validation').warning(
                f"Very long session duration ({duration}s)"
            )
        return duration

    @staticmethod
    def validate_as_number(as_number: Union[str, int],
                           parameter_name: str = "as_number") -> int:
        """32-bit ASN, accepting the "AS12345" spelling"""
        text = str(as_number).strip()
        if text.upper().startswith('AS'):
            text = text[2:]
        try:
            as_num = int(text)
        except ValueError:
            raise ValidationError(
                f"AS number must be an integer, got '{as_number}'",
                parameter_name,
                "Use a numeric AS number (e.g., 12345 or AS12345)"
            )

        if not 0 <= as_num <= MAX_AS_NUMBER:
            raise ValidationError(
                f"AS number out of valid range (0-{MAX_AS_NUMBER}), got {as_num}",
                parameter_name,
                "Use a valid 32-bit AS number"
            )
        return as_num

    @staticmethod
    def validate_prefix(prefix: str, parameter_name: str = "prefix") -> str:
        """IPv4 or IPv6 CIDR prefix; host bits may be set"""
        try:
            ip_network(prefix, strict=False)
        except (ValueError, TypeError):
            raise ValidationError(
                f"Invalid prefix: '{prefix}'",
                parameter_name,
                "Use CIDR notation (e.g., 192.0.2.0/24 or 2001:db8::/32)"
            )
        return prefix


def handle_errors(logger_name: str = None, hide_technical: bool = True):
    """
    Wrap a cmd_* function: print failures and turn them into an exit code.

    FATAL -> 2, ERROR -> 1, lower severities -> 0, Ctrl-C -> 130, anything
    unexpected -> 1.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = logging.getLogger(logger_name or f'bgp-validator.{func.__name__}')

            try:
                return func(*args, **kwargs)
            except BGPValidatorError as e:
                logger.error(f"{e.severity.title()} in {func.__name__}: {e.message}")
                print(ErrorFormatter.format_error(e, hide_technical))
                if e.severity == ErrorSeverity.FATAL:
                    return 2
                if e.severity == ErrorSeverity.ERROR:
                    return 1
                return 0
            except KeyboardInterrupt:
                logger.info(f"Command {func.__name__} interrupted by user")
                print(ErrorFormatter.format_message("Operation interrupted by user",
                                                    ErrorSeverity.WARNING))
                return 130
            except Exception as e:
                logger.exception(f"Unexpected error in {func.__name__}: {e}")
                print(ErrorFormatter.format_error(e, hide_technical))
                return 1

        return wrapper
    return decorator


def print_success(message: str):
    print(ErrorFormatter.format_message(message, ErrorSeverity.INFO))


def print_warning(message: str, guidance: str = None):
    print(ErrorFormatter.format_message(message, ErrorSeverity.WARNING, guidance))


def validate_common_args(args):
    """Normalise --duration, asn and prefix arguments in place"""
    validator = ParameterValidator()

    if getattr(args, 'duration', None) is not None:
        args.duration = validator.validate_duration(args.duration, "duration")
    if getattr(args, 'asn', None) is not None:
        args.asn = validator.validate_as_number(args.asn, "asn")
    if getattr(args, 'prefix', None) is not None:
        args.prefix = validator.validate_prefix(args.prefix, "prefix")

    return args


__all__ = [
    'ErrorSeverity', 'BGPValidatorError', 'ValidationError', 'ConfigurationError',
    'ConnectionError', 'StreamConnectionError', 'ValidatorUnavailableError', 'DecodeError',
    'ErrorFormatter', 'ParameterValidator', 'handle_errors',
    'print_success', 'print_warning', 'validate_common_args'
]
