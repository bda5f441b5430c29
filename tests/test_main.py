"""
Tests for the command line interface and error handling helpers
"""

import io
import signal
import unittest
from contextlib import redirect_stdout
from unittest.mock import MagicMock, Mock, patch

from bgp_validator.main import (
    STOP_SIGNALS, _install_stop_handlers, _restore_handlers,
    cmd_check_validator, cmd_validate, create_parser,
)
from bgp_validator.models import Verdict
from bgp_validator.utils.config import BGPValidatorConfig
from bgp_validator.utils.error_handling import (
    ErrorFormatter, ErrorSeverity, ParameterValidator, ValidationError, ValidatorUnavailableError,
    handle_errors, validate_common_args,
)


class TestParser(unittest.TestCase):

    def setUp(self):
        self.parser = create_parser()

    def test_subscribe_options(self):
        args = self.parser.parse_args([
            'subscribe', '--duration', '600', '--client-id', 'lab',
            '--only-ipv4', '-o', 'origins.txt', '--policy', 'valid',
        ])
        self.assertEqual(args.command, 'subscribe')
        self.assertEqual(args.duration, 600)
        self.assertEqual(args.client_id, 'lab')
        self.assertTrue(args.only_ipv4)
        self.assertEqual(args.output, 'origins.txt')
        self.assertEqual(args.policy, 'valid')

    def test_subscribe_defaults_defer_to_config(self):
        args = self.parser.parse_args(['subscribe'])
        self.assertIsNone(args.duration)
        self.assertIsNone(args.policy)
        self.assertFalse(args.only_ipv4)

    def test_unknown_policy_rejected(self):
        with redirect_stdout(io.StringIO()), patch('sys.stderr', io.StringIO()):
            with self.assertRaises(SystemExit):
                self.parser.parse_args(['subscribe', '--policy', 'strict'])

    def test_verbose_and_quiet_are_exclusive(self):
        with patch('sys.stderr', io.StringIO()):
            with self.assertRaises(SystemExit):
                self.parser.parse_args(['-v', '-q', 'check-validator'])

    def test_validate_arguments(self):
        args = validate_common_args(self.parser.parse_args(['validate', 'AS13335', '1.1.1.0/24']))
        self.assertEqual(args.asn, 13335)
        self.assertEqual(args.prefix, '1.1.1.0/24')


class TestValidateCommand(unittest.TestCase):

    def run_validate(self, verdict):
        args = create_parser().parse_args(['validate', '64496', '10.0.0.0/24'])
        args = validate_common_args(args)
        validator = MagicMock()
        validator.__enter__.return_value = validator
        validator.validate.return_value = verdict

        with patch('bgp_validator.main.RoutinatorValidator', return_value=validator), \
                redirect_stdout(io.StringIO()) as out:
            code = cmd_validate(args, BGPValidatorConfig())

        validator.validate.assert_called_once_with(64496, '10.0.0.0/24')
        return code, out.getvalue()

    def test_exit_code_per_verdict(self):
        self.assertEqual(self.run_validate(Verdict.VALID)[0], 0)
        self.assertEqual(self.run_validate(Verdict.INVALID)[0], 1)
        self.assertEqual(self.run_validate(Verdict.UNKNOWN)[0], 2)

    def test_output_names_the_verdict(self):
        _, output = self.run_validate(Verdict.INVALID)
        self.assertIn("AS64496 10.0.0.0/24: invalid", output)

    def test_unavailable_validator(self):
        args = create_parser().parse_args(['check-validator'])
        error = ValidatorUnavailableError("RPKI validator not ready",
                                          guidance="Wait for the initial validation run")

        with patch('bgp_validator.main.RoutinatorValidator', side_effect=error), \
                redirect_stdout(io.StringIO()) as out:
            code = cmd_check_validator(args, BGPValidatorConfig())

        self.assertEqual(code, 1)
        self.assertIn("RPKI validator not ready", out.getvalue())


class TestStopHandlers(unittest.TestCase):

    def test_handlers_kill_stream_and_are_restored(self):
        original = {signum: signal.getsignal(signum) for signum in STOP_SIGNALS}
        stream = Mock()

        previous = _install_stop_handlers(stream)
        try:
            handler = signal.getsignal(signal.SIGTERM)
            self.assertIsNot(handler, original[signal.SIGTERM])
            handler(signal.SIGTERM, None)
            stream.kill.assert_called_once()
        finally:
            _restore_handlers(previous)

        for signum, handler in original.items():
            self.assertIs(signal.getsignal(signum), handler)


class TestErrorHandling(unittest.TestCase):

    def test_handle_errors_exit_codes(self):
        def raising(exc):
            @handle_errors('bgp-validator.test')
            def command():
                raise exc
            return command

        with redirect_stdout(io.StringIO()):
            self.assertEqual(raising(ValidationError("bad"))(), 1)
            self.assertEqual(raising(ValidatorUnavailableError(
                "down", severity=ErrorSeverity.FATAL))(), 2)
            self.assertEqual(raising(KeyboardInterrupt())(), 130)
            self.assertEqual(raising(RuntimeError("boom"))(), 1)

    def test_os_error_names_the_path(self):
        error = PermissionError(13, "Permission denied", "/var/lib/result")
        formatted = ErrorFormatter.format_error(error)

        self.assertTrue(formatted.startswith("✗ Permission denied: /var/lib/result"))
        self.assertIn("--output", formatted)

    def test_unexpected_error_is_hidden_unless_requested(self):
        self.assertIn("Unexpected error occurred", ErrorFormatter.format_error(RuntimeError("boom")))
        self.assertIn("Unexpected RuntimeError: boom",
                      ErrorFormatter.format_error(RuntimeError("boom"), hide_technical=False))

    def test_as_number_validation(self):
        self.assertEqual(ParameterValidator.validate_as_number("as64496"), 64496)
        self.assertEqual(ParameterValidator.validate_as_number(4294967295), 4294967295)
        for value in ["ASX", "4294967296", -1]:
            with self.subTest(value=value):
                with self.assertRaises(ValidationError):
                    ParameterValidator.validate_as_number(value)

    def test_prefix_and_duration_validation(self):
        self.assertEqual(ParameterValidator.validate_prefix("2001:db8::/32"), "2001:db8::/32")
        with self.assertRaises(ValidationError):
            ParameterValidator.validate_prefix("10.0.0.0/33")
        with self.assertRaises(ValidationError):
            ParameterValidator.validate_duration(0)


if __name__ == '__main__':
    unittest.main()
