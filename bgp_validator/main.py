#!/usr/bin/env python3
"""
BGP Validator - RIS Live origin collector with RPKI validation

Usage examples:
bgp-validator subscribe --duration 600 --only-ipv4
bgp-validator subscribe --policy valid --output valid-origins.txt
bgp-validator validate AS13335 1.1.1.0/24
bgp-validator check-validator
"""

import argparse
import signal
import sys

from bgp_validator import __version__
from bgp_validator.collectors.ris_live import RisLiveStream, make_subscribe_url
from bgp_validator.models import ClientDirective, EmissionPolicy, Verdict
from bgp_validator.pipeline.ingest import IngestionLoop
from bgp_validator.pipeline.sink import ResultWriter
from bgp_validator.utils.config import get_config_manager
from bgp_validator.utils.error_handling import (
    BGPValidatorError, ErrorFormatter, ValidationError, handle_errors,
    print_success, print_warning, validate_common_args,
)
from bgp_validator.utils.logging import LoggingTimer, get_logger, setup_logging
from bgp_validator.validators.rpki import RoutinatorValidator

VERDICT_EXIT_CODES = {
    Verdict.VALID: 0,
    Verdict.INVALID: 1,
    Verdict.UNKNOWN: 2,
}


def build_validator(validator_config) -> RoutinatorValidator:
    """Create the RPKI validity client from the validator config section"""
    return RoutinatorValidator(
        scheme=validator_config.scheme,
        host=validator_config.host,
        path=validator_config.path,
        check_url=validator_config.check_url,
        cache_size=validator_config.cache_size,
    )


STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _install_stop_handlers(stream: RisLiveStream) -> dict:
    """SIGINT/SIGTERM end the session the same way the deadline does.

    Returns the handlers that were replaced, for _restore_handlers.
    """
    def _stop(signum, frame):
        get_logger('subscribe').info(f"Received signal {signum}, stopping stream")
        stream.kill()

    previous = {}
    for signum in STOP_SIGNALS:
        previous[signum] = signal.getsignal(signum)
        signal.signal(signum, _stop)
    return previous


def _restore_handlers(previous: dict):
    for signum, handler in previous.items():
        # None means the handler was not installed from Python
        signal.signal(signum, handler if handler is not None else signal.SIG_DFL)


@handle_errors('bgp-validator.subscribe')
def cmd_subscribe(args, config):
    """Subscribe to RIS Live and write origin facts to the result file"""
    logger = get_logger('subscribe')
    rislive = config.rislive

    duration = args.duration or rislive.duration
    client_id = args.client_id or rislive.client_id
    only_ipv4 = args.only_ipv4 or rislive.only_ipv4
    output = args.output or config.output.result_file
    policy = EmissionPolicy(args.policy or config.validator.emission_policy)

    validator = None
    if policy is not EmissionPolicy.ALL:
        validator = build_validator(config.validator)

    directive = ClientDirective(
        host=rislive.filter.host,
        bgp_type=rislive.filter.type,
        require=rislive.filter.require,
    )

    try:
        with ResultWriter(output, annotate=policy is EmissionPolicy.ANNOTATE) as sink, \
                LoggingTimer(logger, f"RIS Live session ({duration}s)"), \
                RisLiveStream(
                    make_subscribe_url(client_id, rislive.host),
                    directive=directive,
                    duration=duration,
                    queue_size=rislive.queue_size,
                ) as stream:
            previous_handlers = _install_stop_handlers(stream)
            try:
                loop = IngestionLoop(
                    stream,
                    sink,
                    only_ipv4=only_ipv4,
                    validator=validator,
                    policy=policy,
                    fail_closed=config.validator.fail_closed,
                )
                stats = loop.run()
            finally:
                _restore_handlers(previous_handlers)
            stream_stats = stream.get_stats()
    finally:
        if validator is not None:
            validator.close()

    print_success("RIS Live session complete:")
    print(f"  Messages received: {stream_stats['messages_received']}")
    print(f"  Reconnects: {stream_stats['reconnects']}")
    for line in stats.to_summary().splitlines():
        print(f"  {line}")
    print(f"  Output file: {output}")

    return 0


@handle_errors('bgp-validator.validate')
def cmd_validate(args, config):
    """Look up the RPKI verdict for a single origin AS and prefix"""
    with build_validator(config.validator) as validator:
        verdict = validator.validate(args.asn, args.prefix)

    if verdict is Verdict.VALID:
        print_success(f"AS{args.asn} {args.prefix}: valid")
    elif verdict is Verdict.INVALID:
        print_warning(f"AS{args.asn} {args.prefix}: invalid")
    else:
        print_warning(f"AS{args.asn} {args.prefix}: unknown",
                      "Check that the RPKI validator is reachable")
    return VERDICT_EXIT_CODES[verdict]


@handle_errors('bgp-validator.check-validator')
def cmd_check_validator(args, config):
    """Check that the RPKI validity endpoint is ready"""
    validator_config = config.validator
    validator = RoutinatorValidator(
        scheme=validator_config.scheme,
        host=validator_config.host,
        path=validator_config.path,
        check_url=True,
        cache_size=0,
    )
    validator.close()
    print_success(f"RPKI validator ready at {validator.url}")
    return 0


def create_parser():
    """Create and configure argument parser"""
    parser = argparse.ArgumentParser(
        prog='bgp-validator',
        description='BGP Validator - RIS Live origin collector with RPKI validation',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument('--version', action='version', version=f'bgp-validator {__version__}')
    parser.add_argument('--config',
                        help='Configuration file (default: ./config.json, '
                             '~/.config/bgp-validator/config.json or ~/config.json)')

    verbose_group = parser.add_mutually_exclusive_group()
    verbose_group.add_argument('-v', '--verbose', action='store_true',
                               help='Enable verbose logging')
    verbose_group.add_argument('-q', '--quiet', action='store_true',
                               help='Quiet mode (warnings only)')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    subscribe_parser = subparsers.add_parser(
        'subscribe', help='Collect origin AS facts from RIS Live and validate them')
    subscribe_parser.add_argument('--duration', type=int,
                                  help='Session length in seconds (overrides config)')
    subscribe_parser.add_argument('--client-id',
                                  help='Client identifier sent to RIS Live (overrides config)')
    subscribe_parser.add_argument('--only-ipv4', action='store_true',
                                  help='Only record IPv4 prefixes')
    subscribe_parser.add_argument('-o', '--output',
                                  help='Result file (default: result)')
    subscribe_parser.add_argument('--policy', choices=[p.value for p in EmissionPolicy],
                                  help='all: record every fact; valid: only RPKI-valid facts; '
                                       'annotate: record every fact with its verdict')

    validate_parser = subparsers.add_parser(
        'validate', help='Check one origin AS and prefix against the RPKI validator')
    validate_parser.add_argument('asn', help='Origin AS number (e.g. 13335 or AS13335)')
    validate_parser.add_argument('prefix', help='Prefix in CIDR notation')

    subparsers.add_parser('check-validator', help='Check that the RPKI validator is ready')

    return parser


def main():
    """Main entry point"""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    try:
        config_manager = get_config_manager(args.config)
    except BGPValidatorError as e:
        print(ErrorFormatter.format_error(e))
        return 1

    if args.quiet:
        setup_logging(config_manager, level='WARNING')
    elif args.verbose:
        setup_logging(config_manager, level='DEBUG')
    else:
        setup_logging(config_manager)

    try:
        args = validate_common_args(args)
    except ValidationError as e:
        print(ErrorFormatter.format_error(e))
        return 1

    command_functions = {
        'subscribe': cmd_subscribe,
        'validate': cmd_validate,
        'check-validator': cmd_check_validator,
    }

    return command_functions[args.command](args, config_manager.get_config())


if __name__ == '__main__':
    sys.exit(main())
