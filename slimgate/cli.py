#!/usr/bin/env python3
"""
SlimGate CLI — Minify container images from the command line.

Usage:
    python -m slimgate.cli minify <image> [options]
    python -m slimgate.cli compare <image> [options]
    python -m slimgate.cli args [options]
    python -m slimgate.cli verify-ledger

Exit status: 0 minified, 2 engine failed (original image kept), 1 error.
"""

import argparse
import json
import sys
from typing import Any, Dict, List, Optional

from .args import build_args
from .config import FIELD_ORDER, SlimConfig, config_from_mapping, load_config
from .errors import ConfigurationError
from .ledger import verify_chain
from .pipeline import compare, minify
from .schemas import RunParameters

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_FALLBACK = 2


def _engine_options() -> argparse.ArgumentParser:
    """Options that land in SlimConfig; repeatable flags append."""
    p = argparse.ArgumentParser(add_help=False)
    g = p.add_argument_group("engine options")
    g.add_argument("--config", help="YAML config file (default: $SLIMGATE_CONFIG)")
    g.add_argument("--include-path", dest="include_paths", action="append", metavar="PATH")
    g.add_argument("--include-bin", dest="include_bins", action="append", metavar="PATH")
    g.add_argument("--include-exe", dest="include_exes", action="append", metavar="NAME")
    g.add_argument("--preserve-path", dest="preserve_paths", action="append", metavar="PATH")
    g.add_argument("--exclude-pattern", dest="exclude_patterns", action="append", metavar="GLOB")
    g.add_argument("--env", dest="env_vars", action="append", metavar="K=V")
    g.add_argument("--exec", dest="exec_probes", action="append", metavar="CMD",
                   help="Exec probe (only the first one is passed on)")
    g.add_argument("--http-probe-cmd", dest="http_probe_cmds", action="append", metavar="CMD")
    g.add_argument("--expose", dest="expose_ports", action="append", metavar="PORT")
    g.add_argument("--publish-port", dest="publish_ports", action="append", metavar="PORT")
    for name in ("include_shell", "include_new", "include_zoneinfo", "source_ptrace"):
        g.add_argument(f"--{name.replace('_', '-')}", dest=name,
                       action=argparse.BooleanOptionalAction, default=None)
    g.add_argument("--sensor-ipc-mode", dest="sensor_ipc_mode")
    g.add_argument("--sensor-ipc-endpoint", dest="sensor_ipc_endpoint")
    g.add_argument("--image-build-engine", dest="image_build_engine")
    g.add_argument("--image-build-arch", dest="image_build_arch")

    r = p.add_argument_group("runtime options")
    r.add_argument("--engine-image", dest="engine_image")
    r.add_argument("--daemon-image", dest="daemon_image")
    r.add_argument("--daemon-start-timeout", dest="daemon_start_timeout", type=float)
    r.add_argument("--work-dir", dest="work_dir")
    r.add_argument("--output-tag", dest="output_tag", help="Host tag for the minified image")
    return p


def _run_options() -> argparse.ArgumentParser:
    """Per-call RunParameters."""
    p = argparse.ArgumentParser(add_help=False)
    g = p.add_argument_group("run options")
    g.add_argument("--mode", default="docker")
    g.add_argument("--http-probe", dest="probe_http",
                   action=argparse.BooleanOptionalAction, default=True)
    g.add_argument("--http-probe-exit-on-failure", dest="probe_http_exit_on_failure",
                   action=argparse.BooleanOptionalAction, default=True)
    g.add_argument("--publish-exposed-ports", dest="publish_exposed_ports",
                   action=argparse.BooleanOptionalAction, default=True)
    g.add_argument("--http-probe-ports", dest="probe_http_ports", default="", metavar="CSV")
    g.add_argument("--continue-after", dest="continue_after", default="")
    g.add_argument("--show-clogs", dest="show_clogs", action="store_true")
    g.add_argument("--debug", action="store_true")
    return p


def build_config(args: argparse.Namespace) -> SlimConfig:
    """Config file first, then command-line flags on top."""
    config = load_config(getattr(args, "config", None))
    overrides: Dict[str, Any] = {}
    for name in FIELD_ORDER:
        value = getattr(args, name, None)
        if value is not None:
            overrides[name] = value
    return config_from_mapping(overrides, config)


def build_params(args: argparse.Namespace) -> RunParameters:
    return RunParameters(
        mode=args.mode,
        probe_http=args.probe_http,
        probe_http_exit_on_failure=args.probe_http_exit_on_failure,
        probe_http_ports=args.probe_http_ports,
        publish_exposed_ports=args.publish_exposed_ports,
        continue_after=args.continue_after,
        show_clogs=args.show_clogs,
        debug=args.debug,
    )


def cmd_minify(args):
    """Minify an image."""
    try:
        config = build_config(args)
    except ConfigurationError as e:
        print(f"Error: {e}")
        return EXIT_ERROR

    result = minify(args.image, config, build_params(args), ledger=not args.no_ledger)
    if result.ok:
        print(result.image.ref)
        return EXIT_OK
    if result.fell_back:
        return EXIT_FALLBACK
    return EXIT_ERROR


def cmd_compare(args):
    """Minify, then create a before/after inspection container."""
    try:
        config = build_config(args)
    except ConfigurationError as e:
        print(f"Error: {e}")
        return EXIT_ERROR

    result = compare(args.image, config, params=build_params(args), ledger=not args.no_ledger)
    if result.error is not None:
        return EXIT_ERROR
    print(result.inspection.container)
    return EXIT_OK


def cmd_args(args):
    """Print the engine argument vector without running anything."""
    try:
        settings = build_config(args).freeze()
    except ConfigurationError as e:
        print(f"Error: {e}")
        return EXIT_ERROR

    cargs = build_args(settings, build_params(args), args.target)
    if args.json:
        print(json.dumps(cargs))
    else:
        for token in cargs:
            print(token)
    return EXIT_OK


def cmd_verify_ledger(args):
    """Verify the provenance ledger chain."""
    valid, error = verify_chain()
    if valid:
        print("✅ Ledger chain is intact")
        return EXIT_OK
    print(f"❌ Chain broken: {error}")
    return EXIT_ERROR


def make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="SlimGate — container image minification through an ephemeral daemon"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    engine_opts = _engine_options()
    run_opts = _run_options()

    # minify
    minify_parser = subparsers.add_parser("minify", parents=[engine_opts, run_opts],
                                          help="Minify an image")
    minify_parser.add_argument("image", help="Source image reference")
    minify_parser.add_argument("--no-ledger", action="store_true", help="Skip the provenance record")
    minify_parser.set_defaults(func=cmd_minify)

    # compare
    compare_parser = subparsers.add_parser("compare", parents=[engine_opts, run_opts],
                                           help="Minify and stage /before and /after for inspection")
    compare_parser.add_argument("image", help="Source image reference")
    compare_parser.add_argument("--no-ledger", action="store_true", help="Skip the provenance record")
    compare_parser.set_defaults(func=cmd_compare)

    # args
    args_parser = subparsers.add_parser("args", parents=[engine_opts, run_opts],
                                        help="Print the engine argument vector")
    args_parser.add_argument("--target", default="<target>", help="Target reference to render")
    args_parser.add_argument("--json", action="store_true", help="Print as a JSON list")
    args_parser.set_defaults(func=cmd_args)

    # verify-ledger
    verify_parser = subparsers.add_parser("verify-ledger", help="Verify ledger chain integrity")
    verify_parser.set_defaults(func=cmd_verify_ledger)

    return parser


def main(argv: Optional[List[str]] = None):
    args = make_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
