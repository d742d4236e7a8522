"""CLI entry point for kubectl-probe."""

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from kubectl_probe.agent import AgentConfig, ProbeAgent, SinkAgent
from kubectl_probe.assertions import DEFAULT_ASSERT_TIMEOUT
from kubectl_probe.cluster import KubeconfigError, KubernetesClient, load_cluster_config
from kubectl_probe.durations import parse_duration
from kubectl_probe.logging_config import configure_logging
from kubectl_probe.models.result import SuiteResult
from kubectl_probe.runner import TestSuiteRunner
from kubectl_probe.suite_loader import load_test_suite
from kubectl_probe.watcher import DEFAULT_WATCH_TIMEOUT

CONFIG_ENV = "KUBECTL_PROBE_CONFIG"

EXIT_PASSED = 0
EXIT_FAILED = 1
EXIT_SETUP_FAILED = 2

STATUS_SYMBOLS = {
    "success": "✅",
    "failure": "❌",
    "error": "❗",
    "timeout": "⏱️",
}


def log_results_summary(log: logging.Logger, suite_result: SuiteResult) -> None:
    """Log a formatted summary of test results."""
    log.info("=" * 80)
    log.info("Test Results Summary:")
    log.info("=" * 80)

    for result in suite_result.results:
        symbol = STATUS_SYMBOLS.get(result.status, "?")
        log.info(
            "%s %s: %s (%.2fs)",
            symbol,
            result.description,
            result.status,
            result.duration,
        )
        if result.container:
            log.info("  Probe: %s/%s", result.pod, result.container)
        if result.message:
            log.info("  Message: %s", result.message)


def format_output(suite_result: SuiteResult) -> dict[str, Any]:
    """Format suite results for JSON output."""
    all_results = [
        {
            "description": result.description,
            "status": result.status,
            "duration": result.duration,
            "message": result.message,
            "pod": result.pod,
            "container": result.container,
        }
        for result in suite_result.results
    ]

    return {
        "total": len(all_results),
        "passed": sum(1 for r in all_results if r["status"] == "success"),
        "failed": sum(1 for r in all_results if r["status"] == "failure"),
        "errors": sum(1 for r in all_results if r["status"] == "error"),
        "timeouts": sum(1 for r in all_results if r["status"] == "timeout"),
        "results": all_results,
    }


async def run(
    config_path: Path,
    probe_image: str | None = None,
    kubeconfig: Path | None = None,
    context: str | None = None,
    watch_timeout: float = DEFAULT_WATCH_TIMEOUT,
    assert_timeout: float = DEFAULT_ASSERT_TIMEOUT,
) -> int:
    """Run a test suite and return exit code."""
    log = logging.getLogger("kubectl_probe")

    log.info("Loading test suite: %s", config_path)
    try:
        suite = await load_test_suite(config_path, probe_image)
        cluster_config = await load_cluster_config(kubeconfig, context)
    except (FileNotFoundError, ValueError, KubeconfigError) as e:
        log.error("%s", e)
        return EXIT_SETUP_FAILED

    if not suite.test_cases:
        log.info("No test cases provided")
        print(json.dumps(format_output(SuiteResult(results=[]))))
        return EXIT_PASSED

    log.info("Using probe image %s against %s", suite.probe_image, cluster_config.server)

    async with KubernetesClient.from_config(cluster_config) as client:
        runner = TestSuiteRunner.from_client(
            client,
            suite.probe_image,
            watch_timeout=watch_timeout,
            assert_timeout=assert_timeout,
        )
        suite_result = await runner.run(suite)

    log_results_summary(log, suite_result)

    output = format_output(suite_result)
    print(json.dumps(output, indent=2))

    return EXIT_PASSED if suite_result.passed else EXIT_FAILED


async def run_agent(agent: ProbeAgent | SinkAgent) -> int:
    """Run an agent until it is interrupted or terminated."""
    task = asyncio.current_task()
    if task is None:
        raise RuntimeError("run_agent must be awaited inside a task")
    # Probe containers are stopped with SIGTERM when their pod goes away.
    asyncio.get_running_loop().add_signal_handler(signal.SIGTERM, task.cancel)
    try:
        await agent.run()
    except asyncio.CancelledError:
        logging.getLogger("kubectl_probe").info("Agent stopped")
    return EXIT_PASSED


def _seconds(value: str) -> float:
    try:
        return parse_duration(value).total_seconds()
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _add_agent_arguments(
    parser: argparse.ArgumentParser, default_address: str | None
) -> None:
    parser.add_argument(
        "--protocol",
        default=os.environ.get("PROTOCOL", "tcp"),
        help="Transport protocol, tcp or udp (env: PROTOCOL)",
    )
    parser.add_argument(
        "--address",
        default=os.environ.get("ADDRESS", default_address),
        help="host:port to use (env: ADDRESS)",
    )
    parser.add_argument(
        "--message",
        default=os.environ.get("MESSAGE", "hello world"),
        help="Payload sent on each dial (env: MESSAGE)",
    )
    parser.add_argument(
        "--interval",
        default=os.environ.get("INTERVAL", "5s"),
        help="Time between status reports, e.g. 5s or 1m (env: INTERVAL)",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the orchestrator and both agents."""
    parser = argparse.ArgumentParser(
        prog="kubectl-probe",
        description="Verify network reachability between Kubernetes workloads",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=os.environ.get(CONFIG_ENV),
        help=f"Path to the test suite document (env: {CONFIG_ENV})",
    )
    parser.add_argument(
        "--image",
        default=None,
        help="Probe image overriding the one set in the suite",
    )
    parser.add_argument(
        "--kubeconfig",
        type=Path,
        default=None,
        help="Path to the kubeconfig file",
    )
    parser.add_argument(
        "--context",
        default=None,
        help="Kubeconfig context to use",
    )
    parser.add_argument(
        "--watch-timeout",
        type=_seconds,
        default=DEFAULT_WATCH_TIMEOUT,
        help="How long to wait for a probe container to start",
    )
    parser.add_argument(
        "--assert-timeout",
        type=_seconds,
        default=DEFAULT_ASSERT_TIMEOUT,
        help="How long to wait for a decisive probe result",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    # Lets --debug follow the subcommand without resetting an earlier one.
    debug_parent = argparse.ArgumentParser(add_help=False)
    debug_parent.add_argument(
        "--debug",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")
    probe = subparsers.add_parser(
        "probe",
        parents=[debug_parent],
        help="Dial a destination repeatedly and report counters",
    )
    _add_agent_arguments(probe, default_address=None)
    sink = subparsers.add_parser(
        "sink",
        parents=[debug_parent],
        help="Listen for probe traffic and report counters",
    )
    _add_agent_arguments(sink, default_address="0.0.0.0:8080")
    return parser


def build_agent(args: argparse.Namespace) -> ProbeAgent | SinkAgent:
    """Build the agent selected on the command line.

    Raises:
        ValueError: If the agent settings are invalid

    """
    if not args.address:
        raise ValueError("An address is required (--address or ADDRESS)")
    try:
        config = AgentConfig(
            protocol=args.protocol,
            address=args.address,
            message=args.message,
            interval=args.interval,
        )
    except ValidationError as e:
        raise ValueError(f"Invalid agent settings: {e}") from e

    if args.command == "sink":
        return SinkAgent(config=config)
    return ProbeAgent(config=config)


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command in {"probe", "sink"}:
        configure_logging(debug=args.debug, json_output=True)
        try:
            agent = build_agent(args)
        except ValueError as e:
            parser.error(str(e))
        try:
            exit_code = asyncio.run(run_agent(agent))
        except KeyboardInterrupt:
            exit_code = EXIT_PASSED
        sys.exit(exit_code)

    if args.config is None:
        parser.error(f"--config is required (or set {CONFIG_ENV})")

    configure_logging(debug=args.debug)
    exit_code = asyncio.run(
        run(
            config_path=args.config,
            probe_image=args.image,
            kubeconfig=args.kubeconfig,
            context=args.context,
            watch_timeout=args.watch_timeout,
            assert_timeout=args.assert_timeout,
        )
    )
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
