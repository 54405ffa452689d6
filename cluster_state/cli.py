"""Command line entry point: ``cluster-state <command> [options]``."""

from __future__ import annotations

import argparse
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

from .config import AUTO, DEFAULT_CLUSTER_NAME, DEFAULT_K8S_VERSION, PROVIDERS, Settings
from .errors import CancelledByUser, ClusterStateError
from .lifecycle import ClusterApplier, ClusterCreator, ClusterDeleter, ClusterRestarter
from .log import attach_log_file, build_logger
from .operation import Operation
from .pause import ClusterPauser
from .resume import ClusterResumer
from .runner import CommandRunner

DESCRIPTION = "Create, pause, resume, restart and delete local Kubernetes clusters (minikube, kind, k3d)."

EPILOG = """examples:
  cluster-state create --name dev --provider kind --nodes 3
  cluster-state apply --name dev --provider k3d --manifests ./k8s
  cluster-state pause --name dev --no-drain
  cluster-state resume --name dev --restore-workloads
  cluster-state resume --state-file ~/.kube/cluster-states/dev-kind.state
  cluster-state restart --name dev --provider k3d --force
  cluster-state delete --name dev --provider kind --dry-run
"""


class UsageParser(argparse.ArgumentParser):
    """Argument parser that reports usage problems on stdout with exit status 1."""

    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stdout)
        sys.stdout.write(f"ERROR {message}\n")
        raise SystemExit(1)


class HelpAction(argparse.Action):
    def __init__(self, option_strings, dest=argparse.SUPPRESS, default=argparse.SUPPRESS, help=None) -> None:
        super().__init__(option_strings=option_strings, dest=dest, default=default, nargs=0, help=help)

    def __call__(self, parser, namespace, values, option_string=None) -> None:
        parser.print_help(sys.stdout)
        raise SystemExit(1)


def positive_int(value: str) -> int:
    text = value.strip()
    if not text.isdigit() or int(text) < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer: {value}")
    return int(text)


def add_common_options(parser: argparse.ArgumentParser, short_verbose: bool = True) -> None:
    parser.add_argument("-h", "--help", action=HelpAction, help="Display this help message")
    parser.add_argument("--dry-run", action="store_true", help="Report vendor commands without running them")
    parser.add_argument("--log", type=Path, metavar="FILE", help="Also write log output to FILE")
    verbose_flags = ["-v", "--verbose"] if short_verbose else ["--verbose"]
    parser.add_argument(*verbose_flags, dest="verbose", action="store_true", help="Log every vendor command")


def add_timeout(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-t", "--timeout", type=positive_int, metavar="SECONDS", help="Timeout for waits (default: $CLUSTER_STATE_TIMEOUT or 300)")


def add_create_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-n", "--name", default=DEFAULT_CLUSTER_NAME, help=f"Cluster name (default: {DEFAULT_CLUSTER_NAME})")
    parser.add_argument("-p", "--provider", choices=PROVIDERS, help="Provider (default: $CLUSTER_STATE_PROVIDER or minikube)")
    parser.add_argument("-c", "--nodes", type=positive_int, default=1, help="Number of nodes (default: 1)")
    parser.add_argument("-v", "--version", dest="k8s_version", default=DEFAULT_K8S_VERSION, help="Kubernetes version (default: latest)")
    parser.add_argument("-f", "--config", type=Path, metavar="FILE", help="Provider-specific cluster config file")
    add_timeout(parser)


def build_parser() -> UsageParser:
    parser = UsageParser(
        prog="cluster-state",
        description=DESCRIPTION,
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
    )
    parser.add_argument("-h", "--help", action=HelpAction, help="Display this help message")
    commands = parser.add_subparsers(dest="command", metavar="<command>")

    create = commands.add_parser("create", help="Create a local cluster", add_help=False)
    add_create_options(create)
    add_common_options(create, short_verbose=False)

    apply = commands.add_parser("apply", help="Create a cluster and apply manifests in dependency order", add_help=False)
    add_create_options(apply)
    apply.add_argument("-m", "--manifests", type=Path, metavar="DIR", help="Manifest root (default: $CLUSTER_STATE_MANIFESTS or k8s)")
    apply.add_argument("--no-context-switch", dest="switch_context", action="store_false", help="Keep the current kubectl context")
    add_common_options(apply, short_verbose=False)

    delete = commands.add_parser("delete", help="Delete a local cluster", add_help=False)
    delete.add_argument("-n", "--name", required=True, help="Cluster name")
    delete.add_argument("-p", "--provider", choices=PROVIDERS, help="Provider (default: $CLUSTER_STATE_PROVIDER or minikube)")
    delete.add_argument("-f", "--force", action="store_true", help="Delete without confirmation")
    add_common_options(delete)

    restart = commands.add_parser("restart", help="Restart a local cluster", add_help=False)
    restart.add_argument("-n", "--name", required=True, help="Cluster name")
    restart.add_argument("-p", "--provider", choices=PROVIDERS, help="Provider (default: $CLUSTER_STATE_PROVIDER or minikube)")
    restart.add_argument("-f", "--force", action="store_true", help="Restart without confirmation")
    add_timeout(restart)
    add_common_options(restart)

    pause = commands.add_parser("pause", help="Pause a cluster and save its state", add_help=False)
    pause.add_argument("-n", "--name", required=True, help="Cluster name to pause")
    pause.add_argument("-p", "--provider", choices=PROVIDERS + (AUTO,), default=AUTO, help="Provider (default: auto-detect)")
    pause.add_argument("-f", "--force", action="store_true", help="Pause without confirmation")
    add_timeout(pause)
    pause.add_argument("--no-drain", dest="drain", action="store_false", help="Skip draining nodes before pause")
    pause.add_argument("--no-backup", dest="backup", action="store_false", help="Skip backing up workloads")
    pause.add_argument("--snapshot", action="store_true", help="Create provider-specific snapshots if available")
    pause.add_argument("--no-preserve-config", dest="preserve_kubeconfig", action="store_false", help="Don't preserve the kubeconfig")
    pause.add_argument("--state-dir", type=Path, metavar="DIR", help="State directory (default: $CLUSTER_STATE_DIR or ~/.kube/cluster-states)")
    add_common_options(pause)

    resume = commands.add_parser("resume", help="Resume a paused cluster", add_help=False)
    resume.add_argument("-n", "--name", help="Cluster name to resume")
    resume.add_argument("-p", "--provider", choices=PROVIDERS + (AUTO,), default=AUTO, help="Provider (default: auto-detect)")
    resume.add_argument("-s", "--state-file", type=Path, metavar="FILE", help="State file written by pause")
    resume.add_argument("--state-dir", type=Path, metavar="DIR", help="State directory (default: $CLUSTER_STATE_DIR or ~/.kube/cluster-states)")
    add_timeout(resume)
    resume.add_argument("--restore-workloads", dest="restore", action="store_true", help="Re-apply the workload backup")
    resume.add_argument("--skip-validation", action="store_true", help="Skip post-resume health validation")
    resume.add_argument("-f", "--force", action="store_true", help="Resume without confirmation")
    add_common_options(resume)

    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = build_parser()
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv:
        parser.print_help(sys.stdout)
        raise SystemExit(1)

    args, unknown = parser.parse_known_args(argv)
    if unknown:
        parser.error(f"Unknown option: {unknown[0]}")
    if args.command is None:
        parser.error("A command is required")
    if args.command == "resume" and not args.name and not args.state_file:
        parser.error("Either cluster name (-n, --name) or state file (-s, --state-file) is required")
    return args


def build_operation(args: argparse.Namespace, settings: Settings, runner: CommandRunner, logger) -> Operation:
    timeout = getattr(args, "timeout", None) or settings.timeout
    state_dir = getattr(args, "state_dir", None) or settings.state_dir
    provider = getattr(args, "provider", None) or settings.provider

    if args.command == "pause":
        return ClusterPauser(
            runner,
            logger,
            cluster=args.name,
            provider=provider,
            state_dir=state_dir,
            timeout=timeout,
            force=args.force,
            drain=args.drain,
            backup=args.backup,
            snapshot=args.snapshot,
            preserve_kubeconfig=args.preserve_kubeconfig,
        )
    if args.command == "resume":
        return ClusterResumer(
            runner,
            logger,
            cluster=args.name,
            provider=provider,
            state_file=args.state_file,
            state_dir=state_dir,
            timeout=timeout,
            restore=args.restore,
            skip_validation=args.skip_validation,
            force=args.force,
        )
    if args.command == "create":
        return ClusterCreator(
            runner,
            logger,
            cluster=args.name,
            provider=provider,
            timeout=timeout,
            nodes=args.nodes,
            version=args.k8s_version,
            config_file=args.config,
        )
    if args.command == "apply":
        return ClusterApplier(
            runner,
            logger,
            cluster=args.name,
            provider=provider,
            timeout=timeout,
            nodes=args.nodes,
            version=args.k8s_version,
            config_file=args.config,
            manifest_root=args.manifests or settings.manifest_root,
            switch_context=args.switch_context,
        )
    if args.command == "delete":
        return ClusterDeleter(runner, logger, cluster=args.name, provider=provider, timeout=timeout, force=args.force)
    if args.command == "restart":
        return ClusterRestarter(runner, logger, cluster=args.name, provider=provider, timeout=timeout, force=args.force)
    raise ClusterStateError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    logger = build_logger(verbose=args.verbose)
    if args.log:
        try:
            attach_log_file(logger, args.log)
        except OSError as exc:
            logger.error(f"[Log] Cannot write log file {args.log}: {exc}")
            raise SystemExit(1) from exc

    runner = CommandRunner(logger, dry_run=args.dry_run)
    try:
        settings = Settings()
        operation = build_operation(args, settings, runner, logger)
        operation.execute()
    except CancelledByUser as exc:
        logger.info(str(exc))
    except (ClusterStateError, subprocess.CalledProcessError) as exc:
        message = str(exc)
        if isinstance(exc, subprocess.CalledProcessError) and exc.stderr:
            message = f"{message}\n{exc.stderr.strip()}"
        logger.error(message)
        raise SystemExit(1) from exc


if __name__ == "__main__":  # pragma: no cover
    main()
