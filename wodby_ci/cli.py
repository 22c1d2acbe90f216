"""Command-line entrypoint for the Wodby CI pipeline."""

from __future__ import annotations

import argparse
import contextlib
import json
import logging
import os
import sys
from typing import Dict, Mapping, Optional, Sequence

from . import __version__
from .config import Settings, load_local_env
from .errors import WodbyCIError
from .stages import build_services, deploy_services, init_pipeline, release_services, run_container
from .stages.release import DEFAULT_LATEST_BRANCH
from .tasks import DEFAULT_INTERVAL, DEFAULT_TIMEOUT

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "version":
        print(__version__)
        return 0

    load_local_env()
    settings = Settings.from_env().with_overrides(
        api_key=args.api_key,
        access_token=args.access_token,
        api_endpoint=args.api_endpoint,
        state_path=args.ci_config_path,
        verbose=args.verbose,
    )
    _configure_logging(settings.verbose)

    handlers = {
        "init": _handle_init,
        "build": _handle_build,
        "release": _handle_release,
        "deploy": _handle_deploy,
        "run": _handle_run,
    }
    handler = handlers.get(args.ci_command)
    if handler is None:
        parser.error(f"Unknown command '{args.ci_command}'")
        return 1

    try:
        # Progress output goes to stderr; stdout carries only the result record.
        with contextlib.redirect_stdout(sys.stderr):
            payload = handler(args, settings)
    except WodbyCIError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    _print_json(payload)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="wodby", description="Wodby CI pipeline helpers.")
    parser.add_argument("--api-key", help="API key (env: WODBY_API_KEY).")
    parser.add_argument("--access-token", help="Access token (env: WODBY_ACCESS_TOKEN).")
    parser.add_argument("--api-endpoint", help="API endpoint (env: WODBY_API_ENDPOINT).")
    parser.add_argument("--ci-config-path", help="CI state file path (env: WODBY_CI_CONFIG_PATH).")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("version", help="Print the version.")

    ci = subparsers.add_parser("ci", help="CI pipeline stages.")
    ci_sub = ci.add_subparsers(dest="ci_command", required=True)

    init = ci_sub.add_parser("init", help="Fetch the build config and initialize the CI state.")
    init.add_argument("id", help="Build ID, or app instance ID with --new-build.")
    init.add_argument("-c", "--context", help="Build context directory (default: current directory).")
    init.add_argument("--fix-permissions", action="store_true", help="Chown the codebase to the main image user.")
    init.add_argument("--dind", action="store_true", help="Stage the codebase in a data container.")
    init.add_argument("--new-build", action="store_true", help="Create a new CI build for an app instance.")
    init.add_argument("-n", "--build-number")
    init.add_argument("--build-url")
    init.add_argument("--provider", help="CI provider name override.")

    build = ci_sub.add_parser("build", help="Build service images.")
    build.add_argument("services", nargs="+", metavar="SERVICE", help="Service name or `prefix-` pattern.")
    build.add_argument("--from", dest="copy_from", default=".", help="Path copied from the context.")
    build.add_argument("--to", dest="copy_to", default=".", help="Destination path in the image.")
    build.add_argument("-f", "--dockerfile", help="Dockerfile used for every service (relative to the context).")

    release = ci_sub.add_parser("release", help="Push built images.")
    release.add_argument("services", nargs="*", metavar="SERVICE")
    release.add_argument("-t", "--tag", dest="registry", help="Custom registry (host/project) to release into.")
    release.add_argument("-l", "--latest-branch", default=DEFAULT_LATEST_BRANCH)
    release.add_argument("-b", "--branch-tag", action="store_true", help="Also tag images with the branch name.")

    deploy = ci_sub.add_parser("deploy", help="Deploy released images.")
    deploy.add_argument("services", nargs="*", metavar="SERVICE")
    deploy.add_argument("-n", "--build-number")
    deploy.add_argument("--build-url")
    deploy.add_argument("--tag", help="Git tag override.")
    deploy.add_argument("--post-deploy", action=argparse.BooleanOptionalAction, default=False)
    deploy.add_argument("--wait", action="store_true", help="Wait for the deployment task to finish.")
    deploy.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT)
    deploy.add_argument("--interval", type=float, default=DEFAULT_INTERVAL)

    run = ci_sub.add_parser("run", help="Run a command in a service container.")
    target = run.add_mutually_exclusive_group()
    target.add_argument("-s", "--service")
    target.add_argument("-i", "--image")
    run.add_argument("-v", "--volume", dest="volumes", action="append", default=[])
    run.add_argument("-e", "--env", action="append", default=[])
    run.add_argument("-u", "--user")
    run.add_argument("--entrypoint")
    run.add_argument("-p", "--path", help="Container working directory.")
    run.add_argument("cmd", nargs=argparse.REMAINDER, metavar="COMMAND")

    return parser


def _handle_init(args: argparse.Namespace, settings: Settings) -> Dict[str, object]:
    result = init_pipeline(
        args.id,
        settings=settings,
        environ=os.environ,
        context=args.context,
        fix_permissions=args.fix_permissions,
        dind=args.dind,
        new_build=args.new_build,
        build_number=args.build_number,
        build_url=args.build_url,
        provider=args.provider,
    )
    return result.to_dict()


def _handle_build(args: argparse.Namespace, settings: Settings) -> Dict[str, object]:
    result = build_services(
        args.services,
        settings=settings,
        copy_from=args.copy_from,
        copy_to=args.copy_to,
        dockerfile=args.dockerfile,
    )
    return result.to_dict()


def _handle_release(args: argparse.Namespace, settings: Settings) -> Dict[str, object]:
    result = release_services(
        args.services,
        settings=settings,
        registry=args.registry,
        latest_branch=args.latest_branch,
        branch_tag=args.branch_tag,
    )
    return result.to_dict()


def _handle_deploy(args: argparse.Namespace, settings: Settings) -> Dict[str, object]:
    result = deploy_services(
        args.services,
        settings=settings,
        build_number=args.build_number,
        build_url=args.build_url,
        tag=args.tag,
        post_deployment=args.post_deploy,
        wait=args.wait,
        timeout=args.timeout,
        interval=args.interval,
    )
    return result.to_dict()


def _handle_run(args: argparse.Namespace, settings: Settings) -> Dict[str, object]:
    command = list(args.cmd)
    if command and command[0] == "--":
        command = command[1:]
    result = run_container(
        command,
        settings=settings,
        service=args.service,
        image=args.image,
        volumes=args.volumes,
        env=args.env,
        user=args.user,
        entrypoint=args.entrypoint,
        path=args.path,
    )
    return result.to_dict()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


def _print_json(payload: Mapping[str, object]) -> None:
    print(json.dumps(payload, indent=2, default=str))


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
