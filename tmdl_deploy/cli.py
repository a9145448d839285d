"""Command line entry point: ``tmdl-deploy deploy|login|logout``."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from importlib.metadata import PackageNotFoundError, version
from typing import Optional, Sequence

from .credential_resolver import ExplicitOptions
from .deploy import Deployer
from .models import DeployResult


def _package_version() -> str:
    try:
        return version("tmdl-deploy")
    except PackageNotFoundError:
        return "0.0.0"


def _add_auth_options(parser: argparse.ArgumentParser) -> None:
    mode = parser.add_argument_group("authentication")
    mode.add_argument("--interactive", action="store_true", help="Sign in as a user")
    mode.add_argument("--service-principal", action="store_true", help="Sign in as a service principal")
    mode.add_argument("--client-id", help="Service principal application (client) ID")
    mode.add_argument("--client-secret", help="Service principal client secret (never cached)")
    mode.add_argument("--tenant-id", help="Azure AD tenant ID")
    mode.add_argument("--no-browser", action="store_true",
                      help="Skip browser sign in and use the device code flow")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tmdl-deploy",
        description="Deploy TMDL semantic models to a Microsoft Fabric workspace",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {_package_version()}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    deploy_cmd = sub.add_parser("deploy", help="Create or update the semantic model in the workspace")
    deploy_cmd.add_argument("path", nargs="?", default=".", help="Path to the TMDL model folder")
    deploy_cmd.add_argument("--workspace", help="Workspace URL or ID")
    deploy_cmd.add_argument("--name", help="Semantic model display name")
    _add_auth_options(deploy_cmd)

    login_cmd = sub.add_parser("login", help="Authenticate and cache the non-secret auth state")
    _add_auth_options(login_cmd)

    sub.add_parser("logout", help="Remove the cached auth state")
    return parser


def _options(args: argparse.Namespace) -> ExplicitOptions:
    return ExplicitOptions(
        workspace=getattr(args, "workspace", None),
        name=getattr(args, "name", None),
        interactive=args.interactive,
        service_principal=args.service_principal,
        client_id=args.client_id,
        client_secret=args.client_secret,
        tenant_id=args.tenant_id,
        no_browser=args.no_browser,
    )


def _output(result: DeployResult) -> int:
    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.success else 1


def main(argv: Optional[Sequence[str]] = None, deployer: Optional[Deployer] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    # azure-identity is chatty at INFO/DEBUG; keep it to warnings unless asked
    if not args.verbose:
        logging.getLogger("azure").setLevel(logging.WARNING)

    deployer = deployer or Deployer()
    if args.command == "deploy":
        return _output(deployer.deploy(args.path, _options(args)))
    if args.command == "login":
        return _output(deployer.login(_options(args)))
    return _output(deployer.logout())
