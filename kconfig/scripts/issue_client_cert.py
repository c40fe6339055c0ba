#!/usr/bin/env python3
"""Create a kubeconfig with a client certificate issued by the cluster CA."""

import argparse
import dataclasses
import sys
from pathlib import Path

from kubernetes import config as k8s_config

from kconfig.lib.authority_client import AuthorityClient
from kconfig.lib.cancellation import CancellationToken
from kconfig.lib.config import CertConfig
from kconfig.lib.issuer import CertificateIssuer
from kconfig.lib.kubeconfig import default_kubeconfig_path, load_profile
from kconfig.lib.logging_config import LOGGER, set_verbose
from kconfig.lib.models import IdentityRequest
from kconfig.lib.sink import ProfileSink


def positive_seconds(value: str) -> float:
    """argparse type for a strictly positive number of seconds."""
    try:
        seconds = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number of seconds: {value!r}") from None
    if seconds <= 0:
        raise argparse.ArgumentTypeError(f"must be greater than 0, got {value}")
    return seconds


def main() -> int:
    """Issue a client certificate and write a kubeconfig using it.

    Returns:
        Exit code (0 for success, 1 for failure or cancellation)
    """
    parser = argparse.ArgumentParser(
        description="Create kubeconfig file with a client certificate approved through the CSR API"
    )
    parser.add_argument(
        "-u",
        "--username",
        required=True,
        help="User name (CN of the client certificate)",
    )
    parser.add_argument(
        "-g",
        "--group",
        dest="groups",
        action="append",
        required=True,
        help="Group name (O of the client certificate), repeatable",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Output file (default: stdout)",
    )
    parser.add_argument(
        "--kubeconfig",
        type=Path,
        default=None,
        help="Base kubeconfig used to reach the cluster (default: $KUBECONFIG or ~/.kube/config)",
    )
    parser.add_argument(
        "--context",
        default=None,
        help="Context in the base kubeconfig to use (default: its current-context)",
    )
    parser.add_argument(
        "--timeout",
        type=positive_seconds,
        default=None,
        help="Seconds to wait for the certificate before giving up (default: no limit)",
    )
    parser.add_argument(
        "--expiration-seconds",
        type=int,
        default=None,
        help="Requested certificate lifetime in seconds (default: signer default)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args()
    set_verbose(args.verbose)

    try:
        identity = IdentityRequest(subject_name=args.username, groups=tuple(args.groups))
    except ValueError as e:
        parser.error(str(e))

    kubeconfig_path = args.kubeconfig or default_kubeconfig_path()
    config = CertConfig(expiration_seconds=args.expiration_seconds)

    try:
        base_profile = load_profile(kubeconfig_path)
        if args.context:
            base_profile = dataclasses.replace(base_profile, current_context=args.context)

        api_client = k8s_config.new_client_from_config(
            config_file=str(kubeconfig_path), context=args.context
        )
        issuer = CertificateIssuer(AuthorityClient(api_client, config), config)

        token = CancellationToken()
        if args.timeout is not None:
            token.cancel_after(args.timeout)

        LOGGER.info("Issuing client certificate for: %s", identity.request_name)
        try:
            result = issuer.issue(identity, base_profile, ProfileSink(args.output), token)
        finally:
            token.disarm()

        if not result.succeeded:
            LOGGER.error(
                "Timed out waiting for CSR %s; it was left in place for inspection",
                result.request_name,
            )
            return 1

        LOGGER.info("Kubeconfig written for context: %s", result.profile.current_context)
        if args.output:
            LOGGER.info("  Output: %s", args.output)
        if result.cleanup_error:
            LOGGER.warning("CSR %s was not deleted: %s", result.request_name, result.cleanup_error)
        return 0

    except FileNotFoundError as e:
        LOGGER.error("Kubeconfig not found: %s", e)
        return 1
    except Exception as e:
        LOGGER.error("Client certificate issuance failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
