"""
Client entry point.

Loads configuration, configures logging, logs in and lists the caller's
organizations (or joins one by code).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

import structlog

from taskhub_shared.logging import configure_logging

from .api import TaskhubApi
from .config import ClientConfig, load_config
from .errors import ApiError
from .session import SessionClient, SessionContext


async def run_command(config: ClientConfig, join_code: str | None = None) -> int:
    log = structlog.get_logger()
    async with SessionContext(config) as context:
        async with SessionClient(context) as session:
            try:
                await session.login(config.email, config.password)
                api = TaskhubApi(session)
                if join_code:
                    org = await api.join_org(join_code)
                    print(org.model_dump_json(indent=2))
                else:
                    orgs = await api.list_orgs()
                    print(json.dumps(orgs.model_dump(mode="json")["data"], indent=2))
            except ApiError as exc:
                log.error("client.request_failed", status=exc.status_code, code=exc.code, reason=exc.message)
                return 1
            finally:
                if session.credentials.has_any():
                    await session.logout()
    return 0


def run() -> None:
    """CLI entry point for the client."""
    parser = argparse.ArgumentParser(description="Taskhub client")
    parser.add_argument(
        "-c", "--config",
        default="taskhub-client.yaml",
        help="Path to configuration file (default: taskhub-client.yaml)",
    )
    parser.add_argument("--join", default=None, help="Join an organization by its join code")
    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except FileNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    except Exception as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(1)

    if not config.email or not config.password:
        print(f"Error: set 'email' in the config and the {config.password_env} variable", file=sys.stderr)
        sys.exit(1)

    configure_logging(config.logging.level, config.logging.format)
    log = structlog.get_logger()
    log.info("client.config_loaded", config_path=args.config, base_url=config.base_url)

    sys.exit(asyncio.run(run_command(config, args.join)))


if __name__ == "__main__":
    run()
