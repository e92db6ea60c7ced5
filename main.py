#!/usr/bin/env python3
"""
Provider Orchestration - Main Entry Point

Usage:
    # Start the admin server
    python main.py server

    # Print health of every configured model tier
    python main.py status

    # Resolve a configuration key and show where it came from
    python main.py config ai.models.audio

    # Estimate the cost of a generated video
    python main.py estimate --duration 60 --engine neural
"""

import argparse
import asyncio
import json
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("orchestration")


def start_server(host: str, port: int, monitor_health: bool):
    """Run the admin API under uvicorn."""
    import uvicorn

    from services.admin import create_app

    app = create_app(monitor_health=monitor_health)
    logger.info(f"Admin server running at http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="info")


async def print_status(environment: str = None) -> bool:
    """Print health of every configured model tier. Returns True if all primaries are healthy."""
    from services.ai_models import AIModelManager
    from services.configuration import get_resolver

    manager = AIModelManager(resolver=get_resolver(environment))
    status = await manager.get_model_health_status()

    all_primary_healthy = True
    print(f"Environment: {manager.resolver.environment}")
    for service, tiers in status.items():
        print(f"\n{service}:")
        if "error" in tiers:
            print(f"  ERROR: {tiers['error']}")
            all_primary_healthy = False
            continue
        for tier, info in tiers.items():
            marker = "ok" if info["healthy"] else "UNHEALTHY"
            print(f"  {tier:<10} {info['provider']}/{info['model']:<35} {marker} (breaker: {info['circuit_breaker']})")
            if tier == "primary" and not info["healthy"]:
                all_primary_healthy = False

    return all_primary_healthy


async def print_config(key: str, environment: str = None):
    from services.configuration import default_for, get_resolver

    resolver = get_resolver(environment)
    resolved = await resolver.resolve(key, default_for(key))
    print(f"{key} ({resolved.source.value}):")
    print(json.dumps(resolved.value, indent=2, default=str))


async def print_estimate(duration: float, provider: str, engine: str, include_audio: bool):
    from services.configuration import get_resolver
    from services.cost import CostEstimator

    estimator = CostEstimator(get_resolver())
    estimate = await estimator.estimate_generation_cost(
        duration,
        include_audio=include_audio,
        provider=provider,
        engine=engine,
    )
    print(f"Estimated cost for {duration:g}s video: ${estimate.estimated_cost:.2f}")
    print(json.dumps(estimate.details, indent=2))


def main():
    from core.config import get_config

    config = get_config()

    parser = argparse.ArgumentParser(
        description="Provider Orchestration - configuration, model selection and cost",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Start admin server with periodic health probes
    python main.py server --monitor-health

    # Check model health in staging
    python main.py status --environment staging

    # Show the active audio model chain
    python main.py config ai.models.audio
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Server command
    server_parser = subparsers.add_parser("server", help="Start admin server")
    server_parser.add_argument("--host", default=config.admin_host, help="Host to bind")
    server_parser.add_argument("--port", type=int, default=config.admin_port, help="Port to bind")
    server_parser.add_argument(
        "--monitor-health",
        action="store_true",
        help="Probe every configured model once per health interval",
    )

    # Status command
    status_parser = subparsers.add_parser("status", help="Print model health")
    status_parser.add_argument("--environment", "-e", help="Environment (defaults to ENVIRONMENT)")

    # Config command
    config_parser = subparsers.add_parser("config", help="Resolve a configuration key")
    config_parser.add_argument("key", help="Dot-delimited configuration key")
    config_parser.add_argument("--environment", "-e", help="Environment (defaults to ENVIRONMENT)")

    # Estimate command
    estimate_parser = subparsers.add_parser("estimate", help="Estimate video generation cost")
    estimate_parser.add_argument("--duration", "-d", type=float, required=True, help="Video length in seconds")
    estimate_parser.add_argument("--provider", default="bedrock", help="Video provider")
    estimate_parser.add_argument("--engine", default="generative", help="Audio engine")
    estimate_parser.add_argument("--no-audio", action="store_true", help="Exclude narration")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    for issue in config.validate():
        logger.warning(f"Configuration issue: {issue}")

    if args.command == "server":
        start_server(args.host, args.port, args.monitor_health)

    elif args.command == "status":
        healthy = asyncio.run(print_status(args.environment))
        sys.exit(0 if healthy else 1)

    elif args.command == "config":
        asyncio.run(print_config(args.key, args.environment))

    elif args.command == "estimate":
        asyncio.run(print_estimate(args.duration, args.provider, args.engine, not args.no_audio))


if __name__ == "__main__":
    main()
