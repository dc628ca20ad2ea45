#!/usr/bin/env python3
"""
CLI Runner for the KYB Early-Risk Radar

Runs the pipeline locally, serves the tool protocol over HTTP, or drives a
remote server through the protocol client.
"""

import argparse
import asyncio
import json
import sys
from datetime import date

from dotenv import load_dotenv

# Load environment variables from .env file FIRST
load_dotenv()

from loguru import logger

from .config import ClientConfig, PipelineConfig, ServerConfig
from .errors import ConnectivityError, CustomerNotFoundError, KYBError, ProtocolCallError


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="kyb-radar",
        description="KYB Early-Risk Radar: multi-stage KYB risk assessment",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Assess one customer locally (deterministic fallbacks when no LLM key is set)
  kyb-radar run C001

  # Assess as of a fixed date, using another reference data directory
  kyb-radar run C003 --as-of 2025-06-30 --data-dir ./reference

  # Serve the tool protocol on port 8080
  kyb-radar serve --port 8080

  # Run through a remote server, falling back to atomic tools when needed
  kyb-radar remote C001 --server-url http://localhost:8080/mcp
"""
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run the KYB pipeline locally for one customer")
    run_parser.add_argument("customer_id", help="Customer ID from crm.json")
    run_parser.add_argument("--data-dir", default=None, help="Directory holding the reference JSON documents")
    run_parser.add_argument(
        "--as-of",
        type=date.fromisoformat,
        default=None,
        help="Assessment date for the overdue-review check (YYYY-MM-DD, default: today)"
    )

    serve_parser = subparsers.add_parser("serve", help="Serve the tool protocol over HTTP")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: KYB_SERVER_HOST or 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port (default: KYB_SERVER_PORT or 8080)")
    serve_parser.add_argument("--data-dir", default=None, help="Directory holding the reference JSON documents")

    remote_parser = subparsers.add_parser("remote", help="Run KYB through a remote protocol server")
    remote_parser.add_argument("customer_id", help="Customer ID from crm.json")
    remote_parser.add_argument("--server-url", default=None, help="Protocol base URL (default: KYB_SERVER_URL)")

    tools_parser = subparsers.add_parser("tools", help="List the tools of a remote protocol server")
    tools_parser.add_argument("--server-url", default=None, help="Protocol base URL (default: KYB_SERVER_URL)")

    return parser.parse_args(argv)


def configure_logging(verbose: bool):
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")


def _pipeline_config(data_dir) -> PipelineConfig:
    config = PipelineConfig()
    if data_dir:
        config.data_dir = data_dir
    return config


async def run_local(args) -> int:
    """Run the full pipeline in-process"""
    from .pipeline import KYBConductor

    conductor = KYBConductor(config=_pipeline_config(args.data_dir), as_of=args.as_of)
    try:
        outcome = await conductor.run_kyb(args.customer_id)
    except CustomerNotFoundError as e:
        print(json.dumps({"error": "CUSTOMER_NOT_FOUND", "message": str(e), "customer_id": args.customer_id}, indent=2))
        return 2

    print(json.dumps(outcome.to_contract(), indent=2, default=str))

    if args.verbose:
        print("\nAgent Statistics:", file=sys.stderr)
        for name, agent_stats in conductor.get_stats()["agent_stats"].items():
            print(f"  {name}:", file=sys.stderr)
            print(f"    Executions: {agent_stats.get('execution_count', 0)}", file=sys.stderr)
            print(f"    Red flags: {agent_stats.get('red_flag_count', 0)}", file=sys.stderr)
    return 0


def serve(args) -> int:
    """Serve the FastAPI app with uvicorn"""
    import uvicorn

    from .pipeline import KYBConductor
    from .protocol import create_app

    config = ServerConfig()
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port

    app = create_app(KYBConductor(config=_pipeline_config(args.data_dir)), config)
    logger.info(f"Serving {config.name} on http://{config.host}:{config.port}/mcp")
    uvicorn.run(app, host=config.host, port=config.port, log_level="debug" if args.verbose else "info")
    return 0


def _client_config(server_url) -> ClientConfig:
    config = ClientConfig()
    if server_url:
        config.server_url = server_url
    return config


def run_remote(args) -> int:
    from .protocol import ProtocolClient, RemoteKYBOrchestrator

    with ProtocolClient(_client_config(args.server_url)) as client:
        result = RemoteKYBOrchestrator(client).run_kyb(args.customer_id)
    print(json.dumps(result, indent=2, default=str))
    return 0


def list_tools(args) -> int:
    from .protocol import ProtocolClient

    with ProtocolClient(_client_config(args.server_url)) as client:
        for tool in client.list_tools():
            required = ", ".join(tool.get("inputSchema", {}).get("required", []))
            print(f"{tool.get('name')}({required})")
            print(f"    {tool.get('description', '')}")
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)

    try:
        if args.command == "run":
            return asyncio.run(run_local(args))
        if args.command == "serve":
            return serve(args)
        if args.command == "remote":
            return run_remote(args)
        if args.command == "tools":
            return list_tools(args)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
    except (ConnectivityError, ProtocolCallError) as e:
        logger.error(f"Protocol server error: {e}")
        return 1
    except KYBError as e:
        logger.error(f"KYB error: {e}")
        if args.verbose:
            logger.exception(e)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
