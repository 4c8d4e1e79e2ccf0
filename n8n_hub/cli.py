"""Terminal client for n8n-hub.

Usage:
    n8n-hub instances list
    n8n-hub instances add "Production" https://n8n.example.com KEY
    n8n-hub refresh --force
    n8n-hub search "invoice" --tag finance
    n8n-hub toggle https_n8n_example_com:42
    n8n-hub serve --port 8000
"""

from __future__ import annotations

import asyncio
import logging
import sys
from argparse import ArgumentParser, Namespace

from n8n_hub.errors import HubError
from n8n_hub.models import WorkflowItem, status_icon


def _print_items(items: list[WorkflowItem]) -> None:
    if not items:
        print("(no workflows)")
        return
    for item in items:
        print(f"{item.unique_key:<40} {item.title}  [{item.subtitle}]  #{item.accessory}")


# ---------------------------------------------------------------------------
# Command runners
# ---------------------------------------------------------------------------


async def _run(args: Namespace) -> int:
    try:
        from dotenv import load_dotenv
        load_dotenv()
    except ImportError:
        pass

    from n8n_hub.aggregator import format_refresh_report
    from n8n_hub.client import HubSettings
    from n8n_hub.hub import WorkflowHub

    hub = await WorkflowHub.open(HubSettings.from_env())
    try:
        await hub.registry.seed_from_env()

        if args.command == "instances":
            return await _run_instances(hub, args)

        if args.command == "refresh":
            result = await hub.refresh_workflows(force_fresh=args.force)
            print(format_refresh_report(result))
            return 0 if result.reachable or not result.attempted else 1

        if args.command == "search":
            result = await hub.search(args.query, args.tag, args.instance, args.escalate)
            print(f"tier: {result.tier}")
            _print_items(result.items)
            for name, msg in result.errors.items():
                print(f"! {name}: {msg}", file=sys.stderr)
            return 0

        if args.command == "list":
            items = await hub.initial_view()
            if items is None:
                print("No cached workflows yet; run 'n8n-hub refresh'.")
                return 0
            _print_items(items)
            return 0

        if args.command == "toggle":
            item = await hub.toggle_activation(await hub.find_item(args.unique_key))
            print(f"{item.title}: {'Active' if item.active else 'Inactive'}")
            return 0

        if args.command == "create":
            item, url = await hub.create_workflow(args.instance, args.name)
            print(f"Created {item.unique_key}: {url}")
            return 0

        return 1
    except HubError as exc:
        print(f"Error ({type(exc).__name__}): {exc}", file=sys.stderr)
        return 1
    finally:
        await hub.close()


async def _run_instances(hub, args: Namespace) -> int:
    if args.action == "list":
        statuses = await hub.status_cache.get_all()
        instances = await hub.list_instances()
        if not instances:
            print("(no instances configured)")
        for inst in instances:
            status = statuses.get(inst.id)
            detail = f"  ({status.error})" if status and status.error else ""
            print(f"{status_icon(status)} {inst.id:<32} {inst.name:<20} {inst.base_url}{detail}")
    elif args.action == "add":
        instance, status = await hub.add_instance(args.name, args.base_url, args.api_key, args.color)
        print(f"Added {instance.name} ({instance.id})")
        if not status.is_active:
            print(f"Warning: connection test failed: {status.error}", file=sys.stderr)
    elif args.action == "edit":
        instance = await hub.edit_instance(
            args.instance_id, name=args.name, credential=args.api_key, color_tag=args.color
        )
        print(f"Updated {instance.name} ({instance.id})")
    elif args.action == "remove":
        removed = await hub.remove_instance(args.instance_id)
        print(f"Removed {removed.name}")
    elif args.action == "status":
        status = await hub.refresh_instance_status(args.instance_id)
        print(f"{status_icon(status)} {status.error or 'Connection successful'}")
    return 0


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="n8n-hub",
        description="Search and manage workflows across n8n instances",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    inst_p = sub.add_parser("instances", help="Manage configured n8n instances")
    inst_sub = inst_p.add_subparsers(dest="action", metavar="ACTION", required=True)
    inst_sub.add_parser("list", help="List instances with their last known status")
    add_p = inst_sub.add_parser("add", help="Add an instance")
    add_p.add_argument("name")
    add_p.add_argument("base_url")
    add_p.add_argument("api_key")
    add_p.add_argument("--color", default=None)
    edit_p = inst_sub.add_parser("edit", help="Rename, rotate key or recolor an instance")
    edit_p.add_argument("instance_id")
    edit_p.add_argument("--name", default=None)
    edit_p.add_argument("--api-key", dest="api_key", default=None)
    edit_p.add_argument("--color", default=None)
    rm_p = inst_sub.add_parser("remove", help="Remove an instance and its cached workflows")
    rm_p.add_argument("instance_id")
    st_p = inst_sub.add_parser("status", help="Probe an instance now")
    st_p.add_argument("instance_id")

    sub.add_parser("list", help="Show the cached workflow list")

    ref_p = sub.add_parser("refresh", help="Re-fetch workflows from every online instance")
    ref_p.add_argument("--force", action="store_true", help="Re-probe every instance first")

    search_p = sub.add_parser("search", help="Search workflows")
    search_p.add_argument("query")
    search_p.add_argument("--tag", default=None)
    search_p.add_argument("--instance", default=None, help="Restrict to one instance id")
    search_p.add_argument("--escalate", action="store_true", help="Run every search tier")

    toggle_p = sub.add_parser("toggle", help="Activate or deactivate a workflow")
    toggle_p.add_argument("unique_key", help="instance_id:workflow_id")

    create_p = sub.add_parser("create", help="Create an empty workflow")
    create_p.add_argument("instance", help="Instance id")
    create_p.add_argument("name")

    serve_p = sub.add_parser("serve", help="Run the HTTP API")
    serve_p.add_argument("--host", default="127.0.0.1")
    serve_p.add_argument("--port", type=int, default=8000)

    return parser


def main() -> None:
    from n8n_hub.client import HubSettings

    level = HubSettings.from_env().log_level
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")

    parser = build_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if args.command == "serve":
        import uvicorn
        uvicorn.run("n8n_hub.api:app", host=args.host, port=args.port)
        return

    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
