# cli/cli.py
"""
Operator CLI for the re-engagement engine.

Reviews drafts, runs the router, ingests inbound messages and maintains the
do-not-contact list against the data directory in REENGINE_DATA_DIR.
"""
from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path
from typing import Callable, Dict, Optional

# Ensure project root is in path for imports
_cli_dir = Path(__file__).parent
_project_root = _cli_dir.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from reengine.core.config import settings
from reengine.core.exceptions import BaseEngineError
from reengine.core.logging import configure_structlog
from reengine.db.csv_store import CsvStore
from reengine.schemas.records import ActionType, Approval, Channel
from reengine.services.adapters import ChannelAdapters, ConsoleAdapter, build_default_adapters
from reengine.services.approvals import ApprovalService
from reengine.services.dnc import DncService
from reengine.services.ingest import IngestService, JsonlMessageSource
from reengine.services.router import RouterService


# Output formatting utilities
def _supports_color() -> bool:
    """Check if terminal supports ANSI color codes."""
    if sys.platform == "win32":
        return os.getenv("TERM") == "xterm" or os.getenv("ANSICON") is not None
    return sys.stdout.isatty()


SUPPORTS_COLOR = _supports_color()

GREEN = '\033[92m' if SUPPORTS_COLOR else ''
RED = '\033[91m' if SUPPORTS_COLOR else ''
YELLOW = '\033[93m' if SUPPORTS_COLOR else ''
BLUE = '\033[94m' if SUPPORTS_COLOR else ''
RESET = '\033[0m' if SUPPORTS_COLOR else ''


def print_success(message: str):
    print(f"{GREEN}[✓]{RESET} {message}")


def print_error(message: str):
    print(f"{RED}[✗]{RESET} {message}")


def print_warning(message: str):
    print(f"{YELLOW}[!]{RESET} {message}")


def print_info(message: str):
    print(f"{BLUE}[i]{RESET} {message}")


def _store(args: argparse.Namespace) -> CsvStore:
    return CsvStore(getattr(args, 'data_dir', None) or settings.data_dir)


def _print_approval(row: Approval) -> None:
    print(f"  {row.approval_id}  {row.status.value:<15} {row.channel.value:<9} -> {row.draft_to}")
    if row.draft_subject:
        print(f"      subject: {row.draft_subject}")
    if row.notes:
        print(f"      notes:   {row.notes}")


# Approval commands
async def cmd_approvals_list(args: argparse.Namespace) -> int:
    """Command: List approvals, optionally by status."""
    rows = await ApprovalService(_store(args)).list_by_status(args.status)
    if not rows:
        print_info("No approvals" + (f" with status {args.status}" if args.status else ""))
        return 0
    print_info(f"{len(rows)} approval(s)")
    for row in rows:
        _print_approval(row)
    return 0


async def cmd_approvals_approve(args: argparse.Namespace) -> int:
    row = await ApprovalService(_store(args)).approve(args.approval_id, by=args.by)
    print_success(f"Approved {row.approval_id} by {row.approved_by}")
    return 0


async def cmd_approvals_reject(args: argparse.Namespace) -> int:
    row = await ApprovalService(_store(args)).reject(args.approval_id, reason=args.reason, by=args.by)
    print_success(f"Rejected {row.approval_id}: {row.notes}")
    return 0


async def cmd_approvals_retry(args: argparse.Namespace) -> int:
    row = await ApprovalService(_store(args)).retry(args.approval_id, by=args.by)
    print_success(f"Created {row.approval_id} (pending) from {args.approval_id}")
    return 0


async def cmd_approvals_sent_manual(args: argparse.Namespace) -> int:
    row = await ApprovalService(_store(args)).mark_sent_manual(args.approval_id, by=args.by, note=args.note)
    print_success(f"Marked {row.approval_id} as sent manually")
    return 0


async def cmd_draft(args: argparse.Namespace) -> int:
    """Command: File a new pending draft."""
    row = await ApprovalService(_store(args)).create_draft(
        lead_id=args.lead_id,
        channel=Channel(args.channel),
        action_type=ActionType(args.action_type),
        draft_to=args.to,
        draft_subject=args.subject,
        draft_text=args.text,
        campaign=args.campaign,
    )
    print_success(f"Draft {row.approval_id} created (pending)")
    return 0


# Router
async def cmd_route(args: argparse.Namespace) -> int:
    """Command: Dispatch approved drafts."""
    store = _store(args)
    enforce_dnc = args.dnc or settings.router_enforce_dnc
    service = RouterService(
        store,
        build_default_adapters(settings),
        dnc=DncService(store) if enforce_dnc else None,
    )
    result = await service.process_approved(max=args.max)

    print_info(
        f"processed={result.processed} sent={result.sent} "
        f"failed={result.failed} opened={result.opened}"
    )
    if result.failed:
        print_warning(f"{result.failed} approval(s) failed; see notes with `approvals list --status failed`")
    else:
        print_success("Router run complete")
    return 0


# Ingestion
async def cmd_ingest(args: argparse.Namespace) -> int:
    """Command: Ingest inbound messages from a JSON Lines file."""
    store = _store(args)
    service = IngestService(store, ApprovalService(store))
    results = await service.run(JsonlMessageSource(args.path))

    created = sum(1 for r in results if r.approval is not None)
    skipped = sum(1 for r in results if r.skipped)
    errors = [r for r in results if r.errors]

    print_info(f"{len(results)} message(s): {created} drafted, {skipped} already ingested")
    for r in errors:
        print_error(f"  {r.message_id}: {'; '.join(r.errors)}")
    return 1 if errors else 0


# Do-not-contact
async def cmd_dnc_add(args: argparse.Namespace) -> int:
    entry = await DncService(_store(args)).add(args.value, args.reason, added_by=args.by)
    print_success(f"DNC: {entry.value} ({entry.reason})")
    return 0


async def cmd_dnc_remove(args: argparse.Namespace) -> int:
    if await DncService(_store(args)).remove(args.value):
        print_success(f"Removed {args.value} from DNC")
        return 0
    print_error(f"{args.value} is not on the DNC list")
    return 1


async def cmd_dnc_list(args: argparse.Namespace) -> int:
    entries = await _store(args).list_dnc()
    print_info(f"{len(entries)} DNC entr{'y' if len(entries) == 1 else 'ies'}")
    for entry in entries:
        print(f"  {entry.value:<32} {entry.reason:<24} {entry.ts_added}")
    return 0


async def cmd_dnc_stats(args: argparse.Namespace) -> int:
    stats = await DncService(_store(args)).stats()
    print_info(f"Total entries: {stats['total_entries']}")
    for kind, count in stats['by_type'].items():
        print(f"  {kind}: {count}")
    for reason, count in stats['by_reason'].items():
        print(f"  reason '{reason}': {count}")
    return 0


async def cmd_smoke(args: argparse.Namespace) -> int:
    """Command: Draft, approve and route one email with console adapters."""
    store = _store(args)
    approvals = ApprovalService(store, campaign="smoke")
    adapters = ChannelAdapters({channel: ConsoleAdapter(channel) for channel in Channel})

    lead, _ = await store.create_lead(email="test@example.com", source="smoke")
    draft = await approvals.create_draft(
        lead_id=lead.lead_id,
        channel=Channel.EMAIL,
        action_type=ActionType.SEND_EMAIL,
        draft_to="test@example.com",
        draft_subject="Smoke Test",
        draft_text="Hello (smoke).",
        campaign="smoke",
    )
    await approvals.approve(draft.approval_id, by="smoke")

    result = await RouterService(store, adapters, campaign="smoke").process_approved(max=10)
    final = await approvals.get(draft.approval_id)

    if final.status.value != "sent":
        print_error(f"Smoke test failed: {draft.approval_id} ended as {final.status.value}")
        return 1
    print_success(f"Smoke test complete: {result.to_dict()}")
    return 0


# Command registry
COMMANDS: Dict[str, Callable] = {
    'approvals list': cmd_approvals_list,
    'approvals approve': cmd_approvals_approve,
    'approvals reject': cmd_approvals_reject,
    'approvals retry': cmd_approvals_retry,
    'approvals sent-manual': cmd_approvals_sent_manual,
    'draft': cmd_draft,
    'route': cmd_route,
    'ingest': cmd_ingest,
    'dnc add': cmd_dnc_add,
    'dnc remove': cmd_dnc_remove,
    'dnc list': cmd_dnc_list,
    'dnc stats': cmd_dnc_stats,
    'smoke': cmd_smoke,
}


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with all commands."""
    parser = argparse.ArgumentParser(
        prog='reengine-cli',
        description='Re-engagement engine operator CLI',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--data-dir', default=None, help='Data directory (default: REENGINE_DATA_DIR)')

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    # approvals
    approvals = subparsers.add_parser('approvals', help='Review approval drafts')
    actions = approvals.add_subparsers(dest='action')

    list_parser = actions.add_parser('list', help='List approvals')
    list_parser.add_argument('--status', default=None, help='Filter by status')

    approve_parser = actions.add_parser('approve', help='Approve a pending draft')
    approve_parser.add_argument('approval_id')
    approve_parser.add_argument('--by', default=None, help='Approver name')

    reject_parser = actions.add_parser('reject', help='Reject a pending draft')
    reject_parser.add_argument('approval_id')
    reject_parser.add_argument('--reason', default='rejected')
    reject_parser.add_argument('--by', default=None, help='Approver name')

    retry_parser = actions.add_parser('retry', help='Re-file a failed or rejected draft as pending')
    retry_parser.add_argument('approval_id')
    retry_parser.add_argument('--by', default=None)

    manual_parser = actions.add_parser('sent-manual', help='Record an approved draft as sent by hand')
    manual_parser.add_argument('approval_id')
    manual_parser.add_argument('--by', default=None)
    manual_parser.add_argument('--note', default='')

    # draft
    draft_parser = subparsers.add_parser('draft', help='Create a pending draft')
    draft_parser.add_argument('--lead-id', default='')
    draft_parser.add_argument('--channel', required=True, choices=[c.value for c in Channel])
    draft_parser.add_argument('--action-type', default=ActionType.SEND_EMAIL.value, choices=[a.value for a in ActionType])
    draft_parser.add_argument('--to', required=True, help='Recipient address, number or handle')
    draft_parser.add_argument('--subject', default='')
    draft_parser.add_argument('--text', required=True)
    draft_parser.add_argument('--campaign', default=None)

    # route
    route_parser = subparsers.add_parser('route', help='Dispatch approved drafts')
    route_parser.add_argument('--max', type=int, default=None, help='Maximum approvals to process')
    route_parser.add_argument('--dnc', action='store_true', help='Fail approvals whose recipient is on the DNC list')

    # ingest
    ingest_parser = subparsers.add_parser('ingest', help='Ingest inbound messages from a JSONL file')
    ingest_parser.add_argument('path')

    # dnc
    dnc = subparsers.add_parser('dnc', help='Manage the do-not-contact list')
    dnc_actions = dnc.add_subparsers(dest='action')

    add_parser = dnc_actions.add_parser('add', help='Add an email or phone number')
    add_parser.add_argument('value')
    add_parser.add_argument('--reason', default='')
    add_parser.add_argument('--by', default=None)

    remove_parser = dnc_actions.add_parser('remove', help='Remove an entry')
    remove_parser.add_argument('value')

    dnc_actions.add_parser('list', help='List entries')
    dnc_actions.add_parser('stats', help='Entry counts by type and reason')

    # smoke
    subparsers.add_parser('smoke', help='Draft, approve and route one message with console adapters')

    return parser


def main(args: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    key = parsed_args.command
    if getattr(parsed_args, 'action', None):
        key = f"{key} {parsed_args.action}"

    command_func = COMMANDS.get(key)
    if not command_func:
        print_error(f"Unknown command: {key}")
        parser.print_help()
        return 1

    configure_structlog()

    try:
        return asyncio.run(command_func(parsed_args))
    except KeyboardInterrupt:
        print_error("\nInterrupted by user")
        return 130
    except BaseEngineError as e:
        print_error(f"{e.code}: {e.message}")
        return 1
    except Exception as e:
        print_error(f"Error executing command: {str(e)}")
        import traceback
        if os.getenv('DEBUG'):
            traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
