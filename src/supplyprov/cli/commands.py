"""
CLI commands for SupplyProv.

Commands:
    supplyprov create --owner <id> --name <name> --value <int>   Create an encrypted record
    supplyprov get <record-id>                                   Show one record
    supplyprov list [--search s] [--verified|--unverified]       List records
    supplyprov verify <record-id> [--timeout s]                  Decrypt and verify
    supplyprov update <record-id> --actor <id> [--name ...]      Owner edit of public attributes
    supplyprov stats                                             Dashboard counters
    supplyprov status                                            Store integrity + availability
    supplyprov serve [--host h] [--port p]                       Run the HTTP API
"""

from __future__ import annotations

import json
import sys
from typing import Any, Dict, List

from supplyprov.core.runtime import SupplyProvRuntime
from supplyprov.protocol.enums import LifecycleTag
from supplyprov.protocol.errors import SupplyProvError, ValidationError
from supplyprov.protocol.models import Record, RecordFilter
from supplyprov.store.wal import WALRecordStore


def cmd_create(runtime: SupplyProvRuntime, args) -> None:
    attributes: Dict[str, Any] = {"name": args.name}
    if args.description is not None:
        attributes["description"] = args.description
    if args.lifecycle is not None:
        attributes["lifecycle"] = args.lifecycle
    if args.location is not None:
        attributes["location"] = args.location
    if args.public_value is not None:
        attributes["public_value"] = args.public_value

    record_id = runtime.api.create(args.owner, attributes, args.value, record_id=args.id)
    _print_record(runtime.api.get(record_id), args.output)


def cmd_get(runtime: SupplyProvRuntime, args) -> None:
    _print_record(runtime.api.get(args.record_id), args.output)


def cmd_list(runtime: SupplyProvRuntime, args) -> None:
    lifecycle = None
    if args.lifecycle:
        try:
            lifecycle = LifecycleTag.parse(args.lifecycle)
        except ValueError:
            raise ValidationError("Invalid filter", {"lifecycle": "unknown lifecycle tag"})

    record_filter = RecordFilter(
        search=args.search,
        verified=args.verified,
        lifecycle=lifecycle,
        owner_id=args.owner,
    )
    records = runtime.api.list(record_filter)

    if args.output == "json":
        print(json.dumps([r.to_dict() for r in records], indent=2))
    elif args.output == "jsonl":
        for r in records:
            print(json.dumps(r.to_dict()))
    else:
        _print_table(records)


def cmd_verify(runtime: SupplyProvRuntime, args) -> None:
    outcome = runtime.api.verify(args.record_id, timeout=args.timeout)

    if args.output == "json":
        print(json.dumps(outcome.to_dict(), indent=2))
    elif args.output == "jsonl":
        print(json.dumps(outcome.to_dict()))
    else:
        if outcome.already_verified:
            print(f"Record {outcome.record_id} is already verified")
        else:
            print(f"Record {outcome.record_id} decrypted and verified")
        print(f"Clear value:        {outcome.clear_value}")
        print(f"Version:            {outcome.version}")


def cmd_update(runtime: SupplyProvRuntime, args) -> None:
    changes: Dict[str, Any] = {}
    for name in ("name", "description", "lifecycle", "location", "public_value"):
        value = getattr(args, name, None)
        if value is not None:
            changes[name] = value
    if not changes:
        raise ValidationError("Nothing to update", {"changes": "pass at least one attribute"})

    _print_record(runtime.api.update_public_attributes(args.record_id, args.actor, changes), args.output)


def cmd_stats(runtime: SupplyProvRuntime, args) -> None:
    stats = runtime.api.stats().to_dict()
    if args.output in ("json", "jsonl"):
        print(json.dumps(stats, indent=2 if args.output == "json" else None))
        return
    print("Supply Chain Records")
    print("=" * 40)
    print(f"Total items:        {stats['total']}")
    print(f"Verified:           {stats['verified']}")
    print(f"Manufactured:       {stats['manufactured']}")
    print(f"In transit:         {stats['in_transit']}")
    print(f"Delivered:          {stats['delivered']}")


def cmd_status(runtime: SupplyProvRuntime, args) -> None:
    store = runtime.store
    status: Dict[str, Any] = {
        "backend": runtime.settings.store.backend,
        "records": len(store.records()),
        "available": runtime.api.is_available(),
        "context": runtime.api.context,
    }
    if isinstance(store, WALRecordStore):
        ok, reason = store.verify_integrity()
        status["wal_path"] = str(store.wal.path)
        status["wal_entries"] = store.wal.entry_count
        status["wal_integrity"] = "OK" if ok else f"CORRUPT: {reason}"

    if args.output in ("json", "jsonl"):
        print(json.dumps(status, indent=2 if args.output == "json" else None))
        return
    for key, value in status.items():
        print(f"{key + ':':<20}{value}")


def cmd_serve(runtime: SupplyProvRuntime, args) -> None:
    from supplyprov.gateway.app import serve

    serve(runtime, host=args.host, port=args.port)


def report_error(error: SupplyProvError) -> None:
    print(f"Error [{error.code.value}]: {error.message}", file=sys.stderr)
    if isinstance(error, ValidationError):
        for field_name, reason in error.field_errors.items():
            print(f"  {field_name}: {reason}", file=sys.stderr)
    elif error.retryable:
        print("  (temporary failure, try again)", file=sys.stderr)


def _print_record(record: Record, fmt: str) -> None:
    data = record.to_dict()
    if fmt == "json":
        print(json.dumps(data, indent=2))
        return
    if fmt == "jsonl":
        print(json.dumps(data))
        return

    attrs = record.public_attributes
    print(f"Record ID:          {record.record_id}")
    print(f"Name:               {attrs.name}")
    print(f"Description:        {attrs.description}")
    print(f"Lifecycle:          {attrs.lifecycle.label}")
    print(f"Location:           {attrs.location or '-'}")
    print(f"Owner:              {record.owner_id}")
    print(f"Status:             {record.status.value}")
    print(f"Version:            {record.version}")
    print(f"Created:            {record.created_at}")
    print(f"Handle:             {record.ciphertext_handle[:24]}...")
    if record.is_verified:
        print(f"Clear value:        {record.clear_value}")


def _print_table(records: List[Record]) -> None:
    if not records:
        print("No records found.")
        return

    print(f"{'RECORD ID':<36} {'NAME':<24} {'LIFECYCLE':<14} {'STATUS':<22} {'VALUE':<12} {'CREATED'}")
    print("-" * 130)
    for r in records:
        value = str(r.clear_value) if r.is_verified else "(encrypted)"
        print(
            f"{r.record_id[:36]:<36} {r.public_attributes.name[:24]:<24} "
            f"{r.public_attributes.lifecycle.label:<14} {r.status.value:<22} "
            f"{value:<12} {r.created_at[:19]}"
        )
    print(f"\nTotal: {len(records)} records")
