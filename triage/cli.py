#!/usr/bin/env python3
"""
Triage a single pasted message from the command line.

    python -m triage.cli "Hi, this is John Doe ..." --operator Sudhanshu --export
    python -m triage.cli --file chat.txt --send-to whatsapp:+15551234567
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import List, Optional

from .errors import TriageError, is_credential_problem
from .models import ExportRow, Source
from .runtime import configure_logging
from .services import Services, build_services


def _parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Extract details from a message and draft a reply.")
    p.add_argument("message", nargs="?", help="message text (omit to use --file or stdin)")
    p.add_argument("--file", help="read the message from this file")
    p.add_argument("--source", default=Source.WHATSAPP.value, choices=[s.value for s in Source])
    p.add_argument("--operator", default="", help='name recorded in the "Updated By" column')
    p.add_argument("--export", action="store_true", help="append the result to the Google Sheet")
    p.add_argument("--send-to", help="also send the reply to this WhatsApp number (whatsapp:+E164)")
    p.add_argument("--log-level", default=None)
    return p


def _read_message(args: argparse.Namespace) -> str:
    if args.message:
        return args.message
    if args.file:
        with open(args.file, encoding="utf-8") as fh:
            return fh.read()
    return sys.stdin.read()


def run(argv: Optional[List[str]] = None, services: Optional[Services] = None) -> int:
    args = _parser().parse_args(argv)
    configure_logging(args.log_level)

    if args.export and not args.operator.strip():
        print('❌ Please provide --operator ("Updated By") when exporting.', file=sys.stderr)
        return 1

    try:
        message = _read_message(args)
    except OSError as e:
        print(f"❌ Could not read message: {e}", file=sys.stderr)
        return 1

    svc = services or build_services()

    try:
        record = svc.extractor.extract(message)
        draft = svc.drafter.draft(record.client_name, record.query)
        out = {**record.model_dump(by_alias=True), **draft.model_dump(by_alias=True)}

        if args.send_to:
            sent = svc.notifier.notify(args.send_to, draft.reply_message)
            out["sid"] = sent.get("sid")

        if args.export:
            row = ExportRow.build(record, draft.reply_message, updated_by=args.operator.strip(), source=args.source)
            out["export"] = svc.ledger.append(row)
    except TriageError as e:
        print(f"❌ {e}", file=sys.stderr)
        if is_credential_problem(e):
            print("   Check your .env configuration (API keys / credentials).", file=sys.stderr)
        return 1
    finally:
        svc.close()

    print(json.dumps(out, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(run())
