#!/usr/bin/env python3
"""
Archive CLI - Capture conversations and triage them for personal data.

Usage:
    python -m components.archive.lib.cli parse <files>... [--platform P] [--first-speaker R] [--json]
    python -m components.archive.lib.cli extract <snapshots>... [--json] [-o OUTPUT]
    python -m components.archive.lib.cli scan <files>... [--json]
    python -m components.archive.lib.cli redact <files>... [-o OUTPUT] [--dry-run]
    python -m components.archive.lib.cli archive <file> [--settings S] [--decision D] [-o OUTPUT]
    python -m components.archive.lib.cli --help

Commands:
    parse     Parse pasted conversation text into delimited markdown
    extract   Extract a conversation from a captured page snapshot (.yaml/.json)
    scan      Report PII findings (masked) for a conversation
    redact    Replace PII findings with placeholders
    archive   Run the full archive decision flow and emit the archive payload

Inputs for scan/redact/archive may be page snapshots, delimited markdown
(=== MESSAGE N | ROLE ===) or raw pasted text.
"""

import argparse
import sys
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .archive import ArchiveController, DECISIONS, FINDINGS_PENDING
from .config import load_settings
from .models import (
    AttributionInfo, ExtractionResult, StoredRecord,
    HUMAN, ROLES, OTHER, PLATFORMS, CLAIMED, USER_REPORTED,
)
from .output import (
    format_delimited, format_findings_report, is_delimited, parse_delimited,
    to_json, write_output,
)
from .page import load_page_state
from .parsing import parse_conversation
from .pii import scan_conversation
from .redactor import redact_turns
from .session import DetectionSession, normalize_extraction

SNAPSHOT_SUFFIXES = ('.yaml', '.yml', '.json')

TITLE_FROM_TEXT = 100


def _extract_snapshot(path: Path, first_speaker: Optional[str] = None) -> Optional[ExtractionResult]:
    page = load_page_state(path)
    session = DetectionSession(page.url)
    if not session.supported:
        print(f"Warning: {path.name}: unsupported page {page.url!r}")
        return None
    result = session.detect(page)
    if result is None:
        return None
    return normalize_extraction(result, first_speaker=first_speaker)


def _title_from_turns(turns) -> str:
    for turn in turns:
        if turn.role == HUMAN:
            first_line = turn.content.strip().split('\n', 1)[0]
            title = first_line[:TITLE_FROM_TEXT]
            return title + ('...' if len(first_line) > TITLE_FROM_TEXT else '')
    return "Untitled Conversation"


def load_conversation(
    path: Path,
    platform: str = OTHER,
    first_speaker: Optional[str] = None
) -> Optional[ExtractionResult]:
    """
    Load a conversation from a snapshot, delimited markdown or pasted text.

    Text inputs get user-reported attribution and the current time.
    """
    if path.suffix in SNAPSHOT_SUFFIXES:
        return _extract_snapshot(path, first_speaker)

    content = path.read_text(encoding='utf-8')
    if is_delimited(content):
        turns = parse_delimited(content)
    else:
        turns = parse_conversation(content, platform_hint=platform, first_speaker=first_speaker).turns
    if not turns:
        return None

    return ExtractionResult(
        platform=platform,
        title=_title_from_turns(turns),
        turns=turns,
        attribution=AttributionInfo(None, None, CLAIMED, USER_REPORTED),
        timestamp=datetime.now(timezone.utc).isoformat(),
        external_conversation_id=None,
    )


def _existing(file_path: str) -> Optional[Path]:
    path = Path(file_path)
    if not path.exists():
        print(f"Warning: {file_path} not found, skipping")
        return None
    return path


def _report_error(args, path: Path, e: Exception):
    print(f"  Error processing {path.name}: {e}")
    if args.verbose:
        import traceback
        traceback.print_exc()


def _output_path(args, path: Path, suffix: str) -> Optional[Path]:
    if not args.output:
        return None
    output_dir = Path(args.output)
    return output_dir / (path.stem + suffix)


def cmd_parse(args):
    """Parse pasted conversation text into delimited markdown."""
    for file_path in args.files:
        path = _existing(file_path)
        if path is None:
            continue
        try:
            content = path.read_text(encoding='utf-8')
            result = parse_conversation(
                content,
                platform_hint=args.platform,
                first_speaker=args.first_speaker,
            )
            if args.json:
                meta = result.metadata
                print(to_json({
                    'file': path.name,
                    'turns': [{'role': t.role, 'content': t.content} for t in result.turns],
                    'metadata': {
                        'detected_provider': meta.detected_provider,
                        'detected_first_speaker': meta.detected_first_speaker,
                        'user_overrode_first_speaker': meta.user_overrode_first_speaker,
                        'has_explicit_labels': meta.has_explicit_labels,
                        'raw_character_count': meta.raw_character_count,
                        'turn_count': meta.turn_count,
                    },
                }))
                continue

            rendered = format_delimited(result.turns)
            out = _output_path(args, path, '.md')
            if out:
                write_output(rendered, out)
                print(f"Parsed: {path.name} -> {out} ({len(result.turns)} turns)")
            else:
                print(rendered)
        except Exception as e:
            _report_error(args, path, e)


def cmd_extract(args):
    """Extract conversations from page snapshots."""
    for file_path in args.files:
        path = _existing(file_path)
        if path is None:
            continue
        try:
            result = _extract_snapshot(path, args.first_speaker)
            if result is None:
                print(f"{path.name}: no conversation detected")
                continue

            if args.json:
                rendered = to_json({
                    'platform': result.platform,
                    'title': result.title,
                    'timestamp': result.timestamp,
                    'platform_conversation_id': result.external_conversation_id,
                    'attribution': {
                        'model_id': result.attribution.model_id,
                        'model_display_name': result.attribution.model_display_name,
                        'confidence': result.attribution.confidence,
                        'source': result.attribution.source,
                    },
                    'turns': [{'role': t.role, 'content': t.content} for t in result.turns],
                })
                suffix = '.json'
            else:
                rendered = format_delimited(result.turns, extraction=result)
                suffix = '.md'

            out = _output_path(args, path, suffix)
            if out:
                write_output(rendered, out)
                print(f"Extracted: {path.name} -> {out} ({len(result.turns)} turns)")
            else:
                print(rendered)
        except Exception as e:
            _report_error(args, path, e)


def cmd_scan(args):
    """Report PII findings with masked values."""
    total = 0
    for file_path in args.files:
        path = _existing(file_path)
        if path is None:
            continue
        try:
            conversation = load_conversation(path, args.platform)
            if conversation is None:
                print(f"{path.name}: no conversation detected")
                continue
            summary = scan_conversation(conversation.turns)
            total += summary.total_findings
            if args.json:
                print(to_json({'file': path.name, **summary.to_dict()}))
            else:
                print(f"=== {path.name} ===")
                print(format_findings_report(summary, conversation.turns))
        except Exception as e:
            _report_error(args, path, e)

    if args.fail_on_findings and total:
        sys.exit(1)


def cmd_redact(args):
    """Replace PII findings with typed placeholders."""
    for file_path in args.files:
        path = _existing(file_path)
        if path is None:
            continue
        try:
            conversation = load_conversation(path, args.platform)
            if conversation is None:
                print(f"{path.name}: no conversation detected")
                continue
            summary = scan_conversation(conversation.turns)
            turns = redact_turns(conversation.turns, summary)
            rendered = format_delimited(turns)

            out = _output_path(args, path, '.md')
            if out:
                write_output(rendered, out, dry_run=args.dry_run)
                print(f"Redacted: {path.name} -> {out} ({summary.total_findings} findings)")
            elif args.dry_run:
                print(f"{path.name}: would redact {summary.total_findings} finding(s)")
            else:
                print(rendered)
        except Exception as e:
            _report_error(args, path, e)


def _file_sink(output: Path):
    """Sink that writes the payload to a JSON file and returns its location."""
    def sink(payload) -> StoredRecord:
        write_output(to_json(payload) + "\n", output)
        return StoredRecord(id=output.stem, url=output.resolve().as_uri())
    return sink


def cmd_archive(args):
    """Run the archive decision flow for one conversation."""
    path = _existing(args.file)
    if path is None:
        sys.exit(1)

    try:
        settings = load_settings(Path(args.settings) if args.settings else None)
    except (OSError, ValueError) as e:
        print(f"Error: invalid settings: {e}")
        sys.exit(1)

    conversation = load_conversation(path, args.platform)
    if conversation is None:
        print(f"{path.name}: no conversation detected")
        sys.exit(1)

    sink = _file_sink(Path(args.output)) if args.output else None
    controller = ArchiveController(settings=settings, sink=sink)
    state = controller.request_archive(conversation)

    if state == FINDINGS_PENDING:
        print(format_findings_report(controller.summary, controller.turns))
        if not args.decision:
            print(f"\nFindings pending. Re-run with --decision ({', '.join(DECISIONS)}).")
            sys.exit(2)
        state = controller.decide(args.decision)

    print(f"State: {' -> '.join(controller.history)}")
    if controller.record:
        print(f"Archived: {controller.record.url}")
    elif controller.payload is not None:
        print(to_json(controller.payload))


def main():
    parser = argparse.ArgumentParser(
        description="Archive - Capture conversations and triage them for personal data"
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Show detailed output'
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # parse command
    parse_parser = subparsers.add_parser(
        'parse',
        help='Parse pasted conversation text into delimited markdown'
    )
    parse_parser.add_argument('files', nargs='+', help='Text files to parse')
    parse_parser.add_argument(
        '--platform', '-p',
        choices=PLATFORMS + (OTHER,),
        default=OTHER,
        help='Platform the text was copied from (default: other)'
    )
    parse_parser.add_argument(
        '--first-speaker',
        choices=ROLES,
        help='Override who spoke first'
    )
    parse_parser.add_argument('--json', action='store_true', help='Print turns and metadata as JSON')
    parse_parser.add_argument('--output', '-o', help='Output directory (if not specified, prints to stdout)')
    parse_parser.set_defaults(func=cmd_parse)

    # extract command
    extract_parser = subparsers.add_parser(
        'extract',
        help='Extract a conversation from a captured page snapshot'
    )
    extract_parser.add_argument('files', nargs='+', help='Snapshot files (.yaml/.json)')
    extract_parser.add_argument('--first-speaker', choices=ROLES, help='Override who spoke first')
    extract_parser.add_argument('--json', action='store_true', help='Print the extraction as JSON')
    extract_parser.add_argument('--output', '-o', help='Output directory (if not specified, prints to stdout)')
    extract_parser.set_defaults(func=cmd_extract)

    # scan command
    scan_parser = subparsers.add_parser(
        'scan',
        help='Report PII findings (masked) for a conversation'
    )
    scan_parser.add_argument('files', nargs='+', help='Snapshots, delimited markdown or text')
    scan_parser.add_argument('--platform', '-p', choices=PLATFORMS + (OTHER,), default=OTHER,
                             help='Platform hint for pasted text (default: other)')
    scan_parser.add_argument('--json', action='store_true', help='Print the triage summary as JSON')
    scan_parser.add_argument('--fail-on-findings', action='store_true',
                             help='Exit 1 if anything was found')
    scan_parser.set_defaults(func=cmd_scan)

    # redact command
    redact_parser = subparsers.add_parser(
        'redact',
        help='Replace PII findings with placeholders'
    )
    redact_parser.add_argument('files', nargs='+', help='Snapshots, delimited markdown or text')
    redact_parser.add_argument('--platform', '-p', choices=PLATFORMS + (OTHER,), default=OTHER,
                               help='Platform hint for pasted text (default: other)')
    redact_parser.add_argument('--output', '-o', help='Output directory (if not specified, prints to stdout)')
    redact_parser.add_argument('--dry-run', action='store_true', help="Report, don't write")
    redact_parser.set_defaults(func=cmd_redact)

    # archive command
    archive_parser = subparsers.add_parser(
        'archive',
        help='Run the archive decision flow and emit the archive payload'
    )
    archive_parser.add_argument('file', help='Snapshot, delimited markdown or text')
    archive_parser.add_argument('--platform', '-p', choices=PLATFORMS + (OTHER,), default=OTHER,
                                help='Platform hint for pasted text (default: other)')
    archive_parser.add_argument('--settings', '-s', help='Path to settings.yaml')
    archive_parser.add_argument('--decision', '-d', choices=DECISIONS,
                                help='What to do if findings are pending')
    archive_parser.add_argument('--output', '-o', help='Write the payload to this JSON file')
    archive_parser.set_defaults(func=cmd_archive)

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == '__main__':
    main()
