#!/usr/bin/env python3
"""Report and redact personal data in delimited transcript files.

Reads a delimited markdown file (=== MESSAGE N | ROLE ===), scans each
message body and prints masked findings. With --redact the file is
rewritten in place with typed placeholders ("[EMAIL ADDRESS REDACTED]");
headers and anything outside message bodies are left alone.
"""

import re
import sys
import json
import argparse
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(REPO_ROOT))

from components.archive.lib.models import SEVERITY_ORDER, severity_rank  # noqa: E402
from components.archive.lib.pii import scan  # noqa: E402
from components.archive.lib.redactor import redact  # noqa: E402


# Message delimiter pattern
MSG_PATTERN = re.compile(r'^=== MESSAGE (\d+) \| (USER|ASSISTANT) ===$', re.MULTILINE)


def parse_messages(content: str) -> list[dict]:
    """Parse file into message dicts with body positions."""
    matches = list(MSG_PATTERN.finditer(content))
    messages = []

    for i, match in enumerate(matches):
        body_start = match.end() + 1 if match.end() < len(content) else match.end()
        body_end = matches[i + 1].start() if i + 1 < len(matches) else len(content)
        messages.append({
            'num': int(match.group(1)),
            'role': match.group(2),
            'body_start': body_start,
            'body_end': body_end,
            'body': content[body_start:body_end],
        })

    return messages


def find_pii(messages: list[dict], min_severity: str = 'low') -> list[dict]:
    """Scan message bodies. Returns messages that have findings at or above min_severity."""
    threshold = severity_rank(min_severity)
    flagged = []

    for msg in messages:
        findings = [f for f in scan(msg['body']) if severity_rank(f.severity) <= threshold]
        if findings:
            flagged.append({'msg': msg, 'findings': findings})

    return flagged


def redact_content(content: str, flagged: list[dict]) -> str:
    """Rewrite message bodies with placeholders, last message first."""
    result = content
    for item in sorted(flagged, key=lambda x: x['msg']['body_start'], reverse=True):
        msg = item['msg']
        body = redact(msg['body'], item['findings'])
        result = result[:msg['body_start']] + body + result[msg['body_end']:]
    return result


def main():
    parser = argparse.ArgumentParser(
        description="Report and redact personal data in delimited transcript files"
    )
    parser.add_argument("file", help="Target file path")
    parser.add_argument("--redact", action="store_true",
                        help="Rewrite the file with findings replaced by placeholders")
    parser.add_argument("--dry-run", action="store_true",
                        help="With --redact, show what would change without modifying the file")
    parser.add_argument("--min-severity", choices=SEVERITY_ORDER, default='low',
                        help="Ignore findings below this severity (default: low)")
    parser.add_argument("--json", action="store_true",
                        help="Print findings as JSON")

    args = parser.parse_args()

    filepath = Path(args.file)
    if not filepath.exists():
        print(f"Error: {filepath} does not exist", file=sys.stderr)
        sys.exit(1)

    content = filepath.read_text()
    messages = parse_messages(content)
    flagged = find_pii(messages, args.min_severity)

    if args.json:
        print(json.dumps([
            {
                'message': item['msg']['num'],
                'role': item['msg']['role'],
                'findings': [
                    {'label': f.label, 'severity': f.severity, 'masked_value': f.masked_value}
                    for f in item['findings']
                ],
            }
            for item in flagged
        ], indent=2))
    elif not flagged:
        print(f"No PII found in {filepath}")
        sys.exit(0)
    else:
        total = sum(len(item['findings']) for item in flagged)
        print(f"Found {total} finding(s) in {len(flagged)} message(s):")
        for item in flagged:
            msg = item['msg']
            for f in item['findings']:
                print(f"  MESSAGE {msg['num']} ({msg['role']}): [{f.severity}] {f.label}: {f.masked_value}")

    if not args.redact or not flagged:
        return

    if args.dry_run:
        print("\n(dry run - no changes made)")
        return

    filepath.write_text(redact_content(content, flagged))
    print(f"\nRedacted {filepath}")


if __name__ == "__main__":
    main()
