#!/usr/bin/env python3
"""
ABOUTME: Applies find/replace rules to the stories of an IDML document
ABOUTME: Rules come from a glossary file or --pair options; writes a new IDML and a change log
"""

import argparse
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from idml_edit.common import (
    CONTENT_TAG,
    STATUS_APPLIED,
    STATUS_NOT_FOUND,
    STATUS_REJECTED,
    STATUS_SKIPPED,
    InvalidRuleError,
    Rule,
    Scope,
    WalkReport,
    format_text_preview,
)
from idml_edit.container import IdmlContainer
from idml_edit.walker import DocumentWalker
from parse_glossary import export_glossary_template, load_glossary


# ============================================================
# Rule Set
# ============================================================

def build_rules(glossary: Optional[str] = None, pairs: Optional[List[List[str]]] = None,
                case_sensitive: bool = False, whole_words: bool = False,
                replace_all: bool = False) -> List[Rule]:
    """
    Ordered rule set: glossary rows first, then --pair options in command-line order.

    Raises:
        InvalidRuleError: no rules at all, or an incomplete rule
    """
    scope = Scope.ALL_OCCURRENCES if replace_all else Scope.FIRST_OCCURRENCE
    rules: List[Rule] = []
    if glossary:
        rules.extend(load_glossary(glossary, case_sensitive=case_sensitive,
                                   whole_words=whole_words, scope=scope))
    for find, replace in pairs or []:
        rules.append(Rule(find, replace, case_sensitive=case_sensitive,
                          whole_words=whole_words, scope=scope))
    if not rules:
        raise InvalidRuleError("No rules given. Use --glossary and/or --pair FIND REPLACE")
    return rules


# ============================================================
# Change Log
# ============================================================

def write_change_log(report: WalkReport, log_path: str, source_path: Path,
                     output_path: Optional[Path], rule_count: int, dry_run: bool = False) -> Path:
    """
    Export change records as JSONL: one meta line, then one record per line.

    The file is the input of generate_report.py.
    """
    path = Path(log_path)
    with open(path, 'w', encoding='utf-8') as f:
        meta_line = {
            'type': 'meta',
            'source_file': source_path.name,
            'output_file': output_path.name if output_path else '',
            'applied_at': datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ'),
            'dry_run': dry_run,
            'state': report.state,
            'rule_count': rule_count,
            'total_applied': report.total_applied,
            'edited_units': sorted(report.edited_units),
        }
        json.dump(meta_line, f, ensure_ascii=False)
        f.write('\n')
        for record in report.records:
            json.dump(record.to_dict(), f, ensure_ascii=False)
            f.write('\n')
    return path


def print_summary(report: WalkReport):
    applied = [r for r in report.records if r.status == STATUS_APPLIED]
    skipped = [r for r in report.records if r.status == STATUS_SKIPPED]
    rejected = [r for r in report.records if r.status == STATUS_REJECTED]
    not_found = [r for r in report.records if r.status == STATUS_NOT_FOUND]

    if skipped:
        print("\nSkipped matches (left untouched):")
        for r in skipped:
            print(f"  - [{r.unit}] {r.message}: {format_text_preview(r.before_snippet, 60)}")

    if rejected:
        print("\nRejected edits (result was not well-formed):")
        for r in rejected:
            print(f"  - [{r.unit}] {r.rule.describe()}: {r.message}")

    if not_found:
        print("\nRules with no occurrence:")
        for r in not_found:
            print(f"  - {r.rule.describe()}")

    print("-" * 50)
    print(f"Completed: {report.total_applied} replacements in {len(report.edited_units)} stories "
          f"({len(applied)} applied, {len(skipped)} skipped, {len(rejected)} rejected, "
          f"{len(not_found)} not found)")


# ============================================================
# Main Function
# ============================================================

def main() -> int:
    parser = argparse.ArgumentParser(
        description="Replace text in IDML stories while keeping markup and styling intact"
    )
    parser.add_argument('idml_file', help='Source IDML file')
    parser.add_argument('-o', '--output', help='Output file path (default: <input>_replaced.idml)')
    parser.add_argument('--glossary', help='Glossary file (.csv or .xlsx) with current/replace columns')
    parser.add_argument('--pair', nargs=2, action='append', metavar=('FIND', 'REPLACE'),
                        help='One find/replace pair; may be repeated')
    parser.add_argument('--all', action='store_true',
                        help='Replace every occurrence (default: first occurrence per rule)')
    parser.add_argument('--case-sensitive', action='store_true', help='Match exact case')
    parser.add_argument('--whole-words', action='store_true', help='Match whole words only')
    parser.add_argument('--text-tag', default=CONTENT_TAG,
                        help=f'Text-bearing element name (default: {CONTENT_TAG})')
    parser.add_argument('--report', help='Write change records to this JSONL file')
    parser.add_argument('--export-text', metavar='CSV',
                        help='Export story text as a glossary template and exit')
    parser.add_argument('--fail-on-skip', action='store_true',
                        help='Exit with status 2 when any match was skipped or rejected')
    parser.add_argument('--dry-run', action='store_true',
                        help='Run the replacements but do not save')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Verbose output')

    args = parser.parse_args()

    try:
        container = IdmlContainer(args.idml_file)
        info = container.get_info()
        print(f"Source file: {container.path}")
        print(f"Stories: {info['story_count']}")
        if not info['is_valid']:
            print("  [Warning] Package is missing mimetype, META-INF/metadata.xml or designmap.xml")

        if args.export_text:
            lines = container.get_all_text_lines(args.text_tag)
            count = export_glossary_template(lines, args.export_text)
            print(f"Exported {count} text lines to: {args.export_text}")
            return 0

        rules = build_rules(args.glossary, args.pair, case_sensitive=args.case_sensitive,
                            whole_words=args.whole_words, replace_all=args.all)
        output_path = Path(args.output) if args.output else \
            container.path.with_stem(container.path.stem + '_replaced')
        print(f"Output to: {output_path}")
        print(f"Rules: {len(rules)}")
        if args.verbose:
            print("-" * 50)

        walker = DocumentWalker(container, rules, text_tag=args.text_tag,
                                verbose=args.verbose, auto_commit=not args.dry_run)
        report = walker.run()
        print_summary(report)

        if args.dry_run:
            print(f"[DRY RUN] Would save to: {output_path}")
        else:
            container.save(str(output_path))
            print(f"Saved to: {output_path}")

        if args.report:
            log_path = write_change_log(report, args.report, container.path,
                                        None if args.dry_run else output_path,
                                        len(rules), dry_run=args.dry_run)
            print(f"Change log saved to: {log_path}")

        if args.fail_on_skip and report.problems:
            return 2
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
