#!/usr/bin/env python3
"""
ABOUTME: Loads find/replace glossaries (CSV or XLSX) into an ordered rule set
ABOUTME: Also exports a document's text lines as a glossary template to fill in
"""

import argparse
import csv
import json
import os
import sys
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from openpyxl import load_workbook

from idml_edit.common import InvalidRuleError, Rule, Scope


FIND_COLUMN = "current"
REPLACE_COLUMN = "replace"

GLOSSARY_ENCODING = os.getenv("IDML_REPLACE_GLOSSARY_ENCODING", "utf-8-sig")


def _cell_text(value) -> str:
    if value is None:
        return ''
    return str(value)


def _column_indexes(header: Sequence, source: str) -> tuple:
    """Locate the `current` and `replace` columns; names are trimmed and case-insensitive."""
    names = [_cell_text(h).strip().lower() for h in header]
    missing = [col for col in (FIND_COLUMN, REPLACE_COLUMN) if col not in names]
    if missing:
        raise InvalidRuleError(
            f"Glossary {source} must include header columns: {FIND_COLUMN}, {REPLACE_COLUMN} "
            f"(missing: {', '.join(missing)})"
        )
    return names.index(FIND_COLUMN), names.index(REPLACE_COLUMN)


def rules_from_rows(rows: Iterable[Sequence], source: str = "<rows>",
                    case_sensitive: bool = False, whole_words: bool = False,
                    scope: Scope = Scope.FIRST_OCCURRENCE) -> List[Rule]:
    """
    Build rules from tabular rows, first row being the header.

    Fully blank rows are ignored. A row with only one side filled in is a
    configuration error and raises InvalidRuleError naming the row.

    Args:
        rows: Header row followed by data rows
        source: Name used in error messages
        case_sensitive, whole_words, scope: Options applied to every rule

    Returns:
        Rules in row order
    """
    iterator = iter(rows)
    header = next(iterator, None)
    if header is None:
        raise InvalidRuleError(f"Glossary {source} is empty")
    find_idx, replace_idx = _column_indexes(header, source)

    rules = []
    for row_number, row in enumerate(iterator, 2):
        cells = list(row)
        find = _cell_text(cells[find_idx]) if find_idx < len(cells) else ''
        replace = _cell_text(cells[replace_idx]) if replace_idx < len(cells) else ''
        if not find.strip() and not replace.strip():
            continue
        if not find.strip() or not replace:
            raise InvalidRuleError(
                f"Glossary {source} row {row_number}: both '{FIND_COLUMN}' and "
                f"'{REPLACE_COLUMN}' are required"
            )
        rules.append(Rule(find, replace, case_sensitive=case_sensitive,
                          whole_words=whole_words, scope=scope))
    return rules


def load_csv_rows(file_path: str, encoding: Optional[str] = None) -> List[List[str]]:
    with open(file_path, 'r', encoding=encoding or GLOSSARY_ENCODING, newline='') as f:
        return [row for row in csv.reader(f)]


def load_xlsx_rows(file_path: str) -> List[list]:
    """Rows of the first worksheet, cell values as loaded by openpyxl."""
    wb = load_workbook(file_path, read_only=True, data_only=True)
    try:
        ws = wb.worksheets[0]
        return [list(row) for row in ws.iter_rows(values_only=True)]
    finally:
        wb.close()


def load_glossary(file_path: str, case_sensitive: bool = False, whole_words: bool = False,
                  scope: Scope = Scope.FIRST_OCCURRENCE) -> List[Rule]:
    """
    Load a glossary file into an ordered rule set.

    Args:
        file_path: .csv or .xlsx file with `current` and `replace` columns
        case_sensitive, whole_words, scope: Options applied to every rule

    Returns:
        Rules in file order

    Raises:
        FileNotFoundError: file does not exist
        InvalidRuleError: missing columns or an incomplete row
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Glossary file not found: {file_path}")

    if path.suffix.lower() in ('.xlsx', '.xlsm'):
        rows = load_xlsx_rows(str(path))
    else:
        rows = load_csv_rows(str(path))
    return rules_from_rows(rows, source=path.name, case_sensitive=case_sensitive,
                           whole_words=whole_words, scope=scope)


def export_glossary_template(lines: Iterable[str], output_path: str) -> int:
    """
    Write text lines as a `current,replace` CSV with an empty replace column.

    Duplicate lines are written once, first occurrence order.

    Returns:
        Number of rows written (header excluded)
    """
    seen = set()
    count = 0
    with open(output_path, 'w', encoding=GLOSSARY_ENCODING, newline='') as f:
        writer = csv.writer(f)
        writer.writerow([FIND_COLUMN, REPLACE_COLUMN])
        for line in lines:
            if not line or line in seen:
                continue
            seen.add(line)
            writer.writerow([line, ''])
            count += 1
    return count


def main():
    parser = argparse.ArgumentParser(
        description="Validate a find/replace glossary and print the resulting rules"
    )
    parser.add_argument('glossary', help='Glossary file (.csv or .xlsx) with current/replace columns')
    parser.add_argument('--case-sensitive', action='store_true', help='Match exact case')
    parser.add_argument('--whole-words', action='store_true', help='Match whole words only')
    parser.add_argument('--all', action='store_true', help='Replace every occurrence')
    parser.add_argument('--json', action='store_true', help='Print rules as JSON')

    args = parser.parse_args()

    try:
        rules = load_glossary(
            args.glossary,
            case_sensitive=args.case_sensitive,
            whole_words=args.whole_words,
            scope=Scope.ALL_OCCURRENCES if args.all else Scope.FIRST_OCCURRENCE,
        )
    except (OSError, InvalidRuleError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        payload = [
            {'find': r.find, 'replace': r.replace, 'case_sensitive': r.case_sensitive,
             'whole_words': r.whole_words, 'scope': r.scope.value}
            for r in rules
        ]
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        for i, rule in enumerate(rules, 1):
            print(f"[{i}] {rule.describe()}")
        print(f"Loaded {len(rules)} rules from {args.glossary}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
