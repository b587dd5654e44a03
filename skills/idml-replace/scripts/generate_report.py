#!/usr/bin/env python3
"""
ABOUTME: Generates HTML and Excel replacement reports from a change-record export
ABOUTME: Includes per-rule statistics, skipped/rejected items and before/after snippets
"""

import argparse
import json
import sys
from collections import Counter, OrderedDict
from datetime import datetime
from pathlib import Path

from jinja2 import Environment
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter


DEFAULT_TEMPLATE = Path(__file__).resolve().parent.parent / "assets" / "replacement_report.html"

STATUS_LABELS = {
    'applied': 'Applied',
    'skipped': 'Skipped',
    'rejected': 'Rejected',
    'not_found': 'Not found',
}


def sanitize_excel_string(text: str) -> str:
    """
    Remove control characters that are illegal in Excel/XML.

    Excel uses XML internally, which only allows:
    #x9 (tab), #xA (LF), #xD (CR), and #x20-#xD7FF, #xE000-#xFFFD, #x10000-#x10FFFF
    """
    if not text or not isinstance(text, str):
        return text
    illegal_chars = ''.join(
        chr(c) for c in range(0x20)
        if c not in (0x09, 0x0A, 0x0D)
    )
    return text.translate(str.maketrans('', '', illegal_chars))


def load_change_log(file_path: str) -> tuple:
    """
    Load run metadata and change records from a JSONL export.

    Args:
        file_path: Path written by apply_replacements.py --report

    Returns:
        Tuple of (metadata dict, list of change record dictionaries)
    """
    metadata = {}
    records = []
    with open(file_path, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if line:
                entry = json.loads(line)
                if entry.get('type') == 'meta':
                    metadata = entry
                else:
                    records.append(entry)
    return metadata, records


def generate_report_data(records: list) -> dict:
    """
    Summarize change records for rendering.

    Rules are grouped by (find, replace) in first-seen order; each group
    carries its applied total and the records that belong to it.
    """
    status_counts = Counter()
    method_counts = Counter()
    rules = OrderedDict()
    problems = []

    for record in records:
        status = record.get('status', 'applied')
        status_counts[status] += 1
        if status == 'applied' and record.get('method'):
            method_counts[record['method']] += 1

        key = (record.get('find', ''), record.get('replace', ''))
        if key not in rules:
            rules[key] = {
                'find': key[0],
                'replace': key[1],
                'scope': record.get('scope', 'first'),
                'applied': 0,
                'units': [],
                'records': [],
            }
        group = rules[key]
        group['records'].append(record)
        if status == 'applied':
            group['applied'] += record.get('count_applied', 0)
            unit = record.get('unit')
            if unit and unit not in group['units']:
                group['units'].append(unit)
        elif status in ('skipped', 'rejected'):
            problems.append(record)

    total_applied = sum(
        r.get('count_applied', 0) for r in records if r.get('status', 'applied') == 'applied'
    )
    return {
        'generated_at': datetime.now().strftime('%Y-%m-%d %H:%M:%S'),
        'record_count': len(records),
        'total_applied': total_applied,
        'status_counts': dict(status_counts),
        'method_counts': dict(method_counts),
        'status_labels': STATUS_LABELS,
        'rules': list(rules.values()),
        'problems': problems,
        'records': records,
    }


def render_report(data: dict, template_path: str, trusted_html: bool = False) -> str:
    """
    Render HTML report from data using Jinja2 template.

    Args:
        data: Report data dictionary
        template_path: Path to Jinja2 template file
        trusted_html: If True, disable HTML escaping (use only for trusted inputs)

    Returns:
        Rendered HTML string
    """
    if not template_path:
        raise ValueError("Template path is required.")
    template_file = Path(template_path)
    if not template_file.exists():
        raise FileNotFoundError(f"Template file not found: {template_path}")
    template_str = template_file.read_text(encoding='utf-8')

    env = Environment(autoescape=not trusted_html)
    template = env.from_string(template_str)
    return template.render(**data)


def generate_excel_report(data: dict, output_path: str) -> None:
    """
    Write one row per change record to an Excel workbook.

    Args:
        data: Report data dictionary containing records
        output_path: Path to save the Excel file
    """
    wb = Workbook()
    ws = wb.active
    ws.title = "Replacements"

    headers = ["#", "Status", "Story", "Find", "Replace", "Count", "Method", "Before", "After", "Message"]

    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
    header_alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
    thin_border = Border(
        left=Side(style='thin'),
        right=Side(style='thin'),
        top=Side(style='thin'),
        bottom=Side(style='thin')
    )

    for col_idx, header in enumerate(headers, 1):
        cell = ws.cell(row=1, column=col_idx, value=header)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = header_alignment
        cell.border = thin_border

    content_alignment = Alignment(vertical="top", wrap_text=True)

    for row_idx, record in enumerate(data['records'], 2):
        status = record.get('status', 'applied')
        row_data = [
            row_idx - 1,
            STATUS_LABELS.get(status, status),
            record.get('unit') or '',
            record.get('find', ''),
            record.get('replace', ''),
            record.get('count_applied', 0),
            record.get('method') or '',
            record.get('before_snippet', ''),
            record.get('after_snippet', ''),
            record.get('message', ''),
        ]
        for col_idx, value in enumerate(row_data, 1):
            safe_value = sanitize_excel_string(value) if isinstance(value, str) else value
            cell = ws.cell(row=row_idx, column=col_idx, value=safe_value)
            cell.alignment = content_alignment
            cell.border = thin_border

    column_widths = [6, 12, 28, 25, 25, 8, 14, 40, 40, 40]
    for col_idx, width in enumerate(column_widths, 1):
        ws.column_dimensions[get_column_letter(col_idx)].width = width

    ws.freeze_panes = "A2"
    wb.save(output_path)


def main():
    parser = argparse.ArgumentParser(
        description="Generate HTML replacement report from a change-record export"
    )
    parser.add_argument(
        "--changes", "-c",
        type=str,
        required=True,
        help="Path to change-record JSONL file (apply_replacements.py --report)"
    )
    parser.add_argument(
        "--output", "-o",
        type=str,
        default="replacement_report.html",
        help="Output HTML file path (default: replacement_report.html)"
    )
    parser.add_argument(
        "--template", "-t",
        type=str,
        default=str(DEFAULT_TEMPLATE),
        help="Path to Jinja2 HTML template (default: bundled assets template)"
    )
    parser.add_argument(
        "--trusted-html",
        action="store_true",
        help="Render report without HTML escaping (only for trusted inputs)"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Also output report data as JSON"
    )
    parser.add_argument(
        "--excel",
        action="store_true",
        help="Also output report as Excel file (.xlsx)"
    )

    args = parser.parse_args()

    changes_path = Path(args.changes)
    if not changes_path.exists():
        print(f"Error: Change log not found: {args.changes}", file=sys.stderr)
        return 1

    template_path = Path(args.template)
    if not template_path.exists():
        print(f"Error: Template file not found: {args.template}", file=sys.stderr)
        return 1

    print(f"Loading change log: {args.changes}")
    metadata, records = load_change_log(args.changes)
    print(f"Loaded {len(records)} records")

    data = generate_report_data(records)
    data['source_file'] = metadata.get('source_file', 'Unknown')
    data['output_file'] = metadata.get('output_file', '')
    data['applied_at'] = metadata.get('applied_at', '')
    data['dry_run'] = metadata.get('dry_run', False)

    html = render_report(data, args.template, trusted_html=args.trusted_html)
    output_path = Path(args.output)
    output_path.write_text(html, encoding='utf-8')
    print(f"HTML report saved to: {output_path}")

    if args.json:
        json_path = output_path.with_suffix('.json')
        json_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding='utf-8')
        print(f"JSON data saved to: {json_path}")

    if args.excel:
        excel_path = output_path.with_suffix('.xlsx')
        generate_excel_report(data, str(excel_path))
        print(f"Excel report saved to: {excel_path}")

    print("\n--- Summary ---")
    print(f"Replacements applied: {data['total_applied']}")
    print(f"By status: {data['status_counts']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
