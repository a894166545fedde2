"""
Statement exports - CSV text, printable HTML and an Excel workbook.

The CSV layout is fixed (header block, SUMMARY, EARNINGS, PAYOUTS) and free
text is written as-is: descriptions containing commas are not quoted.
"""

import logging
from datetime import date, datetime
from typing import Dict, Optional

import pandas as pd
from jinja2 import Environment

from statement import Statement

log = logging.getLogger('financials')


class ExportError(Exception):
    """Nothing to export."""


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SUMMARY_FIELDS = [
    ('Gross Revenue', 'gross_revenue'),
    ('Platform Commission', 'platform_commission'),
    ('Net Earnings', 'net_earnings'),
    ('Total Payouts', 'total_payouts'),
    ('Pending Payouts', 'pending_payouts'),
    ('Available Balance', 'available_balance'),
]

EARNINGS_HEADER = ['Date', 'Description', 'Type', 'Gross Amount', 'Commission', 'Net Amount']
PAYOUTS_HEADER = ['Date', 'Amount', 'Status', 'Method', 'Processed Date', 'Reference']

NOT_AVAILABLE = 'N/A'


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def _money(value) -> str:
    return f"{float(value or 0):.2f}"


def _iso_day(dt) -> str:
    return dt.strftime('%Y-%m-%d') if dt else NOT_AVAILABLE


def _long_day(dt) -> str:
    return dt.strftime('%b %d, %Y') if dt else NOT_AVAILABLE


def format_inr(value) -> str:
    """Indian digit grouping with two decimals: 1234567.5 -> '12,34,567.50'."""
    num = float(value or 0)
    sign = '-' if num < 0 else ''
    whole, frac = f"{abs(num):.2f}".split('.')
    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        whole = ','.join(groups + [tail])
    return f"{sign}{whole}.{frac}"


def statement_filename(entity_name: str, ext: str, today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"financial_statement_{entity_name}_{today.strftime('%Y-%m-%d')}.{ext}"


def _require(statement: Optional[Statement]) -> Statement:
    if statement is None:
        raise ExportError('No data to download')
    return statement


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

def statement_to_csv(statement: Optional[Statement]) -> str:
    st = _require(statement)
    s = st.summary.to_dict()

    lines = [
        f"Financial Statement - {st.entity_name}",
        f"Period: {st.period.label}",
        f"Date Range: {_long_day(st.period.start)} - {_long_day(st.period.end)}",
        '',
        'SUMMARY',
    ]
    lines += [f"{label},{_money(s[key])}" for label, key in SUMMARY_FIELDS]
    lines += ['', 'EARNINGS', ','.join(EARNINGS_HEADER)]
    for e in st.earnings:
        lines.append(','.join([
            _iso_day(e.date), e.description, e.type,
            _money(e.gross_amount), _money(e.commission), _money(e.net_amount),
        ]))
    lines += ['', 'PAYOUTS', ','.join(PAYOUTS_HEADER)]
    for p in st.payouts:
        lines.append(','.join([
            _iso_day(p.date), _money(p.amount), p.status or NOT_AVAILABLE,
            p.method or NOT_AVAILABLE, _iso_day(p.processed_date),
            p.reference or NOT_AVAILABLE,
        ]))
    return '\n'.join(lines) + '\n'


def parse_csv_summary(text: str) -> Dict[str, float]:
    """Read the SUMMARY block of an exported CSV back into {field: value}."""
    by_label = dict(SUMMARY_FIELDS)
    out: Dict[str, float] = {}
    in_summary = False
    for line in text.splitlines():
        if line == 'SUMMARY':
            in_summary = True
            continue
        if in_summary:
            if not line.strip():
                break
            label, _, value = line.rpartition(',')
            if label in by_label:
                out[by_label[label]] = float(value)
    return out


# ---------------------------------------------------------------------------
# Printable HTML
# ---------------------------------------------------------------------------

_env = Environment(autoescape=True)
_env.filters['inr'] = format_inr
_env.filters['longdate'] = _long_day

STATEMENT_HTML = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>Financial Statement - {{ st.entity_name }}</title>
  <style>
    body { font-family: Arial, sans-serif; margin: 40px; color: #333; }
    h1 { color: #2563eb; border-bottom: 3px solid #2563eb; padding-bottom: 10px; }
    h2 { color: #4b5563; margin-top: 30px; border-bottom: 2px solid #e5e7eb; padding-bottom: 8px; }
    .summary { background: #f3f4f6; padding: 20px; border-radius: 8px; margin: 20px 0; }
    .summary-row { display: flex; justify-content: space-between; margin: 10px 0; padding: 8px 0; border-bottom: 1px solid #d1d5db; }
    .summary-row:last-child { border-bottom: 2px solid #2563eb; font-weight: bold; }
    table { width: 100%; border-collapse: collapse; margin: 20px 0; }
    th { background: #2563eb; color: white; padding: 12px; text-align: left; }
    td { padding: 10px; border-bottom: 1px solid #e5e7eb; }
    .empty { text-align: center; color: #6b7280; }
    .status-badge { padding: 4px 12px; border-radius: 12px; font-size: 12px; font-weight: 600; }
    .status-processed { background: #d1fae5; color: #065f46; }
    .status-pending, .status-approved { background: #fef3c7; color: #92400e; }
    .status-rejected { background: #fee2e2; color: #991b1b; }
    .footer { margin-top: 50px; text-align: center; color: #6b7280; font-size: 12px; }
    @media print { body { margin: 20px; } .no-print { display: none; } }
  </style>
</head>
<body>
  <div class="header">
    <h1>Financial Statement</h1>
    <p><strong>{{ st.entity_name }}</strong></p>
    <p>Period: {{ st.period.label }}</p>
    <p>Date Range: {{ st.period.start|longdate }} - {{ st.period.end|longdate }}</p>
    <p>Generated: {{ st.generated_at.strftime('%b %d, %Y %H:%M') }}</p>
  </div>

  <div class="summary">
    <h2>Financial Summary</h2>
    {% for label, value, debit in summary_rows %}
    <div class="summary-row">
      <span class="label">{{ label }}:</span>
      <span class="value">{% if debit %}-{% endif %}&#8377;{{ value|inr }}</span>
    </div>
    {% endfor %}
  </div>

  <h2>Earnings Breakdown</h2>
  <table>
    <thead><tr><th>Date</th><th>Description</th><th>Type</th><th>Gross Amount</th><th>Commission</th><th>Net Amount</th></tr></thead>
    <tbody>
    {% for e in st.earnings %}
      <tr>
        <td>{{ e.date|longdate }}</td>
        <td>{{ e.description }}</td>
        <td>{{ e.type }}</td>
        <td>&#8377;{{ e.gross_amount|inr }}</td>
        <td>&#8377;{{ e.commission|inr }}</td>
        <td>&#8377;{{ e.net_amount|inr }}</td>
      </tr>
    {% else %}
      <tr><td colspan="6" class="empty">No earnings in this period</td></tr>
    {% endfor %}
    </tbody>
  </table>

  <h2>Payout History</h2>
  <table>
    <thead><tr><th>Date</th><th>Amount</th><th>Status</th><th>Method</th><th>Processed Date</th><th>Reference</th></tr></thead>
    <tbody>
    {% for p in st.payouts %}
      <tr>
        <td>{{ p.date|longdate }}</td>
        <td>&#8377;{{ p.amount|inr }}</td>
        <td>{% if p.status %}<span class="status-badge status-{{ p.status }}">{{ p.status|upper }}</span>{% else %}N/A{% endif %}</td>
        <td>{{ p.method or 'N/A' }}</td>
        <td>{{ p.processed_date|longdate }}</td>
        <td>{{ p.reference or 'N/A' }}</td>
      </tr>
    {% else %}
      <tr><td colspan="6" class="empty">No payouts in this period</td></tr>
    {% endfor %}
    </tbody>
  </table>

  <div class="footer">
    <p>This is a computer-generated statement and does not require a signature.</p>
    <p>&copy; {{ st.generated_at.year }} Protocol. All rights reserved.</p>
  </div>

  <div class="no-print" style="margin-top: 30px; text-align: center;">
    <button onclick="window.print()">Print / Save as PDF</button>
    <button onclick="window.close()">Close</button>
  </div>
</body>
</html>
"""

_statement_template = _env.from_string(STATEMENT_HTML)

# Rows shown with a leading minus on the printable statement
_DEBIT_ROWS = {'platform_commission', 'total_payouts', 'pending_payouts'}


def statement_to_html(statement: Optional[Statement]) -> str:
    st = _require(statement)
    s = st.summary.to_dict()
    summary_rows = [(label, s[key], key in _DEBIT_ROWS) for label, key in SUMMARY_FIELDS]
    return _statement_template.render(st=st, summary_rows=summary_rows)


# ---------------------------------------------------------------------------
# Excel
# ---------------------------------------------------------------------------

def statement_to_excel(statement: Optional[Statement], output) -> None:
    """Write Summary / Earnings / Payouts sheets. output is a path or a binary buffer."""
    st = _require(statement)
    s = st.summary.to_dict()

    header = pd.DataFrame([
        {'Field': 'Entity', 'Value': st.entity_name},
        {'Field': 'Period', 'Value': st.period.label},
        {'Field': 'Start', 'Value': _iso_day(st.period.start)},
        {'Field': 'End', 'Value': _iso_day(st.period.end)},
    ])
    summary = pd.DataFrame([{'Field': label, 'Value': round(s[key], 2)}
                            for label, key in SUMMARY_FIELDS])
    earnings = pd.DataFrame([{
        'Date': _iso_day(e.date), 'Description': e.description, 'Type': e.type,
        'Gross Amount': round(e.gross_amount, 2), 'Commission': round(e.commission, 2),
        'Net Amount': round(e.net_amount, 2),
    } for e in st.earnings], columns=EARNINGS_HEADER)
    payouts = pd.DataFrame([{
        'Date': _iso_day(p.date), 'Amount': round(p.amount, 2), 'Status': p.status or NOT_AVAILABLE,
        'Method': p.method or NOT_AVAILABLE, 'Processed Date': _iso_day(p.processed_date),
        'Reference': p.reference or NOT_AVAILABLE,
    } for p in st.payouts], columns=PAYOUTS_HEADER)

    with pd.ExcelWriter(output, engine='openpyxl') as writer:
        pd.concat([header, summary], ignore_index=True).to_excel(
            writer, sheet_name='Summary', index=False)
        earnings.to_excel(writer, sheet_name='Earnings', index=False)
        payouts.to_excel(writer, sheet_name='Payouts', index=False)

    log.info("Excel statement written: %d earnings, %d payouts",
             len(st.earnings), len(st.payouts))
