"""
Interchange Formats: QIF and OFX text exports.

Part of the export_service package. Field codes and ordering are what
desktop finance packages expect, so the output here is byte-exact.
"""

import logging
from datetime import datetime
from typing import List, Optional

from wealthtracker.constants import OFX_ACCOUNT_TYPES, QIF_ACCOUNT_TYPES
from wealthtracker.schemas.finance import Account, Transaction
from wealthtracker.services.export_service.csv_builder import format_number
from wealthtracker.timeutils import ensure_utc, utcnow

logger = logging.getLogger(__name__)


def qif_account_type(account_type: str) -> str:
    return QIF_ACCOUNT_TYPES.get(account_type, "Bank")


def ofx_account_type(account_type: str) -> str:
    return OFX_ACCOUNT_TYPES.get(account_type, "CHECKING")


def _ofx_timestamp(dt: datetime) -> str:
    return ensure_utc(dt).strftime("%Y%m%dT%H%M%S")


def _signed_amount(t: Transaction) -> float:
    return -abs(t.amount) if t.type == "expense" else t.amount


def export_to_qif(transactions: List[Transaction], accounts: List[Account]) -> str:
    """
    One ``!Account`` block per account, followed by a ``!Type:`` block of
    that account's transactions when it has any.
    """
    lines: List[str] = []
    for account in accounts:
        qif_type = qif_account_type(account.type)
        lines.extend([
            "!Account",
            f"N{account.name}",
            f"T{qif_type}",
            f"${account.balance:.2f}",
            "^",
        ])

        account_transactions = [t for t in transactions if t.account_id == account.id]
        if not account_transactions:
            continue

        lines.append(f"!Type:{qif_type}")
        for t in account_transactions:
            posted = ensure_utc(t.date)
            lines.append(f"D{posted.month:02d}/{posted.day:02d}/{posted.year}")
            lines.append(f"T{_signed_amount(t):.2f}")
            lines.append(f"P{t.description or ''}")
            lines.append(f"L{t.category or 'Uncategorized'}")
            if t.notes:
                lines.append(f"M{t.notes}")
            lines.append("^")

    return "".join(f"{line}\n" for line in lines)


def export_to_ofx(
    transactions: List[Transaction],
    accounts: List[Account],
    now: Optional[datetime] = None,
) -> str:
    """OFX 1.0.3 SGML document with one bank statement per account."""
    stamp = _ofx_timestamp(now or utcnow())
    parts: List[str] = [
        "OFXHEADER:100",
        "DATA:OFXSGML",
        "VERSION:103",
        "SECURITY:NONE",
        "ENCODING:USASCII",
        "CHARSET:1252",
        "COMPRESSION:NONE",
        "OLDFILEUID:NONE",
        f"NEWFILEUID:{stamp}",
        "",
        "<OFX>",
        "<SIGNONMSGSRSV1>",
        "<SONRS>",
        "<STATUS>",
        "<CODE>0",
        "<SEVERITY>INFO",
        "</STATUS>",
        f"<DTSERVER>{stamp}",
        "<LANGUAGE>ENG",
        "</SONRS>",
        "</SIGNONMSGSRSV1>",
        "<BANKMSGSRSV1>",
        "<STMTTRNRS>",
        f"<TRNUID>{stamp}",
        "<STATUS>",
        "<CODE>0",
        "<SEVERITY>INFO",
        "</STATUS>",
    ]

    for account in accounts:
        parts.extend([
            "<STMTRS>",
            "<CURDEF>USD",
            "<BANKACCTFROM>",
            "<BANKID>123456789",
            f"<ACCTID>{account.id}",
            f"<ACCTTYPE>{ofx_account_type(account.type)}",
            "</BANKACCTFROM>",
            "<BANKTRANLIST>",
            f"<DTSTART>{stamp}",
            f"<DTEND>{stamp}",
        ])
        for t in transactions:
            if t.account_id != account.id:
                continue
            parts.extend([
                "<STMTTRN>",
                f"<TRNTYPE>{'DEBIT' if t.type == 'expense' else 'CREDIT'}",
                f"<DTPOSTED>{_ofx_timestamp(t.date)}",
                f"<TRNAMT>{format_number(_signed_amount(t))}",
                f"<FITID>{t.id}",
                f"<NAME>{t.description or ''}",
                f"<MEMO>{t.notes or ''}",
                "</STMTTRN>",
            ])
        parts.extend([
            "</BANKTRANLIST>",
            "<LEDGERBAL>",
            f"<BALAMT>{format_number(account.balance)}",
            f"<DTASOF>{stamp}",
            "</LEDGERBAL>",
            "</STMTRS>",
        ])

    parts.extend([
        "</STMTTRNRS>",
        "</BANKMSGSRSV1>",
        "</OFX>",
    ])
    return "\n".join(parts)
