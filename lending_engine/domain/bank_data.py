"""Conversion between stored linked-bank payloads and typed BankSignals"""

from typing import Any, Dict, Optional

from lending_engine.domain.models import (
    AchNumbers,
    AssetReport,
    BankBalance,
    BankSignals,
    LinkedAccount,
)


def _balance(data: Optional[Dict[str, Any]]) -> Optional[BankBalance]:
    if not data:
        return None
    return BankBalance(
        current_cents=data.get("current_cents"),
        available_cents=data.get("available_cents"),
    )


def parse_bank_signals(payload: Dict[str, Any]) -> BankSignals:
    """
    Build BankSignals from the JSON stored on an application.

    Raises:
        KeyError / TypeError: payload is missing required fields or malformed
    """
    accounts = payload.get("all_accounts")
    ach = payload.get("ach_numbers")
    report = payload.get("asset_report")

    return BankSignals(
        institution_name=payload["institution_name"],
        account_mask=payload.get("account_mask", ""),
        account_type=payload.get("account_type", "checking"),
        balance=_balance(payload.get("balance")),
        all_accounts=[
            LinkedAccount(
                account_id=acc["account_id"],
                name=acc.get("name", ""),
                balance=_balance(acc.get("balance")) or BankBalance(),
            )
            for acc in accounts
        ]
        if accounts is not None
        else None,
        ach_numbers=AchNumbers(account_number=ach["account_number"], routing_number=ach["routing_number"]) if ach else None,
        asset_report=AssetReport(
            status=report["status"],
            historical_balances_cents=list(report.get("historical_balances_cents", [])),
            deposits_cents=list(report.get("deposits_cents", [])),
            days_available=report.get("days_available"),
        )
        if report
        else None,
        manual_entry=bool(payload.get("manual_entry", False)),
        access_token=payload.get("access_token"),
        account_id=payload.get("account_id"),
    )
