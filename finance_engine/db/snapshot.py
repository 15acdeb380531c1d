"""
Read-only snapshot of the ledger for one analysis or notification pass.

Fetch failures are caught here, per table, and recorded on the snapshot so
callers can distinguish "no data" from "fetch failed".
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from botocore.exceptions import ClientError
from pydantic import ValidationError

from finance_engine.core.config import EngineConfig
from finance_engine.db import dynamo
from finance_engine.models.transaction import Account, Budget, Transaction, TransactionTemplate

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_EMPTY = "empty"
STATUS_FETCH_FAILED = "fetch_failed"


@dataclass
class Snapshot:
    transactions: List[Transaction] = field(default_factory=list)
    budgets: List[Budget] = field(default_factory=list)
    accounts: List[Account] = field(default_factory=list)
    templates: List[TransactionTemplate] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def active_budget(self) -> Optional[Budget]:
        return next((b for b in self.budgets if b.is_active), None)

    @property
    def subcategory_names(self) -> Dict[str, str]:
        names: Dict[str, str] = {}
        for budget in self.budgets:
            for item in budget.line_items:
                if item.subcategory_name:
                    names[item.subcategory_id] = item.subcategory_name
        for transaction in self.transactions:
            if transaction.subcategory_id and transaction.subcategory_name:
                names.setdefault(transaction.subcategory_id, transaction.subcategory_name)
        return names

    @property
    def data_status(self) -> str:
        if self.errors:
            return STATUS_FETCH_FAILED
        if not self.transactions:
            return STATUS_EMPTY
        return STATUS_OK


def parse_transaction(item: Dict[str, Any], config: EngineConfig) -> Transaction:
    data = dict(item)
    data["category_id"] = config.resolve_category(str(data.get("category_id", "")))
    return Transaction.model_validate(data)


class SnapshotLoader:
    """Loads the snapshot from DynamoDB through ``finance_engine.db.dynamo``."""

    def __init__(self, config: Optional[EngineConfig] = None) -> None:
        self._config = config or EngineConfig()

    def load(self) -> Snapshot:
        snapshot = Snapshot()
        snapshot.transactions = self._fetch(
            "transactions", dynamo.get_transactions, lambda item: parse_transaction(item, self._config), snapshot
        )
        snapshot.budgets = self._fetch("budgets", dynamo.get_budgets, Budget.model_validate, snapshot)
        snapshot.accounts = self._fetch("accounts", dynamo.get_accounts, Account.model_validate, snapshot)
        snapshot.templates = self._fetch("templates", dynamo.get_templates, TransactionTemplate.model_validate, snapshot)
        logger.info(
            "Loaded snapshot: %s transactions, %s budgets, %s accounts (status=%s)",
            len(snapshot.transactions),
            len(snapshot.budgets),
            len(snapshot.accounts),
            snapshot.data_status,
        )
        return snapshot

    @staticmethod
    def _fetch(name: str, fetch: Callable[[], List[Dict[str, Any]]], parse: Callable, snapshot: Snapshot) -> List:
        try:
            items = fetch()
        except ClientError as e:
            message = e.response.get("Error", {}).get("Message", str(e))
            logger.error(f"Fetching {name} failed: {message}")
            snapshot.errors[name] = message
            return []

        parsed = []
        for item in items:
            try:
                parsed.append(parse(item))
            except (ValidationError, ValueError) as e:
                logger.warning(f"Skipping malformed {name} record {item.get('id', '?')}: {e}")
        return parsed
