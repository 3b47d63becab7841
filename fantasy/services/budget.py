"""Budget ledger: roster cost, budget/composition checks and budget moves.

Every mutating call (``debit``, ``credit``, ``rebalance``) runs on the
caller's session and never commits; the roster write that motivated it
shares the same transaction.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from fantasy.core.config import settings
from fantasy.core.errors import (
    BudgetExceeded,
    CompositionUnsatisfied,
    InvalidRoster,
    UnknownDriver,
    UnknownManager,
)
from fantasy.models.season import CATEGORIES
from fantasy.stores.common import EPSILON


@dataclass
class RosterSelection:
    manager_id: int
    driver_ids: List[int] = field(default_factory=list)
    declared_cost: Optional[float] = None


class BudgetLedger:
    def __init__(
        self,
        stores,
        *,
        required_categories: Optional[Sequence[str]] = None,
        max_drivers: Optional[int] = None,
        tolerance: Optional[float] = None,
    ):
        self.stores = stores
        self.required_categories = list(required_categories or settings.required_categories)
        self.max_drivers = settings.max_roster_drivers if max_drivers is None else max_drivers
        self.tolerance = settings.budget_tolerance if tolerance is None else tolerance

    @property
    def year(self) -> int:
        return self.stores.year

    def _drivers(self, db: Session, driver_ids: Iterable[int]) -> Dict[int, Dict[str, Any]]:
        ids = list(dict.fromkeys(driver_ids))
        rows = self.stores.drivers.get_many(db, ids)
        missing = [i for i in ids if i not in rows]
        if missing:
            raise UnknownDriver(missing)
        return rows

    # -----------------------
    # Read-only checks
    # -----------------------
    def cost(self, db: Session, driver_ids: Iterable[int]) -> float:
        ids = list(dict.fromkeys(driver_ids))
        if not ids:
            return 0.0
        rows = self._drivers(db, ids)
        return float(sum(rows[i]["current_value"] for i in ids))

    def validate_budget(
        self, db: Session, manager_id: int, driver_ids: Iterable[int], credit: float = 0.0
    ) -> Dict[str, Any]:
        """Check a selection against the manager's spendable budget.

        ``credit`` is money already committed to the roster being replaced;
        it counts as available when validating an update.
        """
        manager = self.stores.managers.require(db, manager_id)
        cost = self.cost(db, driver_ids)
        available = manager["budget"] + credit
        remaining = available - cost
        within = remaining >= -EPSILON
        return {
            "within_budget": within,
            "manager_budget": manager["budget"],
            "credit": credit,
            "cost": cost,
            "remaining": remaining,
            "over_by": 0.0 if within else cost - available,
        }

    def validate_composition(
        self,
        db: Session,
        driver_ids: Iterable[int],
        required_categories: Optional[Sequence[str]] = None,
    ) -> Dict[str, Any]:
        required = list(required_categories or self.required_categories)
        ids = list(driver_ids)
        if not ids:
            return {"satisfied": False, "present": [], "missing": required, "required": required}
        rows = self._drivers(db, ids)
        seen = {c for r in rows.values() for c in (r["categories"] or [])}
        present = [c for c in CATEGORIES if c in seen] + sorted(seen - set(CATEGORIES))
        missing = [c for c in required if c not in seen]
        return {
            "satisfied": not missing,
            "present": present,
            "missing": missing,
            "required": required,
        }

    def validate_roster(self, db: Session, selection: RosterSelection, credit: float = 0.0) -> Dict[str, Any]:
        ids = list(selection.driver_ids or [])
        declared = selection.declared_cost
        errors: List[str] = []

        if not ids:
            errors.append("At least one driver must be selected")
        if len(set(ids)) != len(ids):
            errors.append("Duplicate drivers are not allowed")
        if self.max_drivers and len(ids) > self.max_drivers:
            errors.append(f"Cannot select more than {self.max_drivers} drivers (currently {len(ids)})")
        if errors:
            return {
                "valid": False,
                "errors": errors,
                "budget_info": None,
                "composition_info": None,
                "computed_cost": None,
                "declared_cost": declared,
                "cost_mismatch": False,
            }

        budget_info = self.validate_budget(db, selection.manager_id, ids, credit=credit)
        composition_info = self.validate_composition(db, ids)
        computed = budget_info["cost"]

        if not budget_info["within_budget"]:
            errors.append(f"Budget exceeded by £{budget_info['over_by']:.2f}")
        if not composition_info["satisfied"]:
            errors.append(f"Missing required categories: {', '.join(composition_info['missing'])}")
        mismatch = declared is not None and abs(computed - declared) > self.tolerance
        if mismatch:
            errors.append(f"Budget mismatch: calculated £{computed:.2f}, provided £{declared:.2f}")

        return {
            "valid": not errors,
            "errors": errors,
            "budget_info": budget_info,
            "composition_info": composition_info,
            "computed_cost": computed,
            "declared_cost": declared,
            "cost_mismatch": mismatch,
        }

    def driver_summary(self, db: Session, driver_ids: Iterable[int]) -> Dict[str, Any]:
        ids = list(dict.fromkeys(driver_ids))
        rows = self.stores.drivers.get_many(db, ids)
        drivers = [rows[i] for i in ids if i in rows]
        return {
            "drivers": [
                {"id": d["id"], "name": d["name"], "value": d["current_value"], "categories": d["categories"]}
                for d in drivers
            ],
            "total_value": sum(d["current_value"] for d in drivers),
            "categories": sorted({c for d in drivers for c in d["categories"]}),
        }

    # -----------------------
    # Budget moves (caller owns the transaction)
    # -----------------------
    def debit(
        self, db: Session, manager_id: int, driver_ids: Iterable[int], amount: Optional[float] = None
    ) -> Dict[str, Any]:
        cost = self.cost(db, driver_ids) if amount is None else float(amount)
        remaining = self.stores.managers.adjust_budget(db, manager_id, -cost)
        if remaining is None:
            manager = self.stores.managers.get(db, manager_id)
            if manager is None:
                raise UnknownManager(manager_id)
            raise BudgetExceeded(cost - manager["budget"], budget=manager["budget"], cost=cost)
        return {"deducted": cost, "remaining_budget": remaining}

    def credit(
        self, db: Session, manager_id: int, driver_ids: Iterable[int], amount: Optional[float] = None
    ) -> Dict[str, Any]:
        restored = self.cost(db, driver_ids) if amount is None else float(amount)
        remaining = self.stores.managers.adjust_budget(db, manager_id, restored)
        if remaining is None:
            raise UnknownManager(manager_id)
        return {"restored": restored, "remaining_budget": remaining}

    def rebalance(
        self,
        db: Session,
        manager_id: int,
        old_driver_ids: Iterable[int],
        new_driver_ids: Iterable[int],
        old_cost: Optional[float] = None,
    ) -> Dict[str, Any]:
        new_ids = list(new_driver_ids)
        new_cost = self.cost(db, new_ids)
        previous = self.cost(db, old_driver_ids) if old_cost is None else float(old_cost)
        delta = new_cost - previous

        if abs(delta) <= EPSILON:
            manager = self.stores.managers.require(db, manager_id)
            return {
                "delta": 0.0,
                "new_cost": new_cost,
                "remaining_budget": manager["budget"],
                "message": "No budget change required",
            }
        if delta > 0:
            remaining = self.debit(db, manager_id, new_ids, amount=delta)["remaining_budget"]
            message = f"Deducted £{delta:.2f} from budget"
        else:
            remaining = self.credit(db, manager_id, new_ids, amount=-delta)["remaining_budget"]
            message = f"Restored £{abs(delta):.2f} to budget"
        return {"delta": delta, "new_cost": new_cost, "remaining_budget": remaining, "message": message}


def raise_for_report(report: Dict[str, Any]) -> None:
    """Turn a failed ``validate_roster`` report into its typed error."""
    if report["valid"]:
        return
    if report["budget_info"] is None:
        raise InvalidRoster(report["errors"])
    composition = report["composition_info"]
    if not composition["satisfied"]:
        raise CompositionUnsatisfied(composition["missing"], composition["present"])
    budget = report["budget_info"]
    if not budget["within_budget"]:
        raise BudgetExceeded(budget["over_by"], budget=budget["manager_budget"], cost=budget["cost"])
    raise InvalidRoster(report["errors"])
