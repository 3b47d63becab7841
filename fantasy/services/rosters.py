from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from fantasy.core.caller import Caller
from fantasy.core.errors import DuplicateRoster, Forbidden, InvalidRoster, RosterLocked
from fantasy.services.budget import BudgetLedger, RosterSelection, raise_for_report
from fantasy.stores.common import as_utc, utcnow

logger = logging.getLogger(__name__)


def _round2(value: float) -> float:
    return round(value * 100) / 100


class RosterService:
    """Roster lifecycle for one season.

    Create, update and delete each run as a single transaction together with
    the budget ledger move they imply, so a roster is never visible without
    its budget effect.
    """

    def __init__(self, stores, ledger: Optional[BudgetLedger] = None):
        self.stores = stores
        self.ledger = ledger or BudgetLedger(stores)

    # -----------------------
    # Guards
    # -----------------------
    @staticmethod
    def _check_open(race: Dict[str, Any], caller: Caller, now: datetime) -> None:
        if caller.is_admin:
            return
        if race["is_locked"]:
            raise RosterLocked(race["id"], "Race is locked for roster changes")
        if now > race["submission_deadline"]:
            raise RosterLocked(race["id"], "Submission deadline has passed")

    @staticmethod
    def _check_owner(manager_id: int, caller: Caller, action: str) -> None:
        if not caller.is_admin and not caller.owns(manager_id):
            raise Forbidden(f"You can only {action} your own rosters", {"manager_id": manager_id})

    # -----------------------
    # Writes
    # -----------------------
    def create(
        self,
        db: Session,
        caller: Caller,
        *,
        manager_id: int,
        race_id: int,
        driver_ids: Iterable[int],
        declared_cost: Optional[float] = None,
        points_earned: float = 0.0,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        now = as_utc(now) or utcnow()
        driver_ids = list(driver_ids)
        self._check_owner(manager_id, caller, "create")
        s = self.stores
        with db.begin():
            s.managers.require(db, manager_id)
            race = s.races.require(db, race_id)
            self._check_open(race, caller, now)
            if s.rosters.find(db, manager_id, race_id):
                raise DuplicateRoster(manager_id, race_id)

            report = self.ledger.validate_roster(
                db, RosterSelection(manager_id, driver_ids, declared_cost)
            )
            raise_for_report(report)
            cost = report["computed_cost"]

            roster = s.rosters.create(
                db,
                manager_id=manager_id,
                race_id=race_id,
                driver_ids=driver_ids,
                budget_used=cost,
                points_earned=points_earned,
                created_at=now,
            )
            debit = self.ledger.debit(db, manager_id, driver_ids, amount=cost)

        logger.info(
            "Season %s: roster %s created for manager %s race %s (cost %.2f)",
            s.year, roster["id"], manager_id, race_id, cost,
        )
        return {
            "roster": roster,
            "budget_info": {
                "calculated_budget": cost,
                "deducted_amount": debit["deducted"],
                "remaining_budget": debit["remaining_budget"],
            },
        }

    def update(
        self,
        db: Session,
        caller: Caller,
        roster_id: int,
        *,
        driver_ids: Optional[Iterable[int]] = None,
        declared_cost: Optional[float] = None,
        points_earned: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        if driver_ids is None and points_earned is None:
            raise InvalidRoster(["No valid fields provided for update"])
        now = as_utc(now) or utcnow()
        s = self.stores
        budget_info = None
        with db.begin():
            roster = s.rosters.require(db, roster_id, for_update=True)
            self._check_owner(roster["manager_id"], caller, "update")
            race = s.races.require(db, roster["race_id"])
            self._check_open(race, caller, now)

            changes: Dict[str, Any] = {}
            if driver_ids is not None:
                driver_ids = list(driver_ids)
                # money held by the current roster is spendable on its replacement
                report = self.ledger.validate_roster(
                    db,
                    RosterSelection(roster["manager_id"], driver_ids, declared_cost),
                    credit=roster["budget_used"],
                )
                raise_for_report(report)
                budget_info = self.ledger.rebalance(
                    db,
                    roster["manager_id"],
                    roster["driver_ids"],
                    driver_ids,
                    old_cost=roster["budget_used"],
                )
                changes["driver_ids"] = driver_ids
                changes["budget_used"] = budget_info["new_cost"]
            if points_earned is not None:
                changes["points_earned"] = points_earned
            updated = s.rosters.update(db, roster_id, changes, updated_at=now)

        logger.info("Season %s: roster %s updated (%s)", s.year, roster_id, ", ".join(changes))
        return {"roster": updated, "budget_info": budget_info}

    def delete(self, db: Session, caller: Caller, roster_id: int) -> Dict[str, Any]:
        s = self.stores
        with db.begin():
            roster = s.rosters.require(db, roster_id, for_update=True)
            self._check_owner(roster["manager_id"], caller, "delete")
            race = s.races.require(db, roster["race_id"])
            if not caller.is_admin and race["is_locked"]:
                raise RosterLocked(race["id"], "Cannot delete roster for locked race")
            s.rosters.delete(db, roster_id)
            # settle against what was actually charged, not today's prices
            restore = self.ledger.credit(
                db, roster["manager_id"], roster["driver_ids"], amount=roster["budget_used"]
            )

        logger.info(
            "Season %s: roster %s deleted, restored %.2f to manager %s",
            s.year, roster_id, restore["restored"], roster["manager_id"],
        )
        return {
            "deleted_roster": {
                "id": roster["id"],
                "manager_id": roster["manager_id"],
                "race_id": roster["race_id"],
            },
            "budget_info": {
                "restored_amount": restore["restored"],
                "remaining_budget": restore["remaining_budget"],
            },
        }

    # -----------------------
    # Reads
    # -----------------------
    def _populate(self, db: Session, roster: Dict[str, Any]) -> Dict[str, Any]:
        s = self.stores
        manager = s.managers.get(db, roster["manager_id"])
        race = s.races.get(db, roster["race_id"])
        summary = self.ledger.driver_summary(db, roster["driver_ids"])
        return {
            **roster,
            "manager": {"id": manager["id"], "username": manager["username"], "role": manager["role"]}
            if manager else None,
            "race": {
                "id": race["id"],
                "name": race["name"],
                "round_number": race["round_number"],
                "location": race["location"],
            } if race else None,
            "drivers": summary["drivers"],
        }

    def get(self, db: Session, roster_id: int) -> Dict[str, Any]:
        with db.begin():
            return self._populate(db, self.stores.rosters.require(db, roster_id))

    def list(
        self,
        db: Session,
        manager_id: Optional[int] = None,
        race_id: Optional[int] = None,
        sort: str = "created_at",
        order: str = "desc",
    ) -> List[Dict[str, Any]]:
        with db.begin():
            rows = self.stores.rosters.list(db, manager_id=manager_id, race_id=race_id, sort=sort, order=order)
            return [self._populate(db, r) for r in rows]

    def manager_rosters(self, db: Session, caller: Caller, manager_id: int) -> Dict[str, Any]:
        self._check_owner(manager_id, caller, "view")
        with db.begin():
            self.stores.managers.require(db, manager_id)
            rows = [
                self._populate(db, r)
                for r in self.stores.rosters.for_manager(db, manager_id)
            ]
        total_points = sum(r["points_earned"] for r in rows)
        total_budget = sum(r["budget_used"] for r in rows)
        return {
            "manager_id": manager_id,
            "count": len(rows),
            "summary": {
                "total_points": total_points,
                "total_budget_used": _round2(total_budget),
                "avg_points": _round2(total_points / len(rows)) if rows else 0,
            },
            "rosters": rows,
        }

    def statistics(self, db: Session) -> Dict[str, Any]:
        s = self.stores
        with db.begin():
            rosters = s.rosters.list(db)
            managers = {m["id"]: m for m in s.managers.list(db)}
            races = {r["id"]: r for r in s.races.list(db)}

        by_race: Dict[int, List[Dict[str, Any]]] = {}
        for r in rosters:
            by_race.setdefault(r["race_id"], []).append(r)
        top = sorted(rosters, key=lambda r: r["points_earned"], reverse=True)[:10]
        n = len(rosters)
        return {
            "rosters": {
                "total": n,
                "avg_budget_used": _round2(sum(r["budget_used"] for r in rosters) / n) if n else 0,
                "avg_points_earned": _round2(sum(r["points_earned"] for r in rosters) / n) if n else 0,
            },
            "top_performers": [
                {
                    "manager": managers[r["manager_id"]]["username"] if r["manager_id"] in managers else None,
                    "race": races[r["race_id"]]["name"] if r["race_id"] in races else None,
                    "points": r["points_earned"],
                    "budget": r["budget_used"],
                }
                for r in top
            ],
            "by_race": [
                {
                    "race": races[race_id]["name"],
                    "round": races[race_id]["round_number"],
                    "roster_count": len(items),
                    "avg_points": _round2(sum(i["points_earned"] for i in items) / len(items)),
                    "avg_budget": _round2(sum(i["budget_used"] for i in items) / len(items)),
                }
                for race_id, items in sorted(
                    by_race.items(), key=lambda kv: races[kv[0]]["round_number"] if kv[0] in races else 0
                )
                if race_id in races
            ],
        }

    def validate_selection(
        self,
        db: Session,
        manager_id: int,
        driver_ids: Iterable[int],
        declared_cost: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Dry-run validation; nothing is written."""
        with db.begin():
            return self.ledger.validate_roster(
                db, RosterSelection(manager_id, list(driver_ids), declared_cost)
            )
