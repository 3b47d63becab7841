from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional


class FantasyError(Exception):
    """Typed failure raised by the season core.

    Every failure carries a stable ``kind`` for clients, a human-readable
    message and optional structured ``details``. The HTTP layer maps
    ``status_code`` straight onto the response.
    """

    kind = "FantasyError"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


class InvalidSeason(FantasyError):
    kind = "InvalidSeason"
    status_code = 400

    def __init__(self, year: Any, reason: Optional[str] = None):
        super().__init__(reason or f"Invalid season: {year}", {"year": year})
        self.year = year


class UnknownManager(FantasyError):
    kind = "UnknownManager"
    status_code = 404

    def __init__(self, manager_id: Any):
        super().__init__(f"Manager {manager_id} not found", {"manager_id": manager_id})
        self.manager_id = manager_id


class UnknownDriver(FantasyError):
    kind = "UnknownDriver"
    status_code = 404

    def __init__(self, driver_ids: Iterable[Any]):
        ids = list(driver_ids)
        super().__init__(
            f"Drivers not found: {', '.join(str(i) for i in ids)}",
            {"driver_ids": ids},
        )
        self.driver_ids = ids


class UnknownRace(FantasyError):
    kind = "UnknownRace"
    status_code = 404

    def __init__(self, race_id: Any):
        super().__init__(f"Race {race_id} not found", {"race_id": race_id})
        self.race_id = race_id


class UnknownRoster(FantasyError):
    kind = "UnknownRoster"
    status_code = 404

    def __init__(self, roster_id: Any):
        super().__init__(f"Roster {roster_id} not found", {"roster_id": roster_id})
        self.roster_id = roster_id


class EmptyDriverPool(FantasyError):
    kind = "EmptyDriverPool"
    status_code = 422

    def __init__(self, year: int):
        super().__init__(f"No drivers found for season {year}", {"year": year})


class DegenerateValuation(FantasyError):
    kind = "DegenerateValuation"
    status_code = 422

    def __init__(self, total_driver_value: float):
        super().__init__(
            "Total driver value cannot be zero for PPM calculations",
            {"total_driver_value": total_driver_value},
        )


class DuplicateRoster(FantasyError):
    kind = "DuplicateRoster"
    status_code = 409

    def __init__(self, manager_id: Any, race_id: Any):
        super().__init__(
            "Manager already has a roster for this race",
            {"manager_id": manager_id, "race_id": race_id},
        )


class AlreadyProcessed(FantasyError):
    kind = "AlreadyProcessed"
    status_code = 409

    def __init__(self, race_id: Any):
        super().__init__(
            "Race results have already been processed", {"race_id": race_id}
        )


class RosterLocked(FantasyError):
    kind = "RosterLocked"
    status_code = 403

    def __init__(self, race_id: Any, reason: str):
        super().__init__(reason, {"race_id": race_id})


class BudgetExceeded(FantasyError):
    kind = "BudgetExceeded"
    status_code = 400

    def __init__(self, over_by: float, budget: Optional[float] = None, cost: Optional[float] = None):
        super().__init__(
            f"Budget exceeded by £{over_by:.2f}",
            {"over_by": over_by, "budget": budget, "cost": cost},
        )
        self.over_by = over_by


class CompositionUnsatisfied(FantasyError):
    kind = "CompositionUnsatisfied"
    status_code = 400

    def __init__(self, missing: List[str], present: Optional[List[str]] = None):
        super().__init__(
            f"Missing required categories: {', '.join(missing)}",
            {"missing": list(missing), "present": list(present or [])},
        )
        self.missing = list(missing)


class InvalidRoster(FantasyError):
    kind = "InvalidRoster"
    status_code = 400

    def __init__(self, errors: List[str]):
        super().__init__(
            f"Roster validation failed: {', '.join(errors)}", {"errors": list(errors)}
        )
        self.errors = list(errors)


class Conflict(FantasyError):
    kind = "Conflict"
    status_code = 409


class Forbidden(FantasyError):
    kind = "Forbidden"
    status_code = 403


class InvalidEntity(FantasyError):
    kind = "InvalidEntity"
    status_code = 400

