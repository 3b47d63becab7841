from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Caller:
    """Identity resolved upstream by the authentication collaborator."""

    manager_id: Optional[int] = None
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def owns(self, manager_id: int) -> bool:
        return self.manager_id is not None and self.manager_id == manager_id
