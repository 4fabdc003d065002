"""Identity of the caller, as supplied by the upstream auth collaborator"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Requester:
    """Who is making a request"""
    shopper_id: str
    is_operator: bool = False

    def may_access(self, owner_id: str) -> bool:
        return self.is_operator or self.shopper_id == owner_id
