from dataclasses import dataclass

ROLE_CUSTOMER = "CUSTOMER"
ROLE_ADMIN = "ADMIN"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, passed explicitly into every core operation."""
    id: int
    role: str = ROLE_CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
