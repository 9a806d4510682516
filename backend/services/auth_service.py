from dataclasses import dataclass, field


@dataclass(frozen=True)
class AccessPolicy:
    """
    Who may manage the shared course library.

    Admins have full access; supervisors may add courses but not delete them.
    The allowlists come from configuration (ADMIN_EMAILS / SUPERVISOR_EMAILS).
    """
    admins: frozenset[str] = field(default_factory=frozenset)
    supervisors: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_emails(cls, admins, supervisors=()) -> "AccessPolicy":
        return cls(
            admins=frozenset(e.strip().lower() for e in admins if e and e.strip()),
            supervisors=frozenset(e.strip().lower() for e in supervisors if e and e.strip()),
        )

    def is_admin(self, email: str | None) -> bool:
        return bool(email) and email.strip().lower() in self.admins

    def is_supervisor(self, email: str | None) -> bool:
        return bool(email) and email.strip().lower() in self.supervisors

    def has_admin_panel_access(self, email: str | None) -> bool:
        return self.is_admin(email) or self.is_supervisor(email)
