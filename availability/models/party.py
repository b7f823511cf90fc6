"""Membership of one side of a scheduling match."""

from __future__ import annotations

from dataclasses import dataclass

MAX_MEMBERS = 2


def redact_id(value: str) -> str:
    """Mask a user identifier for logging: show first 3 and last 2 chars only."""
    if not value or len(value) <= 5:
        return "***"
    return value[:3] + "***" + value[-2:]


@dataclass(frozen=True)
class PartyMembership:
    """The user identities belonging to one party.

    A party is an individual or a linked pair; both shapes go through the
    same code paths.  Members keep their given order and duplicates are
    dropped.
    """

    party_id: str
    members: tuple[str, ...]

    def __post_init__(self) -> None:
        unique = tuple(dict.fromkeys(m for m in self.members if m))
        if not unique:
            raise ValueError(f"Party {self.party_id!r} has no members")
        if len(unique) > MAX_MEMBERS:
            raise ValueError(
                f"Party {self.party_id!r} has {len(unique)} members; at most {MAX_MEMBERS} allowed"
            )
        object.__setattr__(self, "members", unique)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self.members


def union_members(*parties: PartyMembership) -> list[str]:
    """All member identities across ``parties``, first-seen order, no duplicates."""
    seen: dict[str, None] = {}
    for party in parties:
        for member in party.members:
            seen.setdefault(member, None)
    return list(seen)
