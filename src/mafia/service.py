"""Mafia service — facade over the organisation engine.

This is the primary interface for programmatic access. It:
- Resolves member ids to nodes and validates them.
- Turns engine signals into typed ServiceResults with a FailureKind.
- Appends an audit event for every state change.
- Runs the structural invariant checks after each change (configurable).

The engine never raises for an operational failure (duplicate id,
wrong set, no successor); it returns a signal and the service names it.
ValueErrors raised by the engine for invalid input are converted into
failed results here.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from mafia.config import DEFAULT_CONFIG
from mafia.hierarchy.invariants import check_invariants
from mafia.hierarchy.organisation import Organisation, Succession
from mafia.models.member import Member, MemberRegistry
from mafia.persistence.event_log import EventKind, EventLog, EventRecord

logger = logging.getLogger(__name__)


class FailureKind(str, enum.Enum):
    """Why a service operation failed."""
    DUPLICATE_MEMBER = "duplicate_member"
    NOT_A_MEMBER = "not_a_member"
    NOT_IMPRISONED = "not_imprisoned"
    NO_SUCCESSOR_AVAILABLE = "no_successor_available"
    UNKNOWN_MEMBER = "unknown_member"
    INVALID_MEMBER = "invalid_member"
    AUDIT_FAILURE = "audit_failure"


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    failure: Optional[FailureKind] = None


def _fail(kind: FailureKind, message: str, **data: Any) -> ServiceResult:
    return ServiceResult(success=False, errors=[message], data=data, failure=kind)


class MafiaService:
    """Unified facade for the hierarchy engine.

    Usage:
        service = MafiaService.create(godfather_id=1, godfather_age=70)
        service.enlist(2, 50, boss_id=1)
        result = service.send_to_prison(2)
        result = service.release_from_prison(2)
        result = service.find_big_bosses(3)

    Not thread-safe, like the engine it wraps.
    """

    def __init__(
        self,
        organisation: Organisation,
        event_log: Optional[EventLog] = None,
        config: Optional[dict[str, Any]] = None,
    ) -> None:
        self._org = organisation
        self._config = config if config is not None else dict(DEFAULT_CONFIG)
        if event_log is None:
            path = self._config.get("event_log_path")
            event_log = EventLog(storage_path=Path(path) if path else None)
        self._event_log = event_log
        self._check_invariants = self._config.get(
            "check_invariants", DEFAULT_CONFIG["check_invariants"]
        )
        # Continue numbering from a log loaded from disk
        self._event_counter = event_log.count

    @classmethod
    def create(
        cls,
        godfather_id: int,
        godfather_age: int,
        event_log: Optional[EventLog] = None,
        config: Optional[dict[str, Any]] = None,
    ) -> MafiaService:
        """Build a service around a fresh organisation.

        Raises:
            ValueError: If the godfather id/age are invalid.
        """
        registry = MemberRegistry()
        godfather = registry.enrol(godfather_id, godfather_age)
        service = cls(Organisation(godfather), event_log=event_log, config=config)
        err = service._record_event(
            EventKind.MEMBER_ADDED,
            godfather_id,
            {"age": godfather_age, "boss_id": None, "godfather": True},
        )
        if err:
            raise ValueError(err)
        return service

    @property
    def organisation(self) -> Organisation:
        return self._org

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def enlist(
        self,
        member_id: int,
        age: int,
        boss_id: Optional[int] = None,
    ) -> ServiceResult:
        """Add a new member, optionally reporting to an active boss."""
        if (
            self._org.get_member(member_id) is not None
            or self._org.get_prisoner(member_id) is not None
        ):
            return _fail(
                FailureKind.DUPLICATE_MEMBER,
                f"Member already exists: {member_id}",
                member_id=member_id,
            )

        boss: Optional[Member] = None
        if boss_id is not None:
            boss = self._org.get_member(boss_id)
            if boss is None:
                return _fail(
                    FailureKind.NOT_A_MEMBER,
                    f"Boss is not an active member: {boss_id}",
                    member_id=member_id,
                    boss_id=boss_id,
                )

        try:
            member = self._org.enlist(member_id, age, boss=boss)
        except ValueError as e:
            return _fail(FailureKind.INVALID_MEMBER, str(e), member_id=member_id)
        if member is None:
            return _fail(
                FailureKind.DUPLICATE_MEMBER,
                f"Member already exists: {member_id}",
                member_id=member_id,
            )

        data: dict[str, Any] = {"member_id": member_id, "boss_id": boss_id}
        err = self._record_event(
            EventKind.MEMBER_ADDED,
            member_id,
            {"age": age, "boss_id": boss_id, "godfather": False},
        )
        return self._after_mutation(data, err)

    def get_member(self, member_id: int) -> ServiceResult:
        """Describe an active member."""
        member = self._org.get_member(member_id)
        if member is None:
            kind = (
                FailureKind.NOT_A_MEMBER
                if self._org.get_prisoner(member_id) is not None
                else FailureKind.UNKNOWN_MEMBER
            )
            return _fail(kind, f"Not an active member: {member_id}", member_id=member_id)
        return ServiceResult(success=True, data=self._describe(member))

    # ------------------------------------------------------------------
    # Imprisonment and release
    # ------------------------------------------------------------------

    def send_to_prison(self, member_id: int) -> ServiceResult:
        """Imprison an active member and restructure the hierarchy.

        On NO_SUCCESSOR_AVAILABLE the member has still been moved to
        prison; its subordinates keep reporting to it.
        """
        member = self._org.get_member(member_id)
        if member is None:
            return _fail(
                FailureKind.NOT_A_MEMBER,
                f"Not an active member: {member_id}",
                member_id=member_id,
            )

        previous_godfather = self._org.get_godfather().member_id
        succeeded = self._org.send_to_prison(member)
        succession = self._org.last_succession
        data = {"member_id": member_id, **self._succession_data(succession)}

        err = self._record_event(
            EventKind.MEMBER_IMPRISONED,
            member_id,
            {"boss_id": member.boss_id},
        )
        if err is None:
            err = self._record_event(
                EventKind.SUCCESSION_COMPLETED if succeeded
                else EventKind.SUCCESSION_FAILED,
                member_id,
                self._succession_data(succession),
            )
        new_godfather = self._org.get_godfather().member_id
        if err is None and new_godfather != previous_godfather:
            err = self._record_event(
                EventKind.GODFATHER_CHANGED,
                new_godfather,
                {"previous_id": previous_godfather},
            )

        if not succeeded:
            logger.warning(
                "No successor for member %s; %d subordinate(s) left reporting to prison",
                member_id, len(member.subordinate_ids),
            )
            if err:
                return _fail(FailureKind.AUDIT_FAILURE, err, **data)
            return _fail(
                FailureKind.NO_SUCCESSOR_AVAILABLE,
                f"No successor available for member {member_id}",
                **data,
            )

        logger.debug(
            "Member %s imprisoned; %s succession by %s",
            member_id, data["strategy"], data["successor_id"],
        )
        return self._after_mutation(data, err)

    def release_from_prison(self, member_id: int) -> ServiceResult:
        """Release an imprisoned member and restore its subordinates."""
        member = self._org.get_prisoner(member_id)
        if member is None:
            return _fail(
                FailureKind.NOT_IMPRISONED,
                f"Not imprisoned: {member_id}",
                member_id=member_id,
            )

        previous_godfather = self._org.get_godfather().member_id
        self._org.release_from_prison(member)
        recovered = list(member.subordinate_ids)
        data: dict[str, Any] = {
            "member_id": member_id,
            "recovered_ids": recovered,
        }

        err = self._record_event(
            EventKind.MEMBER_RELEASED,
            member_id,
            {"recovered_ids": recovered},
        )
        new_godfather = self._org.get_godfather().member_id
        if err is None and new_godfather != previous_godfather:
            err = self._record_event(
                EventKind.GODFATHER_CHANGED,
                new_godfather,
                {"previous_id": previous_godfather},
            )

        logger.debug("Member %s released; recovered %s", member_id, recovered)
        return self._after_mutation(data, err)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_big_bosses(self, minimum_subordinates: int) -> ServiceResult:
        """Active members with more than minimum_subordinates in total."""
        bosses = self._org.find_big_bosses(minimum_subordinates)
        return ServiceResult(
            success=True,
            data={
                "minimum_subordinates": minimum_subordinates,
                "member_ids": [m.member_id for m in bosses],
            },
        )

    def compare_members(self, member_a_id: int, member_b_id: int) -> ServiceResult:
        """Higher-ranking of two members; data["higher_id"] is None if not comparable."""
        registry = self._org.registry
        for mid in (member_a_id, member_b_id):
            if mid not in registry:
                return _fail(
                    FailureKind.UNKNOWN_MEMBER,
                    f"Unknown member: {mid}",
                    member_id=mid,
                )
        member_a = registry.resolve(member_a_id)
        member_b = registry.resolve(member_b_id)
        try:
            higher = self._org.compare_members(member_a, member_b)
        except ValueError as e:
            return _fail(FailureKind.INVALID_MEMBER, str(e))
        return ServiceResult(
            success=True,
            data={
                "member_a_id": member_a_id,
                "member_b_id": member_b_id,
                "higher_id": higher.member_id if higher is not None else None,
            },
        )

    def check_invariants(self) -> ServiceResult:
        """Run the structural checks. Fails if any invariant is broken."""
        violations = check_invariants(self._org)
        return ServiceResult(
            success=not violations,
            errors=violations,
            data={"violations": violations},
        )

    def status(self) -> dict[str, Any]:
        """Snapshot of the organisation for display."""
        return {
            "godfather_id": self._org.get_godfather().member_id,
            "members": [self._describe(m) for m in self._org.active_members()],
            "prison": [m.member_id for m in self._org.prisoners()],
            "event_count": self._event_log.count,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _describe(member: Member) -> dict[str, Any]:
        return {
            "member_id": member.member_id,
            "age": member.age,
            "boss_id": member.boss_id,
            "subordinate_ids": list(member.subordinate_ids),
        }

    @staticmethod
    def _succession_data(succession: Optional[Succession]) -> dict[str, Any]:
        if succession is None:
            return {}
        return {
            "strategy": succession.strategy.value,
            "successor_id": succession.successor_id,
            "reassigned_ids": list(succession.reassigned_ids),
            "godfather_changed": succession.godfather_changed,
        }

    def _after_mutation(self, data: dict[str, Any], err: Optional[str]) -> ServiceResult:
        """Finish a successful mutation: audit failure check, then invariants."""
        if err:
            return _fail(FailureKind.AUDIT_FAILURE, err, **data)
        if self._check_invariants:
            violations = check_invariants(self._org)
            if violations:
                logger.warning(
                    "Hierarchy invariants violated: %s", "; ".join(violations),
                )
            data["violations"] = violations
        return ServiceResult(success=True, data=data)

    def _next_event_id(self) -> str:
        self._event_counter += 1
        return f"evt-{self._event_counter:06d}"

    def _record_event(
        self,
        kind: EventKind,
        member_id: int,
        payload: dict[str, Any],
    ) -> Optional[str]:
        """Append an audit event. Returns error string or None.

        State has already changed when this runs; a failure is reported,
        not rolled back.
        """
        try:
            event = EventRecord.create(
                event_id=self._next_event_id(),
                event_kind=kind,
                member_id=member_id,
                payload=payload,
            )
            self._event_log.append(event)
        except (ValueError, OSError) as e:
            logger.error("Audit event %s for member %s not recorded: %s", kind.value, member_id, e)
            return f"Event log failure: {e}"
        return None
