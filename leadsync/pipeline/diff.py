"""
Snapshot differ.

Pure comparison of two snapshots from the point of view of one recipient.
"""

from dataclasses import dataclass

from leadsync.models.domain.lead_domain import Lead, Snapshot, is_booked_status, normalize_person


@dataclass(frozen=True, slots=True)
class LeadDiff:
    new_records: tuple[Lead, ...] = ()
    reassigned_to_recipient: tuple[Lead, ...] = ()
    newly_booked: tuple[Lead, ...] = ()

    def is_empty(self) -> bool:
        return not (self.new_records or self.reassigned_to_recipient or self.newly_booked)


def diff_snapshots(
    previous: Snapshot | None,
    current: Snapshot,
    recipient: str,
    aliases: tuple[str, ...] = (),
) -> LeadDiff:
    """
    Classify per-lead transitions between two snapshots.

    The owner column may hold the recipient's identity or any of its
    aliases (e.g. display name); all compare case- and whitespace-insensitively.

    A missing or empty previous snapshot (first run) yields no transitions.
    Leads without an identity are never classified.
    """
    if previous is None or previous.is_empty():
        return LeadDiff()

    before = previous.by_identity()
    me = {normalize_person(name) for name in (recipient, *aliases)} - {""}

    new_records: list[Lead] = []
    reassigned: list[Lead] = []
    booked: list[Lead] = []

    for lead in current.records:
        key = lead.identity.key
        if not key:
            continue

        old = before.get(key)
        if old is None:
            new_records.append(lead)
            continue

        if lead.normalized_owner in me and old.normalized_owner not in me:
            reassigned.append(lead)

        if is_booked_status(lead.status) and not is_booked_status(old.status):
            booked.append(lead)

    return LeadDiff(tuple(new_records), tuple(reassigned), tuple(booked))
