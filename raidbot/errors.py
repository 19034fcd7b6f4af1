"""Exception hierarchy shared by the raid engine.

Validation errors are meant to be shown to whoever issued the request.  Stale
external references are recoverable and drive the self-healing lookups in
:mod:`raidbot.engine`.  Persistence and gateway failures are faults: the first
aborts the mutation in progress, the second only ever reaches the log.
"""

from __future__ import annotations


class RaidError(Exception):
    """Base class for every error raised by raidbot."""


class RaidValidationError(RaidError):
    """A request was rejected; nothing was mutated."""

    message = "Invalid request."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)


class AlreadyJoined(RaidValidationError):
    message = "You are already signed up for this raid."


class NotJoined(RaidValidationError):
    message = "You are not signed up for this raid."


class InvalidCount(RaidValidationError):
    message = "Additional attendees must be zero or more."


class InvalidTime(RaidValidationError):
    message = "That time is before the raid was created."


class RaidNotFound(RaidValidationError):
    message = "This channel is not a raid channel."


class UnknownVenue(RaidValidationError):
    message = "Unknown venue."


class ExternalReferenceStale(RaidError):
    """A channel, message or member referenced by a raid no longer exists."""


class ChannelNotFound(ExternalReferenceStale):
    def __init__(self, channel_id: int) -> None:
        super().__init__(f"Channel {channel_id} does not exist")
        self.channel_id = channel_id


class MessageNotFound(ExternalReferenceStale):
    def __init__(self, ref: object) -> None:
        super().__init__(f"Message {ref} does not exist")
        self.ref = ref


class MemberNotFound(ExternalReferenceStale):
    def __init__(self, member_id: int) -> None:
        super().__init__(f"Member {member_id} is not in the guild")
        self.member_id = member_id


class PersistenceFailure(RaidError):
    """Writing to the durable store failed; the mutation is not committed."""


class GatewayFailure(RaidError):
    """A chat platform call failed for a reason other than a missing entity."""


class MalformedRecord(RaidError):
    """A stored raid record could not be parsed."""
