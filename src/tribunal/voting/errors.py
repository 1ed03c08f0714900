"""
Precondition errors raised by the vote lifecycle.

Each error is raised before any state is written and carries a message that
can be shown to the invoking user as-is.
"""

from __future__ import annotations


class VoteError(Exception):
    """Base class for rejected vote operations."""

    message = "This vote operation is not allowed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)

    @property
    def user_message(self) -> str:
        return str(self)


class RoleRequired(VoteError):
    def __init__(self, role_name: str) -> None:
        self.role_name = role_name
        super().__init__(f"Only members with the \"{role_name}\" role can start a vote.")


class TargetIsAdmin(VoteError):
    message = "You cannot start a vote against an administrator."


class TargetNotMember(VoteError):
    message = "That user is not a member of this server."


class CooldownActive(VoteError):
    def __init__(self, remaining_minutes: int) -> None:
        self.remaining_minutes = remaining_minutes
        super().__init__(f"You must wait {remaining_minutes} minute(s) before starting another vote.")


class DuplicateActiveVote(VoteError):
    message = "There is already an active vote against this user."


class ChannelNotFound(VoteError):
    def __init__(self, channel_name: str) -> None:
        self.channel_name = channel_name
        super().__init__(f"Channel #{channel_name} was not found.")


class ReasonTooLong(VoteError):
    def __init__(self, max_length: int) -> None:
        self.max_length = max_length
        super().__init__(f"The reason must be at most {max_length} characters long.")


class VotePostFailed(VoteError):
    message = "The vote message could not be posted; the vote was closed."


class VoteNotFound(VoteError):
    message = "No vote was found with that ID."


class AlreadyCompleted(VoteError):
    message = "This vote has already been completed."
