"""Coordination conference over gathered specialist opinions."""

from consilium.conference.coordination import CoordinationConference

__all__ = ["CoordinationConference"]
