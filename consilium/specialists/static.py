"""Specialist that answers with a fixed opinion. Used for demos and tests."""

import asyncio
from typing import Mapping, Optional

from consilium.models.case import Case
from consilium.models.opinion import SpecialistOpinion


class StaticSpecialist:
    """
    SpecialistPort returning a prepared opinion.

    Args:
        opinion: The opinion to return (its specialist_id is used as the id)
        delay: Seconds to wait before answering
        error: If set, raised instead of answering
        confidence_value: Value reported by ``confidence``
    """

    def __init__(
        self,
        opinion: SpecialistOpinion,
        delay: float = 0.0,
        error: Optional[Exception] = None,
        confidence_value: Optional[float] = None,
    ):
        self.opinion = opinion
        self.specialist_id = opinion.specialist_id
        self.domain = opinion.domain
        self.delay = delay
        self.error = error
        self.confidence_value = opinion.confidence if confidence_value is None else confidence_value
        self.calls: list[dict] = []

    def confidence(self, case: Case) -> float:
        return self.confidence_value

    async def consult(
        self,
        case: Case,
        prior_answers: Mapping[str, SpecialistOpinion],
        deadline: float,
    ) -> SpecialistOpinion:
        self.calls.append({"case_id": case.case_id, "prior_answers": prior_answers, "deadline": deadline})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.opinion
