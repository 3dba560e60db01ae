"""
LLM-backed specialist.

Prompts a hosted model for a JSON opinion and validates it into the
structured SpecialistOpinion contract. Any classification of urgency,
risk or referrals happens here, in the model's answer, so the engine
only ever reads tagged fields.
"""

import json
import logging
from typing import Callable, Mapping, Optional

from pydantic import ValidationError

from consilium.confidence import EMPTY_HISTORY, AssessmentHistory, ConfidenceModel, domain_match
from consilium.config import ConsultationSettings
from consilium.exceptions import SpecialistError
from consilium.models.case import Case
from consilium.models.opinion import SpecialistOpinion
from consilium.specialists.catalog import TRIAGE_ID, SpecialistProfile
from consilium.utils.protocols import LLMClientProtocol
from consilium.utils.text import extract_json_block


logger = logging.getLogger(__name__)


HistoryProvider = Callable[[str], AssessmentHistory]

# Keys the model may fill; everything else on the opinion is set here
OPINION_KEYS = (
    "primary_findings",
    "key_findings",
    "recommendations",
    "questions_for_others",
    "follow_up_questions_for_case",
    "urgency",
    "risk_level",
    "risk_by_topic",
    "referrals",
)


SPECIALIST_SYSTEM_PROMPT = """You are {display_name} (specialist id: {specialist_id}), a member of a multi-specialist consultation team.

Your focus: {focus}

Colleagues you can address questions to: {colleagues}

Respond with ONLY a JSON object with these fields:
- primary_findings: list of short strings, most important first
- key_findings: list of {{"finding", "confidence" (0-1), "clinical_relevance" ("low"|"moderate"|"high"), "requires_escalation" (bool)}}
- recommendations: list of {{"intervention", "priority" (1-10, 10 = most important), "timeline", "rationale"}}
- questions_for_others: list of {{"target_specialist_id", "question", "priority" ("high"|"medium"|"low")}}
- follow_up_questions_for_case: list of questions for the patient
- urgency: "emergency" | "urgent" | "semi_urgent" | "routine"
- risk_level: "minimal" | "low" | "moderate" | "high" | "critical"
- risk_by_topic: object mapping a case dimension (e.g. "prognosis", "nerve_involvement") to a risk level
- referrals: list of specialist ids who should also see this case

Set requires_escalation only for findings that need urgent medical attention.
"""


def format_case(case: Case, prior_answers: Mapping[str, SpecialistOpinion]) -> str:
    """User prompt: the case plus what colleagues said before fan-out."""
    lines = ["## Case"]
    if case.raw_query:
        lines.append(case.raw_query)
    for name, value in sorted(case.structured_fields.items()):
        lines.append(f"- {name}: {value}")

    answered = [o for o in prior_answers.values() if o.succeeded]
    if answered:
        lines.append("")
        lines.append("## Colleagues' findings so far")
        for opinion in sorted(answered, key=lambda o: o.specialist_id):
            findings = "; ".join(opinion.primary_findings[:3]) or "no findings"
            lines.append(f"- {opinion.specialist_id}: {findings}")
    return "\n".join(lines)


class LLMSpecialist:
    """SpecialistPort implementation backed by an LLM."""

    def __init__(
        self,
        profile: SpecialistProfile,
        llm_client: LLMClientProtocol,
        colleagues: Optional[list[str]] = None,
        settings: Optional[ConsultationSettings] = None,
        confidence_model: Optional[ConfidenceModel] = None,
        history_provider: Optional[HistoryProvider] = None,
    ):
        self.profile = profile
        self.specialist_id = profile.specialist_id
        self.domain = profile.domain
        self.llm_client = llm_client
        self.colleagues = [c for c in (colleagues or []) if c != profile.specialist_id]
        self.settings = settings or ConsultationSettings()
        self.confidence_model = confidence_model or ConfidenceModel()
        self.history_provider = history_provider

    def confidence(self, case: Case) -> float:
        """Self-reported confidence from domain match and track record."""
        if self.specialist_id == TRIAGE_ID:
            match = 1.0  # Every case is in triage's domain
        else:
            match = domain_match(case.text(), self.profile.routing_keywords)
        history = self.history_provider(self.specialist_id) if self.history_provider else EMPTY_HISTORY
        return self.confidence_model.score(match, history)

    def build_messages(self, case: Case, prior_answers: Mapping[str, SpecialistOpinion]) -> list[dict]:
        system = SPECIALIST_SYSTEM_PROMPT.format(
            display_name=self.profile.display_name,
            specialist_id=self.specialist_id,
            focus=self.profile.focus,
            colleagues=", ".join(self.colleagues) or "none",
        )
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": format_case(case, prior_answers)},
        ]

    async def consult(
        self,
        case: Case,
        prior_answers: Mapping[str, SpecialistOpinion],
        deadline: float,
    ) -> SpecialistOpinion:
        """
        Ask the model for an opinion.

        The dispatcher enforces ``deadline``; this call only has to return
        a valid opinion or raise.

        Raises:
            SpecialistError: the response is not a valid JSON opinion
        """
        response = await self.llm_client.complete(
            model=self.settings.specialist_model,
            messages=self.build_messages(case, prior_answers),
            temperature=self.settings.specialist_temperature,
            json_mode=True,
        )
        return self.parse_opinion(response.content, case)

    def parse_opinion(self, content: str, case: Case) -> SpecialistOpinion:
        data = extract_json_block(content)
        if data is None:
            raise SpecialistError(self.specialist_id, "response did not contain a JSON opinion")

        fields = {key: data[key] for key in OPINION_KEYS if data.get(key) is not None}
        try:
            return SpecialistOpinion(
                specialist_id=self.specialist_id,
                domain=self.domain,
                confidence=self.confidence(case),
                raw_text=content,
                **fields,
            )
        except ValidationError as exc:
            logger.debug("Invalid opinion from %s: %s", self.specialist_id, json.dumps(data)[:500])
            raise SpecialistError(self.specialist_id, f"invalid opinion: {exc.error_count()} error(s)") from exc
