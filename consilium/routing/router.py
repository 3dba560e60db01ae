"""
Triage Router - decides urgency and which specialists see a case.

The triage specialist is always consulted first, on its own. Its opinion
drives the routing: tagged urgency and referrals on the opinion, urgency
keywords in its text, and the domain keywords that pick specialists.
Explicit severity fields on the case are layered underneath.

Triage failure never blocks routing: the Router falls back to the
configured default specialist with routine urgency and a warning.
"""

import logging
from types import MappingProxyType
from typing import Mapping, Optional

from consilium.config import ConsultationSettings
from consilium.dispatch.dispatcher import consult_isolated
from consilium.exceptions import RoutingFailure
from consilium.models.case import Case, is_populated
from consilium.models.enums import DispatchMode, SessionStatus, Urgency
from consilium.models.opinion import SpecialistOpinion
from consilium.models.routing import TRIAGE_UNAVAILABLE, RoutingDecision
from consilium.models.session import ConsultationSession
from consilium.monitoring.milestones import baseline_from_case
from consilium.routing.signals import (
    detect_urgency_signals,
    match_specialists,
    urgency_from_case_fields,
)
from consilium.specialists.catalog import DEFAULT_CATALOG, TRIAGE_ID, SpecialistProfile
from consilium.utils.protocols import SpecialistPort


logger = logging.getLogger(__name__)


def opinion_text(opinion: SpecialistOpinion) -> str:
    """All text an opinion carries, lowercased, for keyword scanning."""
    parts = [opinion.raw_text, *opinion.primary_findings]
    parts.extend(f.finding for f in opinion.key_findings)
    parts.extend(r.intervention for r in opinion.recommendations)
    return " ".join(p for p in parts if p).lower()


class Router:
    """Routes cases through triage to a non-empty set of specialists."""

    def __init__(
        self,
        specialists: Mapping[str, SpecialistPort],
        settings: Optional[ConsultationSettings] = None,
        catalog: Mapping[str, SpecialistProfile] = DEFAULT_CATALOG,
    ):
        self.specialists = MappingProxyType(dict(specialists))
        self.settings = settings or ConsultationSettings()
        self.catalog = catalog

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    async def route(
        self,
        case: Case,
        requested_specialists: Optional[list[str]] = None,
        triage_timeout: Optional[float] = None,
    ) -> RoutingDecision:
        """
        Route a case.

        Args:
            case: The submitted case
            requested_specialists: Specialists the caller explicitly wants
            triage_timeout: Override for the triage call deadline (seconds)

        Returns:
            RoutingDecision with at least one selected specialist. Never raises
            on triage failure.
        """
        requested = [s for s in (requested_specialists or []) if s != TRIAGE_ID]
        timeout = triage_timeout or self.settings.triage_timeout_seconds

        try:
            triage = await self._consult_triage(case, timeout)
        except RoutingFailure as exc:
            logger.warning("%s; routing case %s to defaults", exc, case.case_id)
            return self._fallback(case, exc, requested)

        return self._decide(case, triage, requested)

    async def _consult_triage(self, case: Case, timeout: float) -> SpecialistOpinion:
        profile = self.catalog.get(TRIAGE_ID)
        opinion = await consult_isolated(
            TRIAGE_ID,
            self.specialists.get(TRIAGE_ID),
            case,
            MappingProxyType({}),
            timeout,
            profile.domain if profile else "triage",
        )
        if not opinion.succeeded:
            raise RoutingFailure(opinion.error or str(opinion.status), opinion=opinion)
        return opinion

    def _decide(
        self,
        case: Case,
        triage: SpecialistOpinion,
        requested: list[str],
    ) -> RoutingDecision:
        text = opinion_text(triage)
        signals: list[str] = []

        # Urgency: the most urgent of every source
        keyword_urgency, keyword_signals = detect_urgency_signals(text)
        field_urgency, field_signals = urgency_from_case_fields(case)
        signals.extend(keyword_signals)
        signals.extend(field_signals)
        if triage.urgency:
            signals.append(f"Triage tagged urgency: '{triage.urgency}'")
        urgency = Urgency.most_urgent(triage.urgency, keyword_urgency, field_urgency)

        # Specialists: keyword matches plus referrals
        matched = match_specialists(text, self._routable())
        for specialist_id, hits in matched.items():
            signals.append(f"{specialist_id}: {', '.join(hits)}")
        referrals = [r for r in triage.referrals if r != TRIAGE_ID]
        for referral in referrals:
            signals.append(f"Triage referral: {referral}")

        selected = self._select(requested, sorted(set(matched) | set(referrals)))
        rationale = (
            f"Triage routed to {', '.join(selected)} at {urgency.value} urgency"
            if matched or referrals or requested
            else f"No domain matched; defaulting to {selected[0]}"
        )

        decision = RoutingDecision(
            urgency=urgency,
            selected_specialists=selected,
            data_completeness=self.data_completeness(case, selected),
            triage_opinion=triage,
            signals_detected=signals,
            rationale=rationale,
        )
        logger.info(
            "Routed case %s: urgency=%s specialists=%s completeness=%.2f",
            case.case_id,
            decision.urgency,
            decision.selected_specialists,
            decision.data_completeness,
        )
        return decision

    def _fallback(self, case: Case, failure: RoutingFailure, requested: list[str]) -> RoutingDecision:
        selected = self._select(requested, [])
        return RoutingDecision(
            urgency=Urgency.ROUTINE,
            selected_specialists=selected,
            data_completeness=self.data_completeness(case, selected),
            triage_opinion=failure.opinion,
            warnings=[TRIAGE_UNAVAILABLE],
            rationale=f"Triage unavailable ({failure.reason}); default routing",
        )

    def _routable(self) -> dict[str, SpecialistProfile]:
        return {sid: p for sid, p in self.catalog.items() if sid != TRIAGE_ID}

    def _select(self, requested: list[str], candidates: list[str]) -> list[str]:
        """Requested first, then candidates, capped, never empty."""
        selected: list[str] = []
        for specialist_id in [*requested, *candidates]:
            if specialist_id not in selected:
                selected.append(specialist_id)
        if not selected:
            selected = [self.settings.default_specialist]
        return selected[: self.settings.max_specialists]

    def data_completeness(self, case: Case, selected: list[str]) -> float:
        """
        Fraction of domain-relevant intake fields present on the case.

        Relevant fields are the union of the triage fields and the intake
        fields of every selected specialist.
        """
        fields: set[str] = set()
        for specialist_id in [TRIAGE_ID, *selected]:
            profile = self.catalog.get(specialist_id)
            if profile:
                fields.update(profile.intake_fields)
        if not fields:
            return case.completeness
        present = sum(1 for name in fields if is_populated(case.field(name)))
        return round(present / len(fields), 4)

    # ------------------------------------------------------------------
    # Session creation
    # ------------------------------------------------------------------

    async def triage(
        self,
        case: Case,
        mode: DispatchMode = DispatchMode.NORMAL,
        requested_specialists: Optional[list[str]] = None,
        triage_timeout: Optional[float] = None,
        parent_session_id: Optional[str] = None,
    ) -> ConsultationSession:
        """
        Route a case and open its session.

        The triage opinion (successful or not) is recorded on the session and
        baseline metrics are captured from the case for later milestones.
        """
        decision = await self.route(case, requested_specialists, triage_timeout)

        session = ConsultationSession(
            case=case,
            fingerprint=case.fingerprint(),
            mode=mode,
            routing=decision,
            participating_specialists=[TRIAGE_ID, *decision.selected_specialists],
            baseline_metrics=baseline_from_case(case),
            parent_session_id=parent_session_id,
        )
        session.transition(SessionStatus.TRIAGED, decision.rationale)
        if decision.triage_opinion is not None:
            session.record_opinion(decision.triage_opinion)
        return session

