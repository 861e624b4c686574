"""
SCORE DE QUALIDADE DO LEAD
===========================

Função pura: atributos do lead -> inteiro de 0 a 100.
Sem I/O, sem relógio, sem estado. Mesmos dados = mesmo score.

Cinco faixas independentes, cada uma com teto próprio:
- Orçamento        (0-30)
- Audiência        (0-25)
- Engajamento      (0-20)
- Origem           (0-15)
- Tempo de resposta (0-10)
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional

MAX_SCORE = 100

# Campos que, se alterados, exigem recálculo
SCORE_INPUT_FIELDS = frozenset({
    "budget",
    "monthly_listeners",
    "social_media",
    "website",
    "label",
    "source",
    "response_time",
})

SOURCE_POINTS = {
    "referral": 15,
    "calendly": 12,
    "contact_form": 8,
    "simulator": 5,
}
DEFAULT_SOURCE_POINTS = 3


@dataclass(frozen=True)
class ScoreBreakdown:
    """Pontos por faixa (útil para explicar o score no CRM)."""
    budget: int = 0
    audience: int = 0
    engagement: int = 0
    source: int = 0
    responsiveness: int = 0

    @property
    def total(self) -> int:
        raw = self.budget + self.audience + self.engagement + self.source + self.responsiveness
        return min(raw, MAX_SCORE)

    def to_dict(self) -> dict:
        return {
            "budget": self.budget,
            "audience": self.audience,
            "engagement": self.engagement,
            "source": self.source,
            "responsiveness": self.responsiveness,
            "total": self.total,
        }


def _get(lead: Any, field: str) -> Any:
    if isinstance(lead, Mapping):
        return lead.get(field)
    return getattr(lead, field, None)


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


class LeadScorer:
    """
    Calcula o score do lead.

    Aceita a entidade Lead, um payload pydantic ou um dicionário.
    """

    def budget_points(self, budget: Optional[float]) -> int:
        if not budget:
            return 0
        if budget >= 10000:
            return 30
        if budget >= 5000:
            return 20
        if budget >= 1000:
            return 10
        return 5

    def audience_points(self, monthly_listeners: Optional[int]) -> int:
        if not monthly_listeners:
            return 0
        if monthly_listeners >= 100000:
            return 25
        if monthly_listeners >= 50000:
            return 20
        if monthly_listeners >= 10000:
            return 15
        if monthly_listeners >= 1000:
            return 10
        return 5

    def engagement_points(
        self,
        social_media: Optional[Mapping[str, Any]],
        website: Optional[str],
        label: Optional[str],
    ) -> int:
        points = 0
        social = social_media or {}
        if social.get("instagram") or social.get("tiktok"):
            points += 10
        if website:
            points += 5
        if label:
            points += 5
        return points

    def source_points(self, source: Any) -> int:
        return SOURCE_POINTS.get(_enum_value(source), DEFAULT_SOURCE_POINTS)

    def responsiveness_points(self, response_time: Optional[int]) -> int:
        # Minutos até a primeira resposta (0 = não medido)
        if not response_time:
            return 0
        if response_time <= 60:
            return 10
        if response_time <= 240:
            return 7
        if response_time <= 1440:
            return 5
        return 2

    def breakdown(self, lead: Any) -> ScoreBreakdown:
        return ScoreBreakdown(
            budget=self.budget_points(_get(lead, "budget")),
            audience=self.audience_points(_get(lead, "monthly_listeners")),
            engagement=self.engagement_points(
                _get(lead, "social_media"),
                _get(lead, "website"),
                _get(lead, "label"),
            ),
            source=self.source_points(_get(lead, "source")),
            responsiveness=self.responsiveness_points(_get(lead, "response_time")),
        )

    def score(self, lead: Any) -> int:
        return self.breakdown(lead).total


# Instância global
scorer = LeadScorer()


def score_lead(lead: Any) -> int:
    """Helper function para usar o scorer."""
    return scorer.score(lead)


def affects_score(changed_fields) -> bool:
    """Indica se algum dos campos alterados entra no cálculo do score."""
    return bool(SCORE_INPUT_FIELDS.intersection(changed_fields))
