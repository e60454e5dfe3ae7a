"""
Deal classification for pipeline cards.

A card's status is recomputed on every run from its *current* phase only:

    1. phase id in settings["wonPhaseIds"] / settings["lostPhaseIds"]
    2. phase name contains a lost keyword
    3. phase name contains a won keyword
    4. phase name contains a qualified keyword
    5. otherwise "new"

Phase names and keywords are compared without diacritics and case-folded.
Custom fields are looked up through ordered candidate-name lists
(FieldCandidates) so pipelines with different field names can be handled by
configuration instead of code.
"""
from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass, field, replace
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from app.services.pipefy_service import CardField, PipefyCard
from app.services.tag_extractor import DEFAULT_CHANNEL, CardTags
from app.utils.dates import parse_field_date, to_local_date
from app.utils.text import flatten_list_string, normalize_text

NEW = "new"
QUALIFIED = "qualified"
WON = "won"
LOST = "lost"
STATUSES = (NEW, QUALIFIED, WON, LOST)

DEFAULT_LOST_PHASES = ("perdido", "cancelado", "descarte", "recusado", "invalido")
DEFAULT_WON_PHASES = (
    "contrato assinado",
    "ganho",
    "fechado",
    "fechada",
    "apolice emitida",
    "apolice fechada",
    "enviado ao cliente",
)
DEFAULT_QUALIFIED_PHASES = (
    "cotacao",
    "em contato",
    "qualificado",
    "qualificacao",
    "proposta enviada",
    "contratacao",
)


@dataclass(frozen=True)
class FieldCandidates:
    """Candidate custom-field names per logical attribute, highest priority first."""

    money: Tuple[str, ...] = (
        "Valor final do prêmio",
        "Valor mensal dos honorários",
        "Valor de Prêmio",
        "Valor mensal",
        "Valor",
        "Montante",
        "Preço",
    )
    product: Tuple[str, ...] = (
        "Tipo de seguro",
        "Qual o tipo de Seguro",
        "Tipo de Lead",
        "Tipo de Negócio",
    )
    seller: Tuple[str, ...] = (
        "Responsável",
        "Vendedor",
        "Consultor",
        "Gestor do Card",
        "Dono do Card",
    )
    closing_date: Tuple[str, ...] = (
        "Data de fechamento da Apólice",
        "Data de fechamento",
        "Data Venda",
        "Data de Onboarding",
        "Data de Pagamento",
    )
    loss_reason: Tuple[str, ...] = ("Motivo",)

    def with_overrides(self, settings: Mapping[str, Any]) -> "FieldCandidates":
        """Put per-integration field names (valueField, sellerField, lossReasonField) first."""

        def _first(name: Optional[str], current: Tuple[str, ...]) -> Tuple[str, ...]:
            if not name:
                return current
            return (name,) + tuple(c for c in current if c != name)

        return replace(
            self,
            money=_first(settings.get("valueField"), self.money),
            seller=_first(settings.get("sellerField"), self.seller),
            loss_reason=_first(settings.get("lossReasonField"), self.loss_reason),
        )


def parse_money(value: Optional[str]) -> Optional[float]:
    """Parse "1.234,56"-style money text; None when nothing numeric is left."""
    if value is None:
        return None
    clean = str(value).replace(".", "").replace(",", ".", 1)
    clean = re.sub(r"[^\d.]", "", clean)
    try:
        return float(clean)
    except ValueError:
        return None


def find_field_value(fields: Sequence[CardField], candidates: Sequence[str]) -> Optional[str]:
    """First non-empty value whose field name contains a candidate, candidates in priority order."""
    for candidate in candidates:
        wanted = normalize_text(candidate)
        if not wanted:
            continue
        for card_field in fields:
            if card_field.value and wanted in normalize_text(card_field.name):
                return card_field.value
    return None


def find_money_value(fields: Sequence[CardField], candidates: Sequence[str]) -> Optional[float]:
    for candidate in candidates:
        wanted = normalize_text(candidate)
        for card_field in fields:
            if card_field.value and wanted and wanted in normalize_text(card_field.name):
                amount = parse_money(card_field.value)
                if amount is not None:
                    return amount
    return None


def find_field_date(fields: Sequence[CardField], candidates: Sequence[str]) -> Optional[dt.date]:
    for candidate in candidates:
        wanted = normalize_text(candidate)
        for card_field in fields:
            if card_field.value and wanted and wanted in normalize_text(card_field.name):
                parsed = parse_field_date(card_field.value)
                if parsed is not None:
                    return parsed
    return None


@dataclass
class ClassifiedDeal:
    card_id: str
    title: str
    status: str
    created_date: Optional[dt.date]
    effective_date: Optional[dt.date]
    amount: Optional[float] = None
    product: Optional[str] = None
    channel: str = DEFAULT_CHANNEL
    categories: List[str] = field(default_factory=list)
    seller: Optional[str] = None
    loss_reason: Optional[str] = None
    phase_id: str = ""
    phase_name: str = ""
    labels: List[str] = field(default_factory=list)
    created_at: Optional[dt.datetime] = None

    @property
    def is_paid(self) -> bool:
        return self.channel != DEFAULT_CHANNEL

    @classmethod
    def from_row(cls, row: Any) -> "ClassifiedDeal":
        """Rebuild from a stored Deal row (used when re-aggregating after a webhook)."""
        return cls(
            card_id=row.source_card_id,
            title=row.title or "",
            status=row.status,
            created_date=row.created_date,
            effective_date=row.effective_date,
            amount=row.amount,
            product=row.product,
            channel=row.channel or DEFAULT_CHANNEL,
            categories=list(row.categories or []),
            seller=row.seller,
            loss_reason=row.loss_reason,
            phase_id=row.phase_id or "",
            phase_name=row.phase_name or "",
            labels=list(row.labels or []),
            created_at=row.created_at_source,
        )


class DealClassifier:
    """Stateless per-integration classifier; build one from Integration.settings."""

    def __init__(
        self,
        settings: Optional[Mapping[str, Any]] = None,
        candidates: Optional[FieldCandidates] = None,
    ) -> None:
        settings = settings or {}
        self.won_phase_ids = frozenset(str(p) for p in settings.get("wonPhaseIds") or [])
        self.lost_phase_ids = frozenset(str(p) for p in settings.get("lostPhaseIds") or [])
        self.lost_keywords = self._keywords(settings.get("lostPhases"), DEFAULT_LOST_PHASES)
        self.won_keywords = self._keywords(settings.get("wonPhases"), DEFAULT_WON_PHASES)
        self.qualified_keywords = self._keywords(
            settings.get("qualifiedPhases"), DEFAULT_QUALIFIED_PHASES
        )
        self.candidates = (candidates or FieldCandidates()).with_overrides(settings)

    @staticmethod
    def _keywords(configured: Optional[Sequence[str]], default: Sequence[str]) -> Tuple[str, ...]:
        source = configured if configured else default
        return tuple(k for k in (normalize_text(word) for word in source) if k)

    def derive_status(self, phase_id: Optional[str], phase_name: Optional[str]) -> str:
        pid = str(phase_id or "")
        if pid and pid in self.won_phase_ids:
            return WON
        if pid and pid in self.lost_phase_ids:
            return LOST

        name = normalize_text(phase_name)
        if any(k in name for k in self.lost_keywords):
            return LOST
        if any(k in name for k in self.won_keywords):
            return WON
        if any(k in name for k in self.qualified_keywords):
            return QUALIFIED
        return NEW

    def effective_date(self, card: PipefyCard, status: str) -> Optional[dt.date]:
        """Day the card's current status event is attributed to."""
        if status in (WON, LOST):
            closing = find_field_date(card.fields, self.candidates.closing_date)
            if closing is not None:
                return closing
            return to_local_date(card.finished_at or card.updated_at)
        if status == QUALIFIED:
            return to_local_date(card.updated_at)
        return None

    def extract_seller(self, card: PipefyCard) -> Optional[str]:
        if card.assignees:
            return ", ".join(card.assignees)
        seller = flatten_list_string(find_field_value(card.fields, self.candidates.seller))
        return seller or card.created_by or None

    def extract_product(self, card: PipefyCard) -> Optional[str]:
        return flatten_list_string(find_field_value(card.fields, self.candidates.product))

    def classify(self, card: PipefyCard, tags: Optional[CardTags] = None) -> ClassifiedDeal:
        status = self.derive_status(card.phase_id, card.phase_name)
        tags = tags or CardTags()
        return ClassifiedDeal(
            card_id=card.id,
            title=card.title,
            status=status,
            created_date=to_local_date(card.created_at),
            effective_date=self.effective_date(card, status),
            amount=find_money_value(card.fields, self.candidates.money),
            product=self.extract_product(card),
            channel=tags.channel,
            categories=list(tags.categories),
            seller=self.extract_seller(card),
            loss_reason=(
                find_field_value(card.fields, self.candidates.loss_reason) if status == LOST else None
            ),
            phase_id=card.phase_id,
            phase_name=card.phase_name,
            labels=list(card.labels),
            created_at=card.created_at,
        )
