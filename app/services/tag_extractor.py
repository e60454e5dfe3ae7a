from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from app.services.pipefy_service import PipefyCard
from app.utils.text import normalize_text

ALL_LABEL = "all"
DEFAULT_CHANNEL = "organico"

# Ordered (category id, keywords); order decides the order buckets are planned in
DEFAULT_CATEGORIES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("condominial", ("condominial", "condominio")),
    ("rc_sindico", ("sindico", "rc sindico")),
    ("automovel", ("automovel", "auto")),
    ("residencial", ("residencial",)),
)

# Label token -> channel tag
PAID_MEDIA_TOKENS: Tuple[Tuple[str, str], ...] = (
    ("meta ads", "meta_ads"),
    ("google ads", "google_ads"),
    ("facebook", "facebook"),
    ("instagram", "instagram"),
    ("anuncio", "anuncio"),
    ("trafego", "trafego"),
)

# Custom fields read for category keywords besides labels
CATEGORY_FIELD_NAMES: Tuple[str, ...] = (
    "Tipo de seguro",
    "Qual o tipo de Seguro",
    "Tipo de Lead",
    "Tipo de Negócio",
    "Produto",
)

# Secondary channel signal when no label says where the lead came from
UTM_FIELD_NAMES: Tuple[str, ...] = (
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "Origem do Lead",
    "Etiqueta origem do lead",
)


@dataclass(frozen=True)
class CardTags:
    categories: List[str] = field(default_factory=list)
    channels: List[str] = field(default_factory=list)

    @property
    def channel(self) -> str:
        return self.channels[0] if self.channels else DEFAULT_CHANNEL

    @property
    def is_paid(self) -> bool:
        return self.channel != DEFAULT_CHANNEL


def _field_values(card: PipefyCard, candidate_names: Iterable[str]) -> List[str]:
    wanted = [normalize_text(name) for name in candidate_names]
    values = []
    for card_field in card.fields:
        name = normalize_text(card_field.name)
        if card_field.value and any(w and w in name for w in wanted):
            values.append(card_field.value)
    return values


class TagExtractor:
    """Derives category and channel tags from labels, custom fields and campaign names."""

    def __init__(
        self,
        categories: Optional[Sequence[Tuple[str, Sequence[str]]]] = None,
        paid_media_tokens: Sequence[Tuple[str, str]] = PAID_MEDIA_TOKENS,
        category_field_names: Sequence[str] = CATEGORY_FIELD_NAMES,
        utm_field_names: Sequence[str] = UTM_FIELD_NAMES,
    ) -> None:
        rules = categories if categories is not None else DEFAULT_CATEGORIES
        self.categories: Tuple[Tuple[str, Tuple[str, ...]], ...] = tuple(
            (category_id, tuple(normalize_text(k) for k in keywords if k))
            for category_id, keywords in rules
        )
        self.paid_media_tokens = tuple((normalize_text(t), tag) for t, tag in paid_media_tokens)
        self.category_field_names = tuple(category_field_names)
        self.utm_field_names = tuple(utm_field_names)

    @classmethod
    def from_settings(cls, settings: Optional[Mapping] = None) -> "TagExtractor":
        """Build from Integration.settings; ``categories`` there is a mapping id -> keywords."""
        custom = (settings or {}).get("categories")
        if isinstance(custom, Mapping) and custom:
            return cls(categories=[(str(k), list(v)) for k, v in custom.items()])
        return cls()

    @property
    def category_ids(self) -> List[str]:
        return [category_id for category_id, _ in self.categories]

    def categories_for(self, texts: Iterable[Optional[str]]) -> List[str]:
        """Category ids whose keywords appear in any of ``texts``, in category order."""
        normalized = [normalize_text(t) for t in texts if t]
        matched = []
        for category_id, keywords in self.categories:
            if any(k in text for text in normalized for k in keywords):
                matched.append(category_id)
        return matched

    def campaign_categories(self, campaign_name: Optional[str]) -> List[str]:
        return self.categories_for([campaign_name])

    def _channels_in(self, texts: Iterable[str]) -> List[str]:
        channels: List[str] = []
        for text in texts:
            normalized = normalize_text(text)
            for token, tag in self.paid_media_tokens:
                if token in normalized and tag not in channels:
                    channels.append(tag)
        return channels

    def card_channels(self, card: PipefyCard) -> List[str]:
        channels = self._channels_in(card.labels)
        if not channels:
            channels = self._channels_in(_field_values(card, self.utm_field_names))
        return channels or [DEFAULT_CHANNEL]

    def extract(self, card: PipefyCard) -> CardTags:
        texts = list(card.labels) + _field_values(card, self.category_field_names)
        return CardTags(categories=self.categories_for(texts), channels=self.card_channels(card))

    def active_categories(
        self,
        campaign_names: Iterable[str] = (),
        card_categories: Iterable[Iterable[str]] = (),
    ) -> List[str]:
        """Categories matched by at least one campaign or card; the rest get no buckets."""
        seen = set()
        for name in campaign_names:
            seen.update(self.campaign_categories(name))
        for categories in card_categories:
            seen.update(categories)
        return [category_id for category_id in self.category_ids if category_id in seen]


def channel_summary(tags: Iterable[CardTags]) -> Dict[str, int]:
    """Card count per primary channel."""
    summary: Dict[str, int] = {}
    for card_tags in tags:
        summary[card_tags.channel] = summary.get(card_tags.channel, 0) + 1
    return summary
