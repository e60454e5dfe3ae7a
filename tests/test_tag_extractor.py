from __future__ import annotations

from app.services.pipefy_service import CardField, PipefyCard
from app.services.tag_extractor import CardTags, TagExtractor, channel_summary


def make_card(labels=(), fields=()) -> PipefyCard:
    return PipefyCard(
        id="1",
        title="Lead",
        labels=list(labels),
        fields=[CardField(name=n, value=v) for n, v in fields],
    )


class TestCategories:
    def test_label_and_field_keywords(self):
        extractor = TagExtractor()
        tags = extractor.extract(
            make_card(labels=["CONDOMÍNIO"], fields=[("Tipo de seguro", "RC Síndico")])
        )
        assert tags.categories == ["condominial", "rc_sindico"]

    def test_campaign_name(self):
        extractor = TagExtractor()
        assert extractor.campaign_categories("CONDOMINIAL Jan") == ["condominial"]
        assert extractor.campaign_categories("Institucional") == []

    def test_custom_categories_from_settings(self):
        extractor = TagExtractor.from_settings({"categories": {"vida": ["vida", "life"]}})
        assert extractor.category_ids == ["vida"]
        assert extractor.campaign_categories("Seguro de Vida") == ["vida"]

    def test_active_categories(self):
        extractor = TagExtractor()
        active = extractor.active_categories(
            campaign_names=["CONDOMINIAL Jan", "Institucional"],
            card_categories=[["residencial"], []],
        )
        # Declared order, unmatched categories omitted
        assert active == ["condominial", "residencial"]


class TestChannels:
    def test_paid_label(self):
        tags = TagExtractor().extract(make_card(labels=["Meta Ads"]))
        assert tags.channel == "meta_ads"
        assert tags.is_paid is True

    def test_utm_field_is_secondary_signal(self):
        tags = TagExtractor().extract(make_card(fields=[("utm_source", "instagram")]))
        assert tags.channels == ["instagram"]

    def test_label_wins_over_utm(self):
        tags = TagExtractor().extract(
            make_card(labels=["GOOGLE ADS"], fields=[("utm_source", "facebook")])
        )
        assert tags.channels == ["google_ads"]

    def test_no_signal_is_organic(self):
        tags = TagExtractor().extract(make_card(labels=["Indicação"]))
        assert tags.channel == "organico"
        assert tags.is_paid is False

    def test_channel_summary(self):
        summary = channel_summary(
            [CardTags(channels=["meta_ads"]), CardTags(), CardTags(channels=["meta_ads"])]
        )
        assert summary == {"meta_ads": 2, "organico": 1}
