from __future__ import annotations

import datetime as dt

import pytest

from app.services.deal_classifier import (
    LOST,
    NEW,
    QUALIFIED,
    WON,
    DealClassifier,
    FieldCandidates,
    parse_money,
)
from app.services.pipefy_service import CardField, PipefyCard
from app.services.tag_extractor import CardTags

UTC = dt.timezone.utc


def make_card(phase_name: str = "Novo", phase_id: str = "p0", fields=None, **kwargs) -> PipefyCard:
    kwargs.setdefault("created_at", dt.datetime(2025, 12, 1, 15, 0, tzinfo=UTC))
    return PipefyCard(
        id=kwargs.pop("id", "1"),
        title="Condomínio Solar",
        phase_id=phase_id,
        phase_name=phase_name,
        fields=[CardField(name=n, value=v) for n, v in (fields or [])],
        **kwargs,
    )


class TestMoneyParsing:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("1.234,56", 1234.56),
            ("R$ 2.500,00", 2500.0),
            ("350", 350.0),
            ("0,00", 0.0),
        ],
    )
    def test_parses_brazilian_format(self, value, expected):
        assert parse_money(value) == expected

    def test_unparsable_is_none_not_zero(self):
        assert parse_money("abc") is None
        assert parse_money("") is None
        assert parse_money(None) is None


class TestDeriveStatus:
    def test_keyword_order(self):
        classifier = DealClassifier()
        assert classifier.derive_status("1", "Perdido") == LOST
        assert classifier.derive_status("1", "Fechamento - Ganho") == WON
        assert classifier.derive_status("1", "Apólice Emitida") == WON
        assert classifier.derive_status("1", "Cotação") == QUALIFIED
        assert classifier.derive_status("1", "PROPOSTA ENVIADA") == QUALIFIED
        assert classifier.derive_status("1", "Caixa de entrada") == NEW
        assert classifier.derive_status(None, None) == NEW

    def test_lost_keywords_checked_before_won(self):
        # "Fechado - Cancelado" contains a won and a lost keyword
        assert DealClassifier().derive_status("1", "Fechado - Cancelado") == LOST

    def test_phase_ids_override_names(self):
        classifier = DealClassifier({"wonPhaseIds": [338000020], "lostPhaseIds": ["338000021"]})
        assert classifier.derive_status("338000020", "Perdido") == WON
        assert classifier.derive_status("338000021", "Contrato assinado") == LOST

    def test_configured_keywords_replace_defaults(self):
        classifier = DealClassifier({"wonPhases": ["Onboarding"], "qualifiedPhases": ["Triagem"]})
        assert classifier.derive_status("1", "Onboarding concluído") == WON
        assert classifier.derive_status("1", "Triagem") == QUALIFIED
        assert classifier.derive_status("1", "Ganho") == NEW

    def test_deterministic(self):
        settings = {"wonPhaseIds": ["9"]}
        results = {DealClassifier(settings).derive_status("9", "Cotação") for _ in range(20)}
        assert results == {WON}


class TestEffectiveDate:
    def test_closing_field_first(self):
        card = make_card(
            "Ganho",
            fields=[("Data de fechamento", "15/12/2025")],
            finished_at=dt.datetime(2025, 12, 20, 12, tzinfo=UTC),
        )
        assert DealClassifier().classify(card).effective_date == dt.date(2025, 12, 15)

    def test_iso_closing_field(self):
        card = make_card("Perdido", fields=[("Data de fechamento da Apólice", "2025-12-16")])
        assert DealClassifier().classify(card).effective_date == dt.date(2025, 12, 16)

    def test_unparsable_closing_field_falls_back_to_finish(self):
        card = make_card(
            "Ganho",
            fields=[("Data de fechamento", "em breve")],
            finished_at=dt.datetime(2025, 12, 20, 12, tzinfo=UTC),
            updated_at=dt.datetime(2025, 12, 22, 12, tzinfo=UTC),
        )
        assert DealClassifier().classify(card).effective_date == dt.date(2025, 12, 20)

    def test_falls_back_to_update_timestamp(self):
        card = make_card("Ganho", updated_at=dt.datetime(2025, 12, 3, 15, 30, tzinfo=UTC))
        assert DealClassifier().classify(card).effective_date == dt.date(2025, 12, 3)

    def test_qualified_uses_update_timestamp(self):
        card = make_card(
            "Cotação",
            fields=[("Data de fechamento", "15/12/2025")],
            updated_at=dt.datetime(2025, 12, 5, 15, tzinfo=UTC),
        )
        assert DealClassifier().classify(card).effective_date == dt.date(2025, 12, 5)

    def test_new_cards_have_no_effective_date(self):
        assert DealClassifier().classify(make_card("Novo")).effective_date is None

    def test_dates_are_in_reporting_timezone(self):
        # 01:00 UTC is still the previous evening in São Paulo
        card = make_card("Novo", created_at=dt.datetime(2026, 1, 2, 1, 0, tzinfo=UTC))
        assert DealClassifier().classify(card).created_date == dt.date(2026, 1, 1)


class TestFieldExtraction:
    def test_money_candidates_in_priority_order(self):
        card = make_card(
            fields=[("Valor", "100,00"), ("Valor final do prêmio", "1.234,56")],
        )
        assert DealClassifier().classify(card).amount == 1234.56

    def test_unparsable_money_moves_to_next_candidate(self):
        card = make_card(fields=[("Valor final do prêmio", "a definir"), ("Montante", "300")])
        assert DealClassifier().classify(card).amount == 300.0

    def test_unparsable_money_is_null(self):
        card = make_card(fields=[("Valor", "abc")])
        deal = DealClassifier().classify(card)
        assert deal.amount is None
        assert deal.title == "Condomínio Solar"

    def test_configured_value_field_first(self):
        card = make_card(fields=[("Valor", "100"), ("Comissão", "40")])
        assert DealClassifier({"valueField": "Comissão"}).classify(card).amount == 40.0

    def test_with_overrides_keeps_other_candidates(self):
        candidates = FieldCandidates().with_overrides({"sellerField": "Corretor"})
        assert candidates.seller[0] == "Corretor"
        assert "Vendedor" in candidates.seller

    def test_seller_prefers_assignees(self):
        card = make_card(fields=[("Vendedor", "Carlos")], assignees=["Bruno", "Dani"])
        assert DealClassifier().classify(card).seller == "Bruno, Dani"

    def test_seller_field_is_flattened(self):
        card = make_card(fields=[("Vendedor", '["Carlos"]')])
        assert DealClassifier().classify(card).seller == "Carlos"

    def test_seller_falls_back_to_creator(self):
        card = make_card(created_by="Ana")
        assert DealClassifier().classify(card).seller == "Ana"

    def test_product_is_flattened(self):
        card = make_card(fields=[("Tipo de seguro", '[["Condominial"]]')])
        assert DealClassifier().classify(card).product == "Condominial"

    def test_loss_reason_only_for_lost(self):
        fields = [("Motivo da perda", "Preço")]
        assert DealClassifier().classify(make_card("Perdido", fields=fields)).loss_reason == "Preço"
        assert DealClassifier().classify(make_card("Ganho", fields=fields)).loss_reason is None

    def test_tags_are_carried(self):
        tags = CardTags(categories=["condominial"], channels=["meta_ads"])
        deal = DealClassifier().classify(make_card(), tags)
        assert deal.categories == ["condominial"]
        assert deal.channel == "meta_ads"
        assert deal.is_paid is True
