"""
Testes para o cálculo de progresso da meta e o AggregateView do dashboard
"""

import math
import pytest
from datetime import date, datetime
from types import SimpleNamespace

from pipeline_goals.models import OpportunityStatus, ProfessionalGoal
from pipeline_goals.services.goal_progress import (
    build_aggregate_view,
    build_annual_totals,
    build_monthly_roadmap,
    build_quarter_cards,
    compute_year_progress,
    current_quarter,
    quarter_targets_balance,
    round_progress,
)
from pipeline_goals.services.snapshot import InvalidSnapshotError, ensure_valid_snapshot
from pipeline_goals.services.status_classifier import STAGE_PROBABILITIES


REFERENCE = date(2025, 3, 10)


def make_goal(**overrides):
    data = {
        "year": 2025,
        "target_tcv_annual": 1200000,
        "target_q1": 300000,
        "target_q2": None,
        "target_q3": None,
        "target_q4": None,
    }
    data.update(overrides)
    return data


def signed_february():
    return {
        "id": 1,
        "status": "signed_contract",
        "calculated_tcv_brl": 300000,
        "expected_close_date": "2025-02-15",
    }


class TestYearProgress:
    """Testes do percentual do ano transcorrido"""

    def test_first_day(self):
        assert compute_year_progress(date(2025, 1, 1)) == pytest.approx(100 / 365)

    def test_mid_year(self):
        assert compute_year_progress(date(2025, 7, 2)) == pytest.approx(183 / 365 * 100)

    def test_last_day_of_leap_year(self):
        assert compute_year_progress(date(2024, 12, 31)) == 100.0

    def test_accepts_datetime(self):
        assert compute_year_progress(datetime(2025, 7, 2, 18, 0)) == compute_year_progress(date(2025, 7, 2))

    def test_rejects_other_types(self):
        with pytest.raises(TypeError):
            compute_year_progress("2025-07-02")

    @pytest.mark.parametrize("month,quarter", [(1, 1), (4, 2), (9, 3), (12, 4)])
    def test_current_quarter(self, month, quarter):
        assert current_quarter(date(2030, month, 5)) == quarter


class TestQuarterCards:
    """Testes dos cards de quarter"""

    def test_cards(self):
        cards = build_quarter_cards(make_goal(target_q2=200000), {1: 300000.0, 2: 50000.0}, 1)
        assert [card.quarter for card in cards] == [1, 2, 3, 4]
        assert [card.period for card in cards] == ["Jan-Mar", "Abr-Jun", "Jul-Set", "Out-Dez"]
        assert cards[0].progress == 100.0
        assert cards[1].progress == 25.0
        assert cards[2].target == 0.0
        assert cards[2].progress == 0.0
        assert cards[3].realized == 0.0

    def test_current_quarter_highlighted(self):
        cards = build_quarter_cards(make_goal(), {}, 3)
        assert [card.is_current for card in cards] == [False, False, True, False]


class TestRoadmap:
    """Testes do roadmap mensal e dos totais anuais"""

    def test_quarter_target_split_in_three(self):
        roadmap = build_monthly_roadmap(make_goal(target_q2=600000), {})
        assert len(roadmap) == 12
        assert [row.target for row in roadmap[:6]] == [100000.0] * 3 + [200000.0] * 3
        assert all(row.target == 0.0 for row in roadmap[6:])

    def test_progress_rounded_to_one_decimal(self):
        roadmap = build_monthly_roadmap(make_goal(target_q1=300000), {1: 33333.0})
        assert roadmap[0].progress == 33.3

    def test_round_half_up(self):
        assert round_progress(12.25) == 12.3
        assert round_progress(0.05) == 0.1
        assert round_progress(99.94) == 99.9

    @pytest.mark.parametrize("targets", [
        (300000, 300000, 300000, 300000),
        (150000, 270000, 330000, 450000),
        (0, 600000, 3, 900000),
    ])
    def test_sum_of_monthly_targets_equals_quarters(self, targets):
        goal = make_goal(**{f"target_q{i + 1}": value for i, value in enumerate(targets)})
        totals = build_annual_totals(build_monthly_roadmap(goal, {}))
        assert totals.target == sum(targets)

    def test_sum_with_fractional_targets(self):
        targets = (100000, 250000, 123456.78, 1)
        goal = make_goal(**{f"target_q{i + 1}": value for i, value in enumerate(targets)})
        totals = build_annual_totals(build_monthly_roadmap(goal, {}))
        assert totals.target == pytest.approx(math.fsum(targets), rel=1e-12)

    def test_annual_totals(self):
        goal = make_goal(target_q1=300000, target_q2=300000, target_q3=300000, target_q4=300000)
        roadmap = build_monthly_roadmap(goal, {2: 300000.0, 11: 60000.0})
        totals = build_annual_totals(roadmap)
        assert totals.target == 1200000.0
        assert totals.realized == 360000.0
        assert totals.progress == 30.0

    def test_annual_totals_without_targets(self):
        totals = build_annual_totals(build_monthly_roadmap(None, {5: 1000.0}))
        assert totals.target == 0.0
        assert totals.progress == 0.0


class TestQuarterBalance:
    """Testes da comparação soma dos quarters x meta anual"""

    def test_balanced(self):
        goal = make_goal(target_q2=300000, target_q3=300000, target_q4=300000)
        balance = quarter_targets_balance(goal)
        assert balance.quarters_sum == 1200000.0
        assert balance.is_balanced

    def test_unbalanced(self):
        balance = quarter_targets_balance(make_goal())
        assert balance.difference == 900000.0
        assert not balance.is_balanced


class TestAggregateView:
    """Testes do AggregateView completo"""

    def test_reference_scenario(self):
        view = build_aggregate_view([signed_february()], make_goal(), REFERENCE)

        assert view.goal_defined
        assert view.realized_total == 300000.0
        assert view.gap == 900000.0
        assert view.realized_progress == 25.0
        assert view.quarters[0].realized == 300000.0
        assert view.quarters[0].progress == 100.0

        february = view.roadmap[1]
        assert february.realized == 300000.0
        assert february.target == 100000.0
        assert february.progress == 300.0

    def test_no_goal(self):
        view = build_aggregate_view([signed_february()], None, REFERENCE)

        assert not view.goal_defined
        assert view.annual_target == 0.0
        assert view.realized_total == 300000.0
        assert view.gap == 0.0
        assert view.realized_progress == 0.0
        assert view.year_progress == 0.0
        assert not view.is_ahead_of_schedule
        assert all(card.progress == 0.0 for card in view.quarters)
        assert all(row.progress == 0.0 for row in view.roadmap)
        assert view.annual_totals.progress == 0.0

    def test_stage_totals_and_composition(self):
        opportunities = [
            signed_february(),
            {
                "id": 2,
                "status": "negotiation",
                "calculated_tcv_brl": 1000,
                "expected_close_date": "2025-06-01",
                "has_setup": True,
                "setup_value": 1000,
            },
            {"id": 3, "status": "formal_agreement", "calculated_tcv_brl": 5000},
        ]
        view = build_aggregate_view(opportunities, make_goal(), REFERENCE)

        assert [stage.status for stage in view.stages] == list(OpportunityStatus)
        assert [stage.count for stage in view.stages] == [1, 1, 1]
        assert view.total_negotiation == 1000.0
        assert view.total_formal == 5000.0
        assert len(view.monthly_composition) == 12
        assert view.monthly_composition[5].setup == 1000.0

    def test_mismatch_report(self):
        view = build_aggregate_view([signed_february()], make_goal(), REFERENCE)
        # Sem componentes, o TCV persistido não bate com a soma derivada
        assert view.tcv_mismatch_ids == [1]

    def test_ahead_of_schedule(self):
        view = build_aggregate_view([signed_february()], make_goal(), REFERENCE)
        # 25% realizado contra ~18.9% do ano transcorrido
        assert view.year_progress == pytest.approx(69 / 365 * 100)
        assert view.is_ahead_of_schedule
        assert view.current_quarter == 1

    def test_roadmap_only_counts_reference_year(self):
        old_deal = dict(signed_february(), id=2, expected_close_date="2024-02-15")
        view = build_aggregate_view([signed_february(), old_deal], make_goal(), REFERENCE)
        assert view.roadmap[1].realized == 300000.0
        assert view.realized_total == 600000.0

    def test_missing_close_date_only_in_stage_totals(self):
        undated = dict(signed_february(), expected_close_date=None)
        view = build_aggregate_view([undated], make_goal(), REFERENCE)
        assert view.realized_total == 300000.0
        assert view.annual_totals.realized == 0.0
        assert view.quarters[0].realized == 0.0

    def test_accepts_persisted_goal(self):
        goal = ProfessionalGoal(id=1, user_id=1, year=2025, target_tcv_annual=1200000, target_q1=300000)
        view = build_aggregate_view([signed_february()], goal, REFERENCE)
        assert view.gap == 900000.0

    def test_accepts_attribute_records(self):
        opportunity = SimpleNamespace(**signed_february())
        view = build_aggregate_view([opportunity], make_goal(), REFERENCE)
        assert view.realized_total == 300000.0

    def test_stage_probability_from_shared_mapping(self):
        view = build_aggregate_view([signed_february()], make_goal(), REFERENCE)
        assert {stage.status: stage.probability for stage in view.stages} == STAGE_PROBABILITIES

    def test_goal_from_other_year_rejected(self):
        with pytest.raises(ValueError):
            build_aggregate_view([signed_february()], make_goal(year=2024), REFERENCE)

    def test_quarters_and_roadmap_use_reference_year(self):
        old_deal = dict(signed_february(), id=2, expected_close_date="2024-02-15")
        view = build_aggregate_view([signed_february(), old_deal], make_goal(), REFERENCE)
        assert view.quarters[0].realized == view.roadmap[1].realized == 300000.0

    def test_goal_without_year_uses_reference_year(self):
        goal = make_goal()
        del goal["year"]
        view = build_aggregate_view([signed_february()], goal, REFERENCE)
        assert view.quarters[0].realized == 300000.0

    def test_oversized_amount_never_raises(self):
        huge = {"id": 1, "status": "signed_contract", "calculated_tcv_brl": 10 ** 400}
        view = build_aggregate_view([huge], None, date(2025, 1, 1))
        assert view.realized_total == 0.0

    def test_deterministic(self):
        opportunities = [signed_february()]
        first = build_aggregate_view(opportunities, make_goal(), REFERENCE)
        second = build_aggregate_view(opportunities, make_goal(), REFERENCE)
        assert first == second


class TestSnapshotValidation:
    """Testes das falhas estruturais do snapshot"""

    def test_not_a_list(self):
        with pytest.raises(InvalidSnapshotError):
            build_aggregate_view({"id": 1}, make_goal(), REFERENCE)

    def test_generator_rejected(self):
        with pytest.raises(InvalidSnapshotError):
            ensure_valid_snapshot(o for o in [signed_february()])

    def test_duplicate_ids(self):
        with pytest.raises(InvalidSnapshotError):
            build_aggregate_view([signed_february(), signed_february()], make_goal(), REFERENCE)

    def test_records_without_id_allowed(self):
        draft = {"status": "negotiation", "calculated_tcv_brl": 10}
        assert len(ensure_valid_snapshot([draft, dict(draft)])) == 2

    def test_is_value_error(self):
        assert issubclass(InvalidSnapshotError, ValueError)
