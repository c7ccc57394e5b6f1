"""
Tests for ability estimation.

Tests cover:
- MLE: Newton-Raphson convergence, clamping for all-correct/all-incorrect
- WLE: weighting over previously administered items
- EAP: posterior mean, shrinkage, zero-posterior fallback
- MAP: grid-restricted mode
- Dispatch by method
"""
import math

import pytest

from cat_engine.core.cat.ability_estimation import (
    EAP_QUADRATURE_POINTS,
    MAP_GRID_POINTS,
    estimate_ability,
    estimate_ability_eap,
    estimate_ability_map,
    estimate_ability_mle,
    estimate_ability_wle,
    likelihood,
    likelihood_derivatives,
    log_likelihood,
    wle_weight,
)
from cat_engine.core.cat.irt import ItemParameters, ability_grid
from libs.domain_types import AbilityEstimationMethod, IRTModel

EASY = ItemParameters(a=1.0, b=-1.0)
MEDIUM = ItemParameters(a=1.0, b=0.0)
HARD = ItemParameters(a=1.0, b=1.0)
# A correct answer here has probability 0 at every grid node under 1PL
IMPOSSIBLE = ItemParameters(a=1.0, b=1000.0)


class TestLikelihood:
    def test_likelihood_product(self):
        responses = [(MEDIUM, True), (MEDIUM, False)]
        assert likelihood(responses, 0.0, IRTModel.IRT_2PL) == pytest.approx(0.25)

    def test_log_likelihood_matches(self):
        responses = [(EASY, True), (HARD, False)]
        assert log_likelihood(responses, 0.3, IRTModel.IRT_2PL) == pytest.approx(
            math.log(likelihood(responses, 0.3, IRTModel.IRT_2PL))
        )

    def test_log_likelihood_zero_factor(self):
        assert log_likelihood([(IMPOSSIBLE, True)], 0.0, IRTModel.IRT_1PL) == -math.inf

    def test_derivatives_single_correct(self):
        derivs = likelihood_derivatives([(MEDIUM, True)], 0.0, IRTModel.IRT_2PL)
        assert derivs.first_derivative == pytest.approx(0.5)
        assert derivs.second_derivative == pytest.approx(-0.25)
        assert derivs.log_likelihood == pytest.approx(math.log(0.5))


class TestMLE:
    """Tests for estimate_ability_mle."""

    def test_all_correct_clamps_to_upper_bound(self):
        estimate = estimate_ability_mle([], (MEDIUM, True), 0.0, IRTModel.IRT_2PL)
        assert estimate == pytest.approx(6.0)

    def test_all_incorrect_clamps_to_lower_bound(self):
        estimate = estimate_ability_mle(
            [(MEDIUM, False)], (HARD, False), 0.0, IRTModel.IRT_2PL
        )
        assert estimate == pytest.approx(-6.0)

    def test_symmetric_responses_stay_at_zero(self):
        estimate = estimate_ability_mle([(EASY, True)], (HARD, False), 0.0, IRTModel.IRT_2PL)
        assert estimate == pytest.approx(0.0, abs=1e-9)

    def test_mixed_responses_converge_to_root(self):
        responses = [(EASY, True), (MEDIUM, True), (HARD, False)]
        pending = (ItemParameters(a=1.0, b=0.5), False)
        estimate = estimate_ability_mle(responses, pending, 0.0, IRTModel.IRT_2PL)

        derivs = likelihood_derivatives([*responses, pending], estimate, IRTModel.IRT_2PL)
        assert abs(derivs.first_derivative) < 0.01
        assert -6.0 < estimate < 6.0

    def test_correct_answer_raises_estimate(self):
        estimate = estimate_ability_mle(
            [(EASY, True), (HARD, False)], (MEDIUM, True), 0.0, IRTModel.IRT_3PL
        )
        assert estimate > 0.0


class TestWLE:
    """Tests for estimate_ability_wle."""

    def test_first_response_yields_zero(self):
        # No previously administered items, so the weight is 0
        assert estimate_ability_wle([], (MEDIUM, True), 0.0, IRTModel.IRT_2PL) == 0.0

    def test_weight_formula(self):
        # I = 0.25 at theta 0, sqrt(I) = 0.5
        assert wle_weight([(MEDIUM, True)], 0.0) == pytest.approx(0.5 / 1.5)

    def test_weight_ignores_pending_item_and_guessing(self):
        guessing = ItemParameters(a=1.0, b=0.0, c=0.25)
        responses = [(guessing, True), (HARD, False)]
        pending = (EASY, True)
        mle = estimate_ability_mle(responses, pending, 0.0, IRTModel.IRT_3PL)
        wle = estimate_ability_wle(responses, pending, 0.0, IRTModel.IRT_3PL)

        # 2PL information of the two prior items only, at the MLE
        prior_info = sum(
            p.a**2 * q * (1 - q)
            for p in (guessing, HARD)
            for q in [1.0 / (1.0 + math.exp(-p.a * (mle - p.b)))]
        )
        expected_weight = math.sqrt(prior_info) / (math.sqrt(prior_info) + 1.0)
        assert wle_weight(responses, mle) == pytest.approx(expected_weight)
        assert wle == pytest.approx(mle * expected_weight)
        assert wle_weight(responses + [pending], mle) > expected_weight

    def test_shrinks_mle_toward_zero(self):
        responses = [(EASY, True), (HARD, False)]
        pending = (MEDIUM, True)
        mle = estimate_ability_mle(responses, pending, 0.0, IRTModel.IRT_2PL)
        wle = estimate_ability_wle(responses, pending, 0.0, IRTModel.IRT_2PL)
        assert 0.0 < wle < mle


class TestEAP:
    """Tests for estimate_ability_eap."""

    def test_single_correct_is_positive_and_shrunk(self):
        estimate = estimate_ability_eap([], (MEDIUM, True), 0.0, IRTModel.IRT_2PL)
        assert 0.0 < estimate < 1.0

    def test_all_correct_stays_finite(self):
        responses = [(MEDIUM, True)] * 4
        estimate = estimate_ability_eap(responses, (MEDIUM, True), 0.0, IRTModel.IRT_2PL)
        assert 0.0 < estimate < 3.0

    def test_symmetric_responses_near_zero(self):
        estimate = estimate_ability_eap([(EASY, True)], (HARD, False), 0.0, IRTModel.IRT_2PL)
        assert estimate == pytest.approx(0.0, abs=1e-9)

    def test_zero_posterior_keeps_current_ability(self):
        estimate = estimate_ability_eap([], (IMPOSSIBLE, True), 0.7, IRTModel.IRT_1PL)
        assert estimate == 0.7

    def test_grid_size(self):
        assert EAP_QUADRATURE_POINTS == 41


class TestMAP:
    """Tests for estimate_ability_map."""

    def test_result_is_a_grid_node(self):
        estimate = estimate_ability_map([], (MEDIUM, True), 0.0, IRTModel.IRT_2PL)
        grid = ability_grid(MAP_GRID_POINTS)
        assert any(estimate == pytest.approx(node) for node in grid)

    def test_single_correct_mode(self):
        # Posterior mode solves theta = 1 - P(theta), about 0.401
        estimate = estimate_ability_map([], (MEDIUM, True), 0.0, IRTModel.IRT_2PL)
        assert estimate == pytest.approx(0.4, abs=1e-9)

    def test_zero_posterior_keeps_current_ability(self):
        estimate = estimate_ability_map([], (IMPOSSIBLE, True), -1.3, IRTModel.IRT_1PL)
        assert estimate == -1.3


class TestDispatch:
    """Tests for estimate_ability."""

    @pytest.mark.parametrize(
        "method,estimator",
        [
            (AbilityEstimationMethod.MLE, estimate_ability_mle),
            (AbilityEstimationMethod.WLE, estimate_ability_wle),
            (AbilityEstimationMethod.EAP, estimate_ability_eap),
            (AbilityEstimationMethod.MAP, estimate_ability_map),
        ],
    )
    def test_routes_to_estimator(self, method, estimator):
        responses = [(EASY, True), (HARD, False)]
        pending = (MEDIUM, True)
        assert estimate_ability(
            method, responses, pending, 0.2, IRTModel.IRT_2PL
        ) == pytest.approx(estimator(responses, pending, 0.2, IRTModel.IRT_2PL))

    def test_unknown_method_uses_mle(self):
        responses = [(EASY, True)]
        pending = (HARD, False)
        assert estimate_ability(
            None, responses, pending, 0.0, IRTModel.IRT_2PL
        ) == pytest.approx(estimate_ability_mle(responses, pending, 0.0, IRTModel.IRT_2PL))

    @pytest.mark.parametrize("method", list(AbilityEstimationMethod))
    @pytest.mark.parametrize("model", list(IRTModel))
    def test_estimates_within_bounds(self, method, model):
        params = ItemParameters(a=1.2, b=0.3, c=0.2)
        estimate = estimate_ability(method, [(params, True)], (params, True), 0.0, model)
        assert -6.0 <= estimate <= 6.0
