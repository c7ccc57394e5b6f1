"""
CAT simulation harness for validating adaptive testing configurations.

Simulates N examinees with known ability levels taking adaptive tests through
a CATEngine, then compares estimated with true ability.

Key Features:
- Monte Carlo simulation with configurable N and theta distribution
- Synthetic calibrated item bank spread over content categories
- Bias, RMSE, test length and stopping-reason distribution
- Maximum item exposure rate, to check exposure control settings

References:
    - Weiss, D. J. (2004). Computerized adaptive testing for effective and
      efficient measurement in counseling and education. Measurement and
      Evaluation in Counseling and Development, 37(2), 70-84.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from cat_engine.core.cat.engine import CATEngine
from cat_engine.core.cat.irt import ItemParameters, probability
from cat_engine.schemas.cat import CATConfiguration, Question, QuestionResponse
from libs.domain_types import DifficultyLevel, IRTModel, QuestionType

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = ["algebra", "geometry", "statistics", "reasoning"]

# Synthetic item parameter distributions (Lord, 1980)
DISCRIMINATION_LOGNORMAL_MEAN = 0.0
DISCRIMINATION_LOGNORMAL_SD = 0.3
DISCRIMINATION_MIN = 0.5
DISCRIMINATION_MAX = 2.5
DIFFICULTY_NORMAL_MEAN = 0.0
DIFFICULTY_NORMAL_SD = 1.0
DIFFICULTY_MIN = -3.0
DIFFICULTY_MAX = 3.0

SIMULATION_ASSESSMENT_ID = "simulation"


@dataclass
class SimulationConfig:
    """Configuration for a CAT simulation run."""

    n_examinees: int = 200
    theta_mean: float = 0.0
    theta_sd: float = 1.0
    items_per_category: int = 25
    categories: List[str] = field(default_factory=lambda: list(DEFAULT_CATEGORIES))
    seed: int = 42
    cat: CATConfiguration = field(default_factory=CATConfiguration)


@dataclass
class SimulatedItem:
    """A synthetic question with its calibrated parameters."""

    question: Question
    params: ItemParameters


@dataclass
class ExamineeResult:
    """Per-examinee simulation results."""

    true_theta: float
    estimated_theta: float
    final_sem: float
    bias: float  # estimated_theta - true_theta
    items_administered: int
    stopping_reason: str


@dataclass
class SimulationResult:
    """Aggregate simulation results."""

    config: SimulationConfig
    examinee_results: List[ExamineeResult]
    mean_items: float
    mean_sem: float
    mean_bias: float
    rmse: float
    stopping_reason_counts: Dict[str, int]
    max_exposure_rate: float


def _difficulty_tier(b: float) -> DifficultyLevel:
    if b < -1.5:
        return DifficultyLevel.VERY_EASY
    if b < -0.5:
        return DifficultyLevel.EASY
    if b < 0.5:
        return DifficultyLevel.MEDIUM
    if b < 1.5:
        return DifficultyLevel.HARD
    return DifficultyLevel.VERY_HARD


def generate_item_bank(
    items_per_category: int = 25,
    categories: Optional[List[str]] = None,
    seed: int = 42,
) -> List[SimulatedItem]:
    """
    Generate a synthetic item bank with realistic 2PL parameters.

    Item parameters are drawn from distributions that match typical
    operational item banks (Lord, 1980):
        - Discrimination (a) ~ LogNormal(mean=0.0, sd=0.3), clipped to [0.5, 2.5]
        - Difficulty (b) ~ Normal(0.0, 1.0), clipped to [-3.0, 3.0]

    Args:
        items_per_category: Number of items to generate per category.
        categories: Category names. Defaults to DEFAULT_CATEGORIES.
        seed: Random seed for reproducibility.

    Returns:
        List of SimulatedItem.
    """
    if categories is None:
        categories = list(DEFAULT_CATEGORIES)

    rng = np.random.default_rng(seed)
    items = []

    for category in categories:
        for index in range(items_per_category):
            a = rng.lognormal(
                mean=DISCRIMINATION_LOGNORMAL_MEAN, sigma=DISCRIMINATION_LOGNORMAL_SD
            )
            a = float(np.clip(a, DISCRIMINATION_MIN, DISCRIMINATION_MAX))

            b = rng.normal(loc=DIFFICULTY_NORMAL_MEAN, scale=DIFFICULTY_NORMAL_SD)
            b = float(np.clip(b, DIFFICULTY_MIN, DIFFICULTY_MAX))

            question = Question(
                id=f"{category}-{index + 1:03d}",
                difficulty=_difficulty_tier(b),
                content={"type": QuestionType.SHORT_ANSWER.value},
                categories=[category],
            )
            items.append(SimulatedItem(question=question, params=ItemParameters(a=a, b=b)))

    logger.info(
        f"Generated item bank: {len(items)} items across {len(categories)} categories "
        f"({items_per_category} per category)"
    )
    return items


def simulate_response(
    true_theta: float,
    params: ItemParameters,
    model: IRTModel,
    rng: random.Random,
) -> bool:
    """Draw a correct/incorrect response from the model's response probability."""
    return rng.random() < probability(params, true_theta, model)


def run_simulation(
    config: SimulationConfig,
    item_bank: Optional[List[SimulatedItem]] = None,
    engine: Optional[CATEngine] = None,
) -> SimulationResult:
    """
    Run N simulated examinees through a CATEngine.

    For each simulated examinee:
    1. Draw true_theta from N(config.theta_mean, config.theta_sd)
    2. Start a session over the whole item bank
    3. Loop: get_next_item -> simulate_response -> process_response
    4. Record ExamineeResult from the finished session

    Args:
        config: Simulation configuration.
        item_bank: Calibrated items; generated from the config when omitted.
        engine: Engine to run against; a fresh, seeded one when omitted.

    Returns:
        SimulationResult with per-examinee and aggregate metrics.
    """
    if item_bank is None:
        item_bank = generate_item_bank(
            items_per_category=config.items_per_category,
            categories=config.categories,
            seed=config.seed,
        )
    if engine is None:
        engine = CATEngine(rng=random.Random(config.seed))

    for item in item_bank:
        engine.update_item_parameters(item.question.id, item.params)

    logger.info(
        f"Starting CAT simulation: N={config.n_examinees}, "
        f"theta ~ N({config.theta_mean}, {config.theta_sd}^2), "
        f"pool={len(item_bank)}"
    )

    rng = random.Random(config.seed)
    np_rng = np.random.default_rng(config.seed)
    params_by_id = {item.question.id: item.params for item in item_bank}
    questions = [item.question for item in item_bank]
    model = config.cat.algorithm

    examinee_results = []
    for examinee_id in range(1, config.n_examinees + 1):
        true_theta = float(np_rng.normal(loc=config.theta_mean, scale=config.theta_sd))
        session = engine.start_session(
            SIMULATION_ASSESSMENT_ID, f"examinee-{examinee_id}", config.cat, questions
        )

        while True:
            item_id = engine.get_next_item(session.id, config.cat)
            if item_id is None:
                break
            is_correct = simulate_response(true_theta, params_by_id[item_id], model, rng)
            engine.process_response(
                session.id,
                item_id,
                QuestionResponse(response=is_correct, is_correct=is_correct),
                config.cat,
            )

        finished = engine.get_session(session.id)
        examinee_results.append(
            ExamineeResult(
                true_theta=true_theta,
                estimated_theta=finished.current_ability,
                final_sem=finished.sem,
                bias=finished.current_ability - true_theta,
                items_administered=len(finished.administered_items),
                stopping_reason=finished.termination_reason or "unknown",
            )
        )

        if examinee_id % 100 == 0:
            logger.info(f"Completed {examinee_id}/{config.n_examinees} examinees")

    rates = engine.get_exposure_rates()
    return _aggregate_results(config, examinee_results, max(rates.values(), default=0.0))


def _aggregate_results(
    config: SimulationConfig,
    examinee_results: List[ExamineeResult],
    max_exposure_rate: float,
) -> SimulationResult:
    if not examinee_results:
        raise ValueError("Cannot aggregate results from empty examinee list")

    biases = np.array([r.bias for r in examinee_results])

    stopping_reason_counts: Dict[str, int] = {}
    for result in examinee_results:
        reason = result.stopping_reason
        stopping_reason_counts[reason] = stopping_reason_counts.get(reason, 0) + 1

    result = SimulationResult(
        config=config,
        examinee_results=examinee_results,
        mean_items=float(np.mean([r.items_administered for r in examinee_results])),
        mean_sem=float(np.mean([r.final_sem for r in examinee_results])),
        mean_bias=float(np.mean(biases)),
        rmse=float(np.sqrt(np.mean(biases**2))),
        stopping_reason_counts=stopping_reason_counts,
        max_exposure_rate=max_exposure_rate,
    )

    logger.info(
        f"Simulation complete: mean_items={result.mean_items:.1f}, "
        f"mean_SEM={result.mean_sem:.3f}, bias={result.mean_bias:+.3f}, "
        f"RMSE={result.rmse:.3f}, max_exposure={result.max_exposure_rate:.1%}"
    )
    return result


def generate_report(result: SimulationResult) -> str:
    """Markdown summary of a simulation run."""
    cfg = result.config
    lines = [
        "# CAT Simulation Report",
        "",
        "## Simulation Configuration",
        "",
        f"- **N Examinees**: {cfg.n_examinees:,}",
        f"- **Theta Distribution**: N({cfg.theta_mean}, {cfg.theta_sd}^2)",
        f"- **Item Bank**: {cfg.items_per_category} items x {len(cfg.categories)} categories",
        f"- **Model**: {cfg.cat.algorithm.value}",
        f"- **Estimation**: {cfg.cat.ability_estimation.value}",
        f"- **Selection**: {cfg.cat.item_selection.value}",
        f"- **Exposure Control**: {cfg.cat.parameters.exposure_control.value}",
        f"- **Random Seed**: {cfg.seed}",
        "",
        "## Overall Metrics",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Mean Items | {result.mean_items:.2f} |",
        f"| Mean SEM | {result.mean_sem:.3f} |",
        f"| Mean Bias | {result.mean_bias:+.3f} |",
        f"| RMSE | {result.rmse:.3f} |",
        f"| Max Exposure Rate | {result.max_exposure_rate:.1%} |",
        "",
        "## Stopping Reason Distribution",
        "",
        "| Reason | Count | Percentage |",
        "|--------|-------|------------|",
    ]

    total = sum(result.stopping_reason_counts.values())
    for reason, count in sorted(result.stopping_reason_counts.items(), key=lambda x: -x[1]):
        pct = count / total if total > 0 else 0.0
        lines.append(f"| {reason} | {count:,} | {pct:.1%} |")

    lines.append("")
    return "\n".join(lines)


def theta_recovery(result: SimulationResult) -> Tuple[float, float]:
    """(correlation between true and estimated theta, RMSE)."""
    true = np.array([r.true_theta for r in result.examinee_results])
    estimated = np.array([r.estimated_theta for r in result.examinee_results])
    if len(true) < 2 or np.std(true) == 0 or np.std(estimated) == 0:
        return 0.0, result.rmse
    return float(np.corrcoef(true, estimated)[0, 1]), result.rmse
