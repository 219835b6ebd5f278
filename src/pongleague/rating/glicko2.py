"""
Glicko-2 rating math.

Pure functions, no I/O and no state. Implements the single rating-period
update from Glickman's paper (http://www.glicko.net/glicko/glicko2.pdf),
plus the two league-specific helpers built on it:

- combine_team(): collapse a doubles pair into one virtual opponent
- inflate_rd(): grow uncertainty for inactive players

The update:
  1. Convert rating/RD to mu/phi on the Glicko-2 scale
  2. Estimated variance:      v = 1 / sum(g(phi_j)^2 * E * (1 - E))
  3. Estimated improvement:   delta = v * sum(g(phi_j) * (s_j - E))
  4. New volatility sigma' by solving f(x) = 0 with the Illinois method
  5. phi* = sqrt(phi^2 + sigma'^2), phi' = 1 / sqrt(1/phi*^2 + 1/v)
  6. mu' = mu + phi'^2 * sum(g(phi_j) * (s_j - E))

Where:
  g(phi)            = 1 / sqrt(1 + 3 phi^2 / pi^2)
  E(mu, mu_j, phi_j) = 1 / (1 + exp(-g(phi_j) (mu - mu_j)))
"""

import math
from dataclasses import dataclass
from typing import NamedTuple, Sequence

from pongleague.exceptions import ConvergenceError, PreconditionError
from pongleague.rating.constants import (
    CONVERGENCE_TOLERANCE,
    DEFAULT_MAX_RD,
    DEFAULT_RATING,
    DEFAULT_RD,
    DEFAULT_TAU,
    DEFAULT_VOLATILITY,
    GLICKO_SCALE,
    MAX_SOLVER_ITERATIONS,
    TEAM_RD_DIVISOR,
)


@dataclass(frozen=True)
class RatingState:
    """A player's (or team's) rating in one mode."""
    rating: float = DEFAULT_RATING
    rd: float = DEFAULT_RD
    volatility: float = DEFAULT_VOLATILITY


@dataclass(frozen=True)
class RatingUpdate(RatingState):
    """
    Result of a Glicko-2 update.

    delta_mu and delta_sigma are reported on the internal scale so history
    rows can be replayed or charted without re-deriving them.
    """
    delta_mu: float = 0.0
    delta_sigma: float = 0.0

    def as_state(self) -> RatingState:
        return RatingState(self.rating, self.rd, self.volatility)


class OpponentResult(NamedTuple):
    """One game against an opponent: their rating, RD and our score (1 or 0)."""
    rating: float
    rd: float
    score: float


def _to_mu(rating: float) -> float:
    return (rating - DEFAULT_RATING) / GLICKO_SCALE


def _to_phi(rd: float) -> float:
    return rd / GLICKO_SCALE


def _from_mu(mu: float) -> float:
    return mu * GLICKO_SCALE + DEFAULT_RATING


def _from_phi(phi: float, max_rd: float) -> float:
    return min(phi * GLICKO_SCALE, max_rd)


def _g(phi: float) -> float:
    return 1.0 / math.sqrt(1.0 + 3.0 * phi ** 2 / math.pi ** 2)


def _expected(mu: float, mu_j: float, phi_j: float) -> float:
    return 1.0 / (1.0 + math.exp(-_g(phi_j) * (mu - mu_j)))


def expected_score(player: RatingState, opponent: RatingState) -> float:
    """
    Probability that ``player`` beats ``opponent``.

    Uses the opponent's RD to dampen the rating gap, exactly as the update
    does, so a highly uncertain opponent pulls the expectation toward 0.5.
    """
    return _expected(_to_mu(player.rating), _to_mu(opponent.rating), _to_phi(opponent.rd))


def _solve_volatility(
    delta: float,
    phi: float,
    v: float,
    sigma: float,
    tau: float,
) -> float:
    """
    Find sigma' with the Illinois variant of regula falsi on x = ln(sigma^2).

    Raises:
        ConvergenceError: if bracketing or the iteration itself does not
            finish within MAX_SOLVER_ITERATIONS steps.
    """
    a = math.log(sigma ** 2)
    delta_sq = delta ** 2
    phi_sq = phi ** 2

    def f(x: float) -> float:
        exp_x = math.exp(x)
        numerator = exp_x * (delta_sq - phi_sq - v - exp_x)
        denominator = 2.0 * (phi_sq + v + exp_x) ** 2
        return numerator / denominator - (x - a) / tau ** 2

    # Initial bracket [A, B]
    big_a = a
    if delta_sq > phi_sq + v:
        big_b = math.log(delta_sq - phi_sq - v)
    else:
        k = 1
        big_b = a - k * tau
        while f(big_b) < 0:
            k += 1
            if k > MAX_SOLVER_ITERATIONS:
                raise ConvergenceError(
                    f"Volatility bracket search did not terminate (sigma={sigma}, tau={tau})"
                )
            big_b = a - k * tau

    f_a = f(big_a)
    f_b = f(big_b)

    iterations = 0
    while abs(big_b - big_a) > CONVERGENCE_TOLERANCE:
        iterations += 1
        if iterations > MAX_SOLVER_ITERATIONS:
            raise ConvergenceError(
                f"Volatility solver did not converge after {MAX_SOLVER_ITERATIONS} iterations"
            )
        big_c = big_a + (big_a - big_b) * f_a / (f_b - f_a)
        f_c = f(big_c)
        if f_c * f_b < 0:
            big_a = big_b
            f_a = f_b
        else:
            f_a = f_a / 2.0
        big_b = big_c
        f_b = f_c

    return math.exp(big_a / 2.0)


def glicko2_update(
    player: RatingState,
    opponents: Sequence[OpponentResult],
    tau: float = DEFAULT_TAU,
    max_rd: float = DEFAULT_MAX_RD,
) -> RatingUpdate:
    """
    Apply one Glicko-2 rating period to ``player``.

    Args:
        player: Current rating state
        opponents: Games played this period. Empty means the player sat out,
                   in which case only the RD grows.
        tau: System constant
        max_rd: Ceiling for the resulting RD

    Returns:
        RatingUpdate with the new state and the mu/sigma deltas

    Example:
        # Even players, player wins
        update = glicko2_update(
            RatingState(1500, 350, 0.06),
            [OpponentResult(1500, 350, 1)],
        )
        # update.rating ~1662, update.rd ~290
    """
    mu = _to_mu(player.rating)
    phi = _to_phi(player.rd)
    sigma = player.volatility

    if not opponents:
        phi_star = math.sqrt(phi ** 2 + sigma ** 2)
        return RatingUpdate(
            rating=_from_mu(mu),
            rd=_from_phi(phi_star, max_rd),
            volatility=sigma,
            delta_mu=0.0,
            delta_sigma=0.0,
        )

    views = [(_to_mu(o.rating), _to_phi(o.rd), o.score) for o in opponents]

    variance_sum = 0.0
    improvement_sum = 0.0
    for mu_j, phi_j, score in views:
        g_j = _g(phi_j)
        e_j = _expected(mu, mu_j, phi_j)
        variance_sum += g_j ** 2 * e_j * (1.0 - e_j)
        improvement_sum += g_j * (score - e_j)

    v = 1.0 / variance_sum
    delta = v * improvement_sum

    sigma_prime = _solve_volatility(delta, phi, v, sigma, tau)
    phi_star = math.sqrt(phi ** 2 + sigma_prime ** 2)
    phi_prime = 1.0 / math.sqrt(1.0 / phi_star ** 2 + 1.0 / v)
    mu_prime = mu + phi_prime ** 2 * improvement_sum

    return RatingUpdate(
        rating=_from_mu(mu_prime),
        rd=_from_phi(phi_prime, max_rd),
        volatility=sigma_prime,
        delta_mu=mu_prime - mu,
        delta_sigma=sigma_prime - sigma,
    )


def combine_team(members: Sequence[RatingState], max_rd: float = DEFAULT_MAX_RD) -> RatingState:
    """
    Collapse a side's players into one rating state.

    Mean mu, RMS phi (divided by TEAM_RD_DIVISOR for pairs) and mean
    volatility. A single-member team is returned unchanged apart from the
    RD clamp.

    Raises:
        PreconditionError: if members is empty
    """
    if not members:
        raise PreconditionError("Team must include at least one player")

    count = len(members)
    mu_avg = sum(_to_mu(m.rating) for m in members) / count
    variance_mean = sum(_to_phi(m.rd) ** 2 for m in members) / count
    phi_team = math.sqrt(variance_mean)
    if count > 1:
        phi_team /= TEAM_RD_DIVISOR

    return RatingState(
        rating=_from_mu(mu_avg),
        rd=_from_phi(phi_team, max_rd),
        volatility=sum(m.volatility for m in members) / count,
    )


def inflate_rd(
    player: RatingState,
    periods: int = 1,
    max_rd: float = DEFAULT_MAX_RD,
) -> RatingState:
    """
    Grow RD for ``periods`` rating periods without a game.

    Rating and volatility are untouched; only uncertainty increases.
    """
    phi = _to_phi(player.rd)
    inflated = math.sqrt(phi ** 2 + player.volatility ** 2 * periods)
    return RatingState(
        rating=player.rating,
        rd=_from_phi(inflated, max_rd),
        volatility=player.volatility,
    )
