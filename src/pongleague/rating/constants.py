"""
Glicko-2 rating system constants.

Rating values are stored on the familiar Glicko scale (1500-centred, RD in
rating points). The update itself runs on the internal Glicko-2 scale, where
    mu  = (rating - 1500) / GLICKO_SCALE
    phi = rd / GLICKO_SCALE

TAU constrains how fast volatility may change between periods. Smaller values
keep volatility stable; 0.3-1.2 is the range suggested by Glickman.
"""

# Conversion factor between the Glicko and Glicko-2 scales (400 / ln 10)
GLICKO_SCALE = 173.7178

# Baseline state for a player with no history
DEFAULT_RATING = 1500.0
DEFAULT_RD = 350.0
DEFAULT_VOLATILITY = 0.06

# System constant and RD ceiling
DEFAULT_TAU = 0.5
DEFAULT_MAX_RD = 350.0

# Volatility solver: Illinois method on x = ln(sigma^2)
CONVERGENCE_TOLERANCE = 1e-6
MAX_SOLVER_ITERATIONS = 100

# Team RD is sqrt(mean(phi_i^2)) divided by this for teams with more than one
# member. Kept for compatibility with existing league ratings; tunable.
TEAM_RD_DIVISOR = 2.0
