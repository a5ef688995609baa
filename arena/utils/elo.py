import math
from typing import Tuple
from arena.config import Config

class EloCalculator:
    """Handles margin-weighted Elo rating calculations for the ladder"""

    @staticmethod
    def calculate_expected_score(rating_a: int, rating_b: int) -> float:
        """
        Calculate the expected score for player A against player B

        Args:
            rating_a: Player A's current rating
            rating_b: Player B's current rating

        Returns:
            Expected score (0.0 to 1.0) for player A
        """
        return 1 / (1 + math.pow(10, (rating_b - rating_a) / 400))

    @staticmethod
    def calculate_score_factor(winner_score: float, loser_score: float) -> float:
        """
        Margin multiplier applied to the base K-factor

        A wider winning margin amplifies the update, capped at
        Config.MAX_SCORE_FACTOR.
        """
        margin = abs(winner_score - loser_score)
        return min(margin / Config.SCORE_FACTOR_DIVISOR, Config.MAX_SCORE_FACTOR)

    @staticmethod
    def calculate_rating_delta(winner_rating: int, loser_rating: int,
                               winner_score: float, loser_score: float) -> Tuple[int, float, float]:
        """
        Calculate the rating points transferred from loser to winner

        Args:
            winner_rating: Winner's rating before the match
            loser_rating: Loser's rating before the match
            winner_score: Winner's final fantasy score
            loser_score: Loser's final fantasy score

        Returns:
            Tuple of (delta, effective_k_factor, expected_win)
        """
        expected_win = EloCalculator.calculate_expected_score(winner_rating, loser_rating)
        k_effective = Config.K_FACTOR_BASE * EloCalculator.calculate_score_factor(winner_score, loser_score)
        delta = round(k_effective * (1 - expected_win))
        return delta, k_effective, expected_win

    @staticmethod
    def apply_rating_delta(winner_rating: int, loser_rating: int, delta: int) -> Tuple[int, int]:
        """
        Apply a delta to both ratings, enforcing the loser's hard floor

        Returns:
            Tuple of (new_winner_rating, new_loser_rating)
        """
        return winner_rating + delta, max(Config.RATING_FLOOR, loser_rating - delta)

    @staticmethod
    def format_rating_change(rating_change: int) -> str:
        """Format a rating change for display"""
        if rating_change > 0:
            return f"+{rating_change}"
        elif rating_change < 0:
            return str(rating_change)
        else:
            return "±0"
