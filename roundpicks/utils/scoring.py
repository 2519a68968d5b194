"""
Scoring rules for Round Pick'em

Pure functions: they take a prediction's values, a round outcome and a point
schedule, and never touch the database. Persisting the result is the job of
roundpicks.services.scoring_service.
"""

PLACEMENTS = (1, 2, 3, 4, 5)
SIXTH_PLUS = 6


def normalize(value):
    """Outcome matching ignores case and surrounding whitespace"""
    return (value or "").strip().lower()


def placement_for(value, outcome):
    """
    Find the placement a picked value finished at.

    Args:
        value: The picked entrant name
        outcome: Mapping of placement (1..5) to a list of entrant names; several
            names at one placement are a tie

    Returns:
        The best (numerically lowest) matching placement, or 6 when the value
        did not finish in the top five
    """
    wanted = normalize(value)
    if not wanted:
        return SIXTH_PLUS

    for place in PLACEMENTS:
        names = outcome.get(place) or []
        if any(normalize(name) == wanted for name in names):
            return place

    return SIXTH_PLUS


def score_prediction(values, outcome, schedule):
    """
    Score one participant's prediction for a completed round.

    Only the first stored value counts, including for multiple-value rounds.

    Returns:
        Tuple of (placement, points)
    """
    first_value = values[0] if values else None
    place = placement_for(first_value, outcome)
    return place, schedule.points_for(place)


def competition_ranks(totals):
    """
    Standard competition ranking for totals already sorted descending.

    Tied totals share a rank and the next distinct total skips ahead by the
    size of the tie, so [10, 10, 7] ranks as [1, 1, 3].
    """
    ranks = []
    previous = None
    for index, total in enumerate(totals):
        if total != previous:
            rank = index + 1
            previous = total
        ranks.append(rank)
    return ranks
