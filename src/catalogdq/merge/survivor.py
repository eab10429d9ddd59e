"""Survivor selection for pairwise merge."""

from catalogdq.models import Record

__all__ = ["compute_completeness_score", "select_survivor"]

# Points awarded once when any field of the group is populated
_GROUP_POINTS: dict[str, tuple[tuple[tuple[str, ...], int], ...]] = {
    "movie": ((("hero", "heroine"), 10),),
}

_URL_FIELDS = frozenset({"poster_url", "backdrop_url", "profile_image"})


def _counts(record: Record, name: str) -> bool:
    if not record.has_value(name):
        return False
    # Placeholder images are not real data
    if name in _URL_FIELDS and "placeholder" in str(record.get(name)).lower():
        return False
    return True


def compute_completeness_score(record: Record) -> int:
    """Compute the data-completeness score of a record.

    Each populated field earns its descriptor's ``completeness_points``;
    grouped fields such as ``hero``/``heroine`` earn their points once.

    Parameters
    ----------
    record : Record
        Record to score.

    Returns
    -------
    int
        Completeness score.
    """
    score = 0
    for descriptor in record.schema.fields:
        if descriptor.completeness_points and _counts(record, descriptor.name):
            score += descriptor.completeness_points

    for names, points in _GROUP_POINTS.get(record.entity_type, ()):
        if any(_counts(record, name) for name in names):
            score += points
    return score


def _title_length(record: Record) -> int:
    title = record.title
    return len(title.strip()) if title else 0


def select_survivor(record_a: Record, record_b: Record) -> tuple[Record, Record, str]:
    """Choose which of two records to keep.

    Selection is based on lexicographic tuple ranking:
    1. completeness score (higher wins)
    2. title length (longer wins, less likely to be truncated)
    3. tie-breaker: smallest id lexicographically

    Returns
    -------
    tuple[Record, Record, str]
        ``(survivor, loser, reason)``.

    Raises
    ------
    ValueError
        If both arguments are the same record.
    """
    if record_a.id == record_b.id:
        raise ValueError(f"cannot merge record {record_a.id} with itself")

    scores = {r.id: compute_completeness_score(r) for r in (record_a, record_b)}

    def ranking_key(record: Record) -> tuple[int, int, str]:
        return (-scores[record.id], -_title_length(record), record.id)

    survivor, loser = sorted((record_a, record_b), key=ranking_key)

    if scores[survivor.id] != scores[loser.id]:
        reason = f"completeness {scores[survivor.id]} > {scores[loser.id]}"
    elif _title_length(survivor) != _title_length(loser):
        reason = f"completeness tie at {scores[survivor.id]}; longer title"
    else:
        reason = f"completeness tie at {scores[survivor.id]}; smaller id"
    return survivor, loser, reason
