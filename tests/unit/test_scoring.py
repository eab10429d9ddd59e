"""Tests for provenance-aware confidence scoring."""

from collections.abc import Callable
from datetime import UTC, datetime

import pytest

from catalogdq.models import FieldSource, FieldSourceLedger, Record
from catalogdq.scoring import ConfidenceScore, ConfidenceScorer, VerificationStatus, values_agree

AS_OF = datetime(2025, 6, 1, tzinfo=UTC)


@pytest.fixture
def scorer() -> ConfidenceScorer:
    """Scorer with a fixed reference time."""
    return ConfidenceScorer(as_of=AS_OF)


# ---------------------------------------------------------------------------
# values_agree
# ---------------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.parametrize(
    ("left", "right", "expected"),
    [
        pytest.param("Kodi  Ramakrishna ", "kodi ramakrishna", True, id="case_and_spacing"),
        pytest.param(1999, 1999.0, True, id="int_float"),
        pytest.param(["Drama", "Family"], ["family", "drama"], True, id="list_order"),
        pytest.param("Devi", "Devta", False, id="different"),
        pytest.param("", "", False, id="empty_never_agrees"),
        pytest.param(None, "Devi", False, id="none"),
    ],
)
def test_values_agree(left: object, right: object, expected: bool) -> None:
    """Agreement ignores case, spacing, numeric type and list order."""
    assert values_agree(left, right) is expected


# ---------------------------------------------------------------------------
# score_field
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_empty_and_unsourced_fields(scorer: ConfidenceScorer) -> None:
    """Empty values score 0; values without provenance get the unknown score."""
    assert scorer.score_field("director", None).score == 0.0
    assert scorer.score_field("director", "  ").adjustments == ("empty",)
    assert scorer.score_field("director", "Kodi Ramakrishna").score == 0.3


@pytest.mark.unit
def test_single_machine_generated_source_is_penalised(
    scorer: ConfidenceScorer, make_source: Callable[..., FieldSource]
) -> None:
    """An unreviewed AI value at 0.60 reliability scores at most 0.45."""
    source = make_source("synopsis", "ai_enrichment", 0.6, machine_generated=True)

    result = scorer.score_field("synopsis", "A village drama.", [source])

    assert result.base == 0.6
    assert result.score == pytest.approx(0.45)
    assert result.score <= 0.45
    assert result.adjustments == ("machine_generated-0.15",)


@pytest.mark.unit
def test_machine_penalty_respects_floor(
    scorer: ConfidenceScorer, make_source: Callable[..., FieldSource]
) -> None:
    """The penalty never pushes a score below the floor, nor raises a low score."""
    mid = make_source(reliability=0.5, machine_generated=True)
    low = make_source(reliability=0.2, machine_generated=True)

    assert scorer.score_field("director", "X", [mid]).score == pytest.approx(0.4)
    assert scorer.score_field("director", "X", [low]).score == pytest.approx(0.2)


@pytest.mark.unit
def test_machine_penalty_skipped_when_verified(
    scorer: ConfidenceScorer, make_source: Callable[..., FieldSource]
) -> None:
    """A human-verified value is not penalised as machine-generated."""
    source = make_source(reliability=0.6, machine_generated=True, verified_by="editor")

    assert scorer.score_field("director", "X", [source]).score == pytest.approx(0.75)


@pytest.mark.unit
def test_agreement_bonus_counts_distinct_agreeing_sources(
    scorer: ConfidenceScorer, make_source: Callable[..., FieldSource]
) -> None:
    """+0.05 at two agreeing sources, +0.05 more at three; duplicates count once."""
    value = "Kodi Ramakrishna"
    tmdb = make_source(source_id="tmdb", reliability=0.7, value=value)
    tmdb_again = make_source(source_id="tmdb", reliability=0.7, value=value)
    imdb = make_source(source_id="imdb", reliability=0.6, value="kodi ramakrishna")
    wiki = make_source(source_id="wikipedia", reliability=0.6)
    other = make_source(source_id="omdb", reliability=0.6, value="Someone Else")

    assert scorer.score_field("director", value, [tmdb, tmdb_again]).score == pytest.approx(0.7)
    assert scorer.score_field("director", value, [tmdb, imdb]).score == pytest.approx(0.75)
    assert scorer.score_field("director", value, [tmdb, imdb, wiki]).score == pytest.approx(0.8)
    assert scorer.score_field("director", value, [tmdb, other]).score == pytest.approx(0.7)


@pytest.mark.unit
def test_score_is_clamped_to_one(
    scorer: ConfidenceScorer, make_source: Callable[..., FieldSource]
) -> None:
    """Bonuses never push a score above 1.0."""
    sources = [
        make_source(source_id="tmdb", reliability=0.95, verified_by="editor"),
        make_source(source_id="imdb", reliability=0.9),
        make_source(source_id="wikipedia", reliability=0.85),
    ]

    assert scorer.score_field("director", "X", sources).score == 1.0


@pytest.mark.unit
@pytest.mark.parametrize(
    ("verified_at", "expected"),
    [
        pytest.param(datetime(2023, 1, 1, tzinfo=UTC), 0.95, id="stale"),
        pytest.param(datetime(2025, 1, 1, tzinfo=UTC), 1.0, id="fresh"),
        pytest.param(datetime(2023, 1, 1), 0.95, id="naive_is_utc"),
        pytest.param(None, 1.0, id="no_timestamp_counts_as_current"),
    ],
)
def test_staleness_penalty(
    scorer: ConfidenceScorer,
    make_source: Callable[..., FieldSource],
    verified_at: datetime | None,
    expected: float,
) -> None:
    """Verifications older than a year lose 0.1."""
    source = make_source(reliability=0.9, verified_by="editor", verified_at=verified_at)

    assert scorer.score_field("director", "X", [source]).score == pytest.approx(expected)


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------

_RELIABILITIES = [0.0, 0.1, 0.3, 0.45, 0.5, 0.6, 0.75, 0.9, 1.0]


@pytest.mark.unit
@pytest.mark.parametrize("reliability", _RELIABILITIES)
@pytest.mark.parametrize("machine", [False, True])
@pytest.mark.parametrize(
    "verified_at",
    [None, datetime(2020, 1, 1, tzinfo=UTC), datetime(2025, 5, 1, tzinfo=UTC)],
    ids=["untimed", "stale", "fresh"],
)
def test_verification_never_decreases_score(
    scorer: ConfidenceScorer,
    make_source: Callable[..., FieldSource],
    reliability: float,
    machine: bool,
    verified_at: datetime | None,
) -> None:
    """Marking a source as human-verified never lowers the field score."""
    plain = make_source(reliability=reliability, machine_generated=machine)
    verified = make_source(
        reliability=reliability,
        machine_generated=machine,
        verified_by="editor",
        verified_at=verified_at,
    )

    before = scorer.score_field("director", "X", [plain]).score
    after = scorer.score_field("director", "X", [verified]).score

    assert 0.0 <= before <= after <= 1.0


@pytest.mark.unit
@pytest.mark.parametrize("first", _RELIABILITIES)
@pytest.mark.parametrize("second", [0.0, 0.4, 0.8])
@pytest.mark.parametrize(
    ("first_machine", "second_machine"),
    [(False, False), (True, False), (False, True), (True, True)],
)
def test_corroborating_source_never_decreases_score(
    scorer: ConfidenceScorer,
    make_source: Callable[..., FieldSource],
    first: float,
    second: float,
    first_machine: bool,
    second_machine: bool,
) -> None:
    """Adding a second agreeing source never lowers the field score."""
    one = make_source(source_id="tmdb", reliability=first, machine_generated=first_machine)
    two = make_source(source_id="imdb", reliability=second, machine_generated=second_machine)

    before = scorer.score_field("director", "X", [one]).score
    after = scorer.score_field("director", "X", [one, two]).score

    assert 0.0 <= before <= after <= 1.0


@pytest.mark.unit
def test_scoring_is_deterministic(
    make_record: Callable[..., Record], make_source: Callable[..., FieldSource]
) -> None:
    """Repeated scoring of the same inputs gives identical results."""
    record = make_record(director="Kodi Ramakrishna", synopsis="A village drama.")
    ledger = FieldSourceLedger(
        [
            make_source("director", "tmdb", 0.95),
            make_source("synopsis", "ai_enrichment", 0.6, machine_generated=True),
            make_source("title_en", "imdb", 0.9, verified_by="editor"),
        ]
    )
    scorer = ConfidenceScorer(as_of=AS_OF)

    first = scorer.score_from_ledger(record, ledger)
    second = scorer.score_from_ledger(record, ledger)
    fresh = ConfidenceScorer(as_of=AS_OF).score_from_ledger(record, ledger)

    assert first == second == fresh


# ---------------------------------------------------------------------------
# Record scores
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_ai_only_record_needs_review(
    scorer: ConfidenceScorer,
    make_source: Callable[..., FieldSource],
) -> None:
    """A record whose only value is an unreviewed AI guess is flagged."""
    record = Record("m1", "movie", {"synopsis": "A village drama."})
    source = make_source("synopsis", "ai_enrichment", 0.6, machine_generated=True)

    score = scorer.score(record, {"synopsis": [source]})

    assert score.overall == pytest.approx(0.45)
    assert score.needs_review is True
    assert score.verification_status is VerificationStatus.UNVERIFIED
    assert score.by_category == {"descriptive": pytest.approx(0.45)}


@pytest.mark.unit
def test_weighted_overall_and_categories(
    scorer: ConfidenceScorer,
    make_record: Callable[..., Record],
    make_source: Callable[..., FieldSource],
) -> None:
    """Overall is importance-weighted; categories are plain means of present fields."""
    record = make_record(director="Kodi Ramakrishna")
    sources = {
        "title_en": [make_source("title_en", reliability=0.9)],
        "release_year": [make_source("release_year", reliability=0.9)],
    }

    score = scorer.score(record, sources)

    # title 0.9 * 1.0 + year 0.9 * 0.9 + director 0.3 * 0.9
    assert score.overall == pytest.approx(round((0.9 + 0.81 + 0.27) / 2.8, 4))
    assert score.by_field == {"director": 0.3, "release_year": 0.9, "title_en": 0.9}
    assert score.by_category == {"collaborators": 0.3, "core_identity": 0.9}
    assert score.weak_fields == ["director"]
    assert score.verification_status is VerificationStatus.PARTIAL
    assert score.needs_review is False


@pytest.mark.unit
def test_many_weak_fields_need_review(
    scorer: ConfidenceScorer,
    make_record: Callable[..., Record],
    make_source: Callable[..., FieldSource],
) -> None:
    """More than three weak fields flag a record even with a good overall score."""
    record = make_record(
        director="Kodi Ramakrishna",
        backdrop_url="https://img.example/b.jpg",
        total_reviews=12,
        runtime_minutes=140,
        supporting_cast=["Prema"],
    )
    sources = {
        name: [make_source(name, reliability=0.95, verified_by="editor")]
        for name in ("title_en", "release_year", "director")
    }

    score = scorer.score(record, sources)

    assert score.overall >= 0.7
    assert len(score.weak_fields) == 4
    assert score.needs_review is True


@pytest.mark.unit
def test_record_without_fields(scorer: ConfidenceScorer) -> None:
    """A record with no fields scores 0 and needs review."""
    score = scorer.score(Record("m1", "movie", {}))

    assert score.overall == 0.0
    assert score.by_category == {}
    assert score.needs_review is True


@pytest.mark.unit
@pytest.mark.parametrize(
    ("overall", "status"),
    [
        (0.97, VerificationStatus.EXPERT_VERIFIED),
        (0.95, VerificationStatus.EXPERT_VERIFIED),
        (0.9, VerificationStatus.VERIFIED),
        (0.6, VerificationStatus.PARTIAL),
        (0.59, VerificationStatus.UNVERIFIED),
    ],
)
def test_verification_status_thresholds(overall: float, status: VerificationStatus) -> None:
    """Status labels follow the 0.95 / 0.85 / 0.60 cut-offs."""
    assert VerificationStatus.from_score(overall) is status


@pytest.mark.unit
def test_confidence_score_serialization(
    scorer: ConfidenceScorer, make_record: Callable[..., Record]
) -> None:
    """The persisted annotation omits the breakdown and reloads."""
    score = scorer.score(make_record())
    data = score.to_dict()

    assert data["as_of"] == "2025-06-01T00:00:00Z"
    assert "breakdown" not in data
    restored = ConfidenceScore.from_dict(data)
    assert restored.overall == score.overall
    assert restored.verification_status is score.verification_status
