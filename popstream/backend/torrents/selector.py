"""Deterministic ranking and merging of torrent candidates.

The ranking is a total order so the ideal pick never depends on the order
providers returned their results in:

1. health, ``good`` > ``decent`` > ``poor`` > unknown
2. seeder count, descending
3. quality tier, 1080p > 720p > 480p > unlabelled
4. magnet and delivery method strings, as a last resort for distinct
   candidates that tie on everything above
"""

from __future__ import annotations

from typing import Iterable, Mapping, Optional, Sequence, Tuple

from popstream.backend.torrents.models import (
    PLACEHOLDER,
    QUALITY_LABELS,
    HealthClass,
    QualityLabel,
    TorrentCandidate,
    TorrentSet,
)

# Seeder cut-offs for providers that report raw swarm counts only.
GOOD_SEEDERS = 100
GOOD_SEEDERS_WITH_RATIO = 30
DECENT_SEEDERS = 20

CandidateMap = Mapping[QualityLabel, Optional[TorrentCandidate]]


def classify_health(seeders: int, peers: int = 0) -> HealthClass:
    seeders = max(0, int(seeders or 0))
    peers = max(0, int(peers or 0))
    if seeders >= GOOD_SEEDERS:
        return HealthClass.GOOD
    ratio = seeders / peers if peers else float(seeders)
    if seeders >= GOOD_SEEDERS_WITH_RATIO and ratio >= 1:
        return HealthClass.GOOD
    if seeders >= DECENT_SEEDERS:
        return HealthClass.DECENT
    return HealthClass.POOR


def rank_key(candidate: TorrentCandidate) -> Tuple[int, int, int, str, str]:
    """Sort key where larger means better."""

    health = candidate.health.rank if candidate.health is not None else 0
    tier = candidate.quality.tier if candidate.quality is not None else 0
    magnet = candidate.magnet or ""
    method = candidate.method.value if candidate.method is not None else ""
    return (health, candidate.seeders, tier, magnet, method)


def merge_and_rank(candidates: Iterable[Optional[TorrentCandidate]]) -> TorrentCandidate:
    """Return the best candidate, or the placeholder when none is real."""

    real = [c for c in candidates if c is not None and not c.is_placeholder]
    if not real:
        return PLACEHOLDER
    return max(real, key=rank_key)


def _pick(results: CandidateMap, label: QualityLabel) -> TorrentCandidate:
    return results.get(label) or PLACEHOLDER


def build_single_source_set(results: CandidateMap) -> TorrentSet:
    """Movies, and shows without season-complete merging."""

    ideal = merge_and_rank(_pick(results, label) for label in QUALITY_LABELS)
    return TorrentSet.from_results(results, ideal)


def build_merged_set(episode: CandidateMap, season_complete: CandidateMap) -> TorrentSet:
    """Merge single-episode and season-complete results per quality."""

    merged = {
        label: merge_and_rank([_pick(episode, label), _pick(season_complete, label)])
        for label in QUALITY_LABELS
    }
    raw: Sequence[TorrentCandidate] = [
        *(_pick(episode, label) for label in QUALITY_LABELS),
        *(_pick(season_complete, label) for label in QUALITY_LABELS),
    ]
    return TorrentSet.from_results(merged, merge_and_rank(raw))


def is_poor_source(torrent_set: TorrentSet) -> bool:
    ideal = torrent_set.ideal
    return not ideal.is_placeholder and ideal.health is HealthClass.POOR
