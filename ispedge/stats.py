"""Vote tallying across trace targets."""

from __future__ import annotations

import math
from collections import Counter
from typing import Optional, Sequence

# candidate IP -> observed RTTs (None where the hop reported no RTT)
VoteTally = dict[str, list[Optional[float]]]


def median(values: Sequence[float]) -> Optional[float]:
    """Median of *values*, or None when empty."""
    if not values:
        return None
    sorted_vals = sorted(values)
    n = len(sorted_vals)
    mid = n // 2
    if n % 2:
        return sorted_vals[mid]
    return (sorted_vals[mid - 1] + sorted_vals[mid]) / 2


def add_vote(tally: VoteTally, ip: str, rtt_ms: Optional[float]) -> None:
    tally.setdefault(ip, []).append(rtt_ms)


def median_rtt(observations: Sequence[Optional[float]]) -> Optional[float]:
    return median([r for r in observations if r is not None])


def pick_winner(tally: VoteTally) -> Optional[str]:
    """Most frequent IP; ties go to the lowest median RTT, then to the first seen."""
    best: Optional[str] = None
    best_key: tuple[int, float] = (0, math.inf)
    for ip, observations in tally.items():
        rtt = median_rtt(observations)
        key = (len(observations), rtt if rtt is not None else math.inf)
        if best is None or key[0] > best_key[0] or (key[0] == best_key[0] and key[1] < best_key[1]):
            best, best_key = ip, key
    return best


def most_common(ips: Sequence[str]) -> Optional[str]:
    """Most frequent entry in *ips*; ties go to the first seen."""
    if not ips:
        return None
    return Counter(ips).most_common(1)[0][0]
