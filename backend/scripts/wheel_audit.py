#!/usr/bin/env python3
"""
Wheel fairness audit.

Runs headless seeded spins through the wheel state machine and checks that
every hero is selected with equal frequency (chi-square against uniform).

Usage:
    python -m scripts.wheel_audit --spins 100000 --seed AUDIT_2025
    python -m scripts.wheel_audit --spins 50000 --segments 7 --out out/wheel_audit.csv
"""
import argparse
import csv
import hashlib
import math
import sys
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from hero_wheel.constants import SUPERHEROES
from hero_wheel.logic.rng import SeededRNG
from hero_wheel.logic.wheel import SpinWheel


# Upper-tail normal quantile for the acceptance level (p = 0.0001)
Z_CRITICAL = 3.719


@dataclass
class AuditStats:
    """Per-outcome counts accumulated during simulation."""
    labels: tuple[str, ...]
    spins: int = 0
    seed: str = ""
    counts: Counter = field(default_factory=Counter)
    total_rotations: float = 0.0
    total_duration_ms: float = 0.0

    @property
    def expected(self) -> float:
        return self.spins / len(self.labels)

    @property
    def chi_square(self) -> float:
        return chi_square_uniform([self.counts[i] for i in range(len(self.labels))])

    @property
    def critical_value(self) -> float:
        return chi_square_critical(len(self.labels) - 1)

    @property
    def passed(self) -> bool:
        return self.chi_square <= self.critical_value


def seed_to_int(seed_str: str) -> int:
    """Convert string seed to integer for RNG."""
    return int(hashlib.sha256(seed_str.encode()).hexdigest()[:16], 16)


def chi_square_uniform(observed: list[int]) -> float:
    """Pearson chi-square statistic of observed counts against a uniform split."""
    total = sum(observed)
    if total == 0 or not observed:
        return 0.0
    expected = total / len(observed)
    return sum((o - expected) ** 2 / expected for o in observed)


def chi_square_critical(df: int, z: float = Z_CRITICAL) -> float:
    """
    Upper critical value of chi-square with `df` degrees of freedom.

    Wilson-Hilferty approximation; df=0 (a one-segment wheel) accepts only 0.
    """
    if df <= 0:
        return 0.0
    term = 2 / (9 * df)
    return df * (1 - term + z * math.sqrt(term)) ** 3


def run_simulation(
    spins: int,
    seed_str: str,
    labels: tuple[str, ...] = SUPERHEROES,
    verbose: bool = True,
) -> AuditStats:
    """Spin a seeded wheel `spins` times, carrying the resting angle between spins."""
    stats = AuditStats(labels=labels, seed=seed_str)
    wheel = SpinWheel(labels, rng=SeededRNG(seed_to_int(seed_str)))
    now = 0.0

    for i in range(spins):
        wheel.spin(now)
        plan = wheel.plan
        outcome = wheel.tick(plan.end_time_ms).outcome
        now = plan.end_time_ms

        stats.spins += 1
        stats.counts[outcome.index] += 1
        stats.total_rotations += plan.full_rotations
        stats.total_duration_ms += plan.duration_ms

        if verbose and (i + 1) % 10000 == 0:
            print(f"  {i + 1}/{spins} spins")

    return stats


def write_csv(stats: AuditStats, output_path: str) -> None:
    """One row per outcome with observed and expected counts."""
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["index", "label", "observed", "expected", "seed", "spins"])
        for index, label in enumerate(stats.labels):
            writer.writerow(
                [index, label, stats.counts[index], f"{stats.expected:.2f}", stats.seed, stats.spins]
            )


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Wheel fairness audit")
    parser.add_argument("--spins", type=int, default=100000, help="Number of spins")
    parser.add_argument("--seed", type=str, default="AUDIT_2025", help="Seed string")
    parser.add_argument(
        "--segments",
        type=int,
        default=None,
        help="Audit a wheel with this many generic segments instead of the hero list",
    )
    parser.add_argument("--out", type=str, default=None, help="Optional CSV output path")
    parser.add_argument("--quiet", action="store_true", help="Suppress progress output")
    args = parser.parse_args()

    if args.spins <= 0:
        parser.error("--spins must be positive")

    if args.segments is not None:
        if args.segments <= 0:
            parser.error("--segments must be positive")
        labels = tuple(f"segment-{i}" for i in range(args.segments))
    else:
        labels = SUPERHEROES

    stats = run_simulation(args.spins, args.seed, labels=labels, verbose=not args.quiet)

    print(f"Spins: {stats.spins}  seed: {stats.seed}  expected/outcome: {stats.expected:.1f}")
    for index, label in enumerate(stats.labels):
        observed = stats.counts[index]
        print(f"  [{index:2d}] {label:<20} {observed:8d}  ({observed / stats.spins * 100:.3f}%)")
    print(f"Mean rotations: {stats.total_rotations / stats.spins:.3f}")
    print(f"Mean duration: {stats.total_duration_ms / stats.spins:.1f} ms")
    print(f"Chi-square: {stats.chi_square:.3f} (critical {stats.critical_value:.3f})")
    print("PASS" if stats.passed else "FAIL")

    if args.out:
        write_csv(stats, args.out)
        print(f"Wrote {args.out}")

    return 0 if stats.passed else 1


if __name__ == "__main__":
    sys.exit(main())
