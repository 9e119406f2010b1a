# cricket_live/commentary.py
from __future__ import annotations

import logging
import random
from types import MappingProxyType
from typing import Mapping, Optional, Sequence, Tuple

from cricket_live.config import DEFAULT_SHOT_ZONE
from cricket_live.models import Delivery, ProcessedEvent

logger = logging.getLogger(__name__)

FALLBACK_LINE = "Play continues."

# -------------------------
# Template table (read-only)
# -------------------------
# Placeholders: {runs} (runs on the ball) and {zone} (shot zone).
TEMPLATES: Mapping[str, Mapping[str, Tuple[str, ...]]] = MappingProxyType({
    "wicket": MappingProxyType({
        "bowled": (
            "OUT! Bowled him!",
            "Timber! The stumps are shattered.",
            "Clean bowled! That's a great delivery.",
            "Bowled! No chance for the batsman.",
        ),
        "caught": (
            "OUT! Caught!",
            "That's a simple catch at {zone}.",
            "Caught! The fielder makes no mistake.",
            "OUT! Edged and taken.",
        ),
        "lbw": (
            "OUT! LBW!",
            "That's plumb! LBW given.",
            "Appeal... and given! LBW.",
            "Trapped in front! That's OUT.",
        ),
        "run_out": (
            "OUT! Run out!",
            "What a throw! Run out at the {zone} end.",
            "Direct hit! Run out.",
            "Miscommunication and he's RUN OUT!",
        ),
        "stumped": (
            "OUT! Stumped!",
            "Brilliant work by the keeper! Stumped.",
            "Stumped! He was well out of his crease.",
            "OUT! Stumped down the leg side.",
        ),
    }),
    "six": MappingProxyType({
        "default": (
            "SIX! That's huge!",
            "Maximum! Clears the {zone} boundary with ease.",
            "SIX runs! What a hit!",
            "That's gone all the way! SIX over {zone}.",
            "Monstrous hit! SIX into the {zone} stands.",
        ),
    }),
    "four": MappingProxyType({
        "default": (
            "FOUR! What a shot!",
            "Cracking shot through the {zone} for FOUR!",
            "Boundary! The ball races to the {zone} boundary.",
            "FOUR runs! Excellent placement to {zone}.",
            "Elegantly driven through {zone} for FOUR.",
        ),
    }),
    "extra": MappingProxyType({
        "wide": (
            "Wide ball.",
            "That's too wide, called a wide.",
            "Wide down the {zone} side.",
            "Extra run, called wide.",
        ),
        "no_ball": (
            "No ball! Free hit coming up.",
            "Overstepped! That's a no ball.",
            "No ball for height.",
            "That's a no ball, extra run.",
        ),
    }),
    "runs": MappingProxyType({
        "default": (
            "{runs} run(s) taken.",
            "They run {runs}.",
            "{runs} more to the total.",
            "Good running between the wickets, {runs} runs.",
            "Easy {runs} run(s).",
        ),
    }),
    "dot": MappingProxyType({
        "default": (
            "No run.",
            "Good delivery, defended.",
            "Dot ball.",
            "Played straight to the fielder at {zone}.",
            "Well bowled, no run.",
        ),
    }),
})

# Dismissal kinds without their own set use the bowled set
DEFAULT_WICKET_KEY = "bowled"


def classify(delivery: Delivery) -> Tuple[str, str]:
    """
    Map a delivery to (category, key) in TEMPLATES.

    Precedence, highest first:
    wicket -> six -> four -> wide/no-ball -> positive runs -> dot.
    """
    if delivery.wicket is not None:
        kind = delivery.wicket.kind
        if kind not in TEMPLATES["wicket"]:
            kind = DEFAULT_WICKET_KEY
        return "wicket", kind
    if delivery.runs == 6:
        return "six", "default"
    if delivery.runs == 4:
        return "four", "default"
    if delivery.extra_type in TEMPLATES["extra"]:
        return "extra", delivery.extra_type
    if delivery.total_runs > 0:
        return "runs", "default"
    return "dot", "default"


def _templates_for(category: str, key: str) -> Sequence[str]:
    group = TEMPLATES.get(category)
    if group is None or key not in group:
        return TEMPLATES["dot"]["default"]
    return group[key]


def _fill(template: str, delivery: Delivery, default_zone: str) -> str:
    zone = delivery.shot_zone or default_zone
    return template.replace("{runs}", str(delivery.total_runs)).replace("{zone}", zone)


def describe_delivery(
    delivery: Delivery,
    rng: Optional[random.Random] = None,
    *,
    default_zone: str = DEFAULT_SHOT_ZONE,
) -> str:
    """
    Natural-language line for one delivery.

    Pure apart from `rng`; pass a seeded random.Random for deterministic
    output. Never raises and never returns an empty string.
    """
    chooser = rng if rng is not None else random
    try:
        category, key = classify(delivery)
        line = _fill(chooser.choice(_templates_for(category, key)), delivery, default_zone)
        if line.strip():
            return line
    except Exception:
        logger.warning("Commentary fell back to dot-ball set for %r", delivery, exc_info=True)

    try:
        line = _fill(chooser.choice(TEMPLATES["dot"]["default"]), delivery, default_zone)
        if line.strip():
            return line
    except Exception:
        logger.warning("Commentary fallback failed for %r", delivery, exc_info=True)
    return FALLBACK_LINE


def describe(event: ProcessedEvent, rng: Optional[random.Random] = None) -> str:
    return describe_delivery(event.delivery, rng)


class CommentaryGenerator:
    """
    Holds the injected random source so callers do not pass it around.

    Usage:
        gen = CommentaryGenerator(random.Random(7))
        text = gen.describe_delivery(delivery)
    """

    def __init__(self, rng: Optional[random.Random] = None, default_zone: str = DEFAULT_SHOT_ZONE) -> None:
        self.rng = rng if rng is not None else random.Random()
        self.default_zone = default_zone

    def describe(self, event: ProcessedEvent) -> str:
        return describe_delivery(event.delivery, self.rng, default_zone=self.default_zone)

    def describe_delivery(self, delivery: Delivery) -> str:
        return describe_delivery(delivery, self.rng, default_zone=self.default_zone)
