from __future__ import annotations

import itertools
from collections import Counter
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Sequence

from .cards import Card
from .state import Player

UNCONTESTED = "Uncontested"

RANK_NAMES = {
    2: "Two",
    3: "Three",
    4: "Four",
    5: "Five",
    6: "Six",
    7: "Seven",
    8: "Eight",
    9: "Nine",
    10: "Ten",
    11: "Jack",
    12: "Queen",
    13: "King",
    14: "Ace",
}


class HandRank(IntEnum):
    HIGH_CARD = 1
    PAIR = 2
    TWO_PAIR = 3
    THREE_OF_A_KIND = 4
    STRAIGHT = 5
    FLUSH = 6
    FULL_HOUSE = 7
    FOUR_OF_A_KIND = 8
    STRAIGHT_FLUSH = 9
    ROYAL_FLUSH = 10


@dataclass(frozen=True)
class HandEvaluation:
    rank: HandRank
    cards: tuple[Card, ...]
    kickers: tuple[int, ...]
    description: str

    @property
    def rank_value(self) -> int:
        return int(self.rank)

    def sort_key(self) -> tuple[int, tuple[int, ...]]:
        return self.rank_value, self.kickers


@dataclass(frozen=True)
class ShowdownResult:
    winners: tuple[Player, ...]
    description: str
    evaluations: dict[str, HandEvaluation] = field(default_factory=dict)


def rank_name(value: int) -> str:
    return RANK_NAMES.get(value, str(value))


def _plural(value: int) -> str:
    name = rank_name(value)
    return f"{name}es" if name == "Six" else f"{name}s"


def evaluate_hand(hole_cards: Sequence[Card], community_cards: Sequence[Card]) -> HandEvaluation:
    """Best five-card hand out of the hole and community cards (21 subsets for seven cards)."""
    cards = [*hole_cards, *community_cards]
    if len(cards) < 5:
        raise ValueError(f"Need at least 5 cards to evaluate a hand, got {len(cards)}")

    best: HandEvaluation | None = None
    for combo in itertools.combinations(cards, 5):
        evaluation = evaluate_five(combo)
        if best is None or compare_hands(evaluation, best) > 0:
            best = evaluation
    assert best is not None
    return best


def evaluate_five(cards: Sequence[Card]) -> HandEvaluation:
    if len(cards) != 5:
        raise ValueError(f"Expected exactly 5 cards, got {len(cards)}")

    ordered = tuple(sorted(cards, key=lambda card: card.value, reverse=True))
    values = [card.value for card in ordered]
    counts = Counter(values)
    # (count, value) descending: quads before trips before pairs, higher rank first.
    groups = sorted(counts.items(), key=lambda item: (item[1], item[0]), reverse=True)

    is_flush = len({card.suit for card in ordered}) == 1
    straight_high = _straight_high(values)

    if is_flush and straight_high is not None:
        if straight_high == 14:
            return HandEvaluation(HandRank.ROYAL_FLUSH, ordered, (14,), "Royal Flush")
        return HandEvaluation(
            HandRank.STRAIGHT_FLUSH,
            ordered,
            (straight_high,),
            f"Straight Flush, {rank_name(straight_high)} high",
        )

    if groups[0][1] == 4:
        quad, kicker = groups[0][0], groups[1][0]
        return HandEvaluation(HandRank.FOUR_OF_A_KIND, ordered, (quad, kicker), f"Four of a Kind, {_plural(quad)}")

    if groups[0][1] == 3 and groups[1][1] == 2:
        trips, pair = groups[0][0], groups[1][0]
        return HandEvaluation(
            HandRank.FULL_HOUSE,
            ordered,
            (trips, pair),
            f"Full House, {_plural(trips)} full of {_plural(pair)}",
        )

    if is_flush:
        return HandEvaluation(HandRank.FLUSH, ordered, tuple(values), f"Flush, {rank_name(values[0])} high")

    if straight_high is not None:
        return HandEvaluation(HandRank.STRAIGHT, ordered, (straight_high,), f"Straight, {rank_name(straight_high)} high")

    if groups[0][1] == 3:
        trips = groups[0][0]
        kickers = tuple(value for value, _ in groups[1:])
        return HandEvaluation(HandRank.THREE_OF_A_KIND, ordered, (trips, *kickers), f"Three of a Kind, {_plural(trips)}")

    if groups[0][1] == 2 and groups[1][1] == 2:
        high_pair, low_pair, kicker = groups[0][0], groups[1][0], groups[2][0]
        return HandEvaluation(
            HandRank.TWO_PAIR,
            ordered,
            (high_pair, low_pair, kicker),
            f"Two Pair, {_plural(high_pair)} and {_plural(low_pair)}",
        )

    if groups[0][1] == 2:
        pair = groups[0][0]
        kickers = tuple(value for value, _ in groups[1:])
        return HandEvaluation(HandRank.PAIR, ordered, (pair, *kickers), f"Pair of {_plural(pair)}")

    return HandEvaluation(HandRank.HIGH_CARD, ordered, tuple(values), f"{rank_name(values[0])} High")


def _straight_high(values: Sequence[int]) -> int | None:
    unique = sorted(set(values), reverse=True)
    if len(unique) != 5:
        return None
    if unique[0] - unique[-1] == 4:
        return unique[0]
    # Wheel: the ace plays low and the straight is five-high.
    if unique == [14, 5, 4, 3, 2]:
        return 5
    return None


def compare_hands(first: HandEvaluation, second: HandEvaluation) -> int:
    """Positive when ``first`` wins, negative when ``second`` wins, 0 for a split."""
    if first.rank_value != second.rank_value:
        return first.rank_value - second.rank_value
    for mine, theirs in zip(first.kickers, second.kickers):
        if mine != theirs:
            return mine - theirs
    return 0


def find_winners(players: Sequence[Player], community_cards: Sequence[Card]) -> ShowdownResult:
    contenders = [player for player in players if not player.is_folded and player.is_dealt_in]
    if not contenders:
        raise ValueError("No active players to evaluate")

    if len(contenders) == 1:
        return ShowdownResult(winners=(contenders[0],), description=UNCONTESTED)

    evaluations = {player.id: evaluate_hand(player.hand, community_cards) for player in contenders}
    best = evaluations[contenders[0].id]
    for player in contenders[1:]:
        if compare_hands(evaluations[player.id], best) > 0:
            best = evaluations[player.id]

    winners = tuple(player for player in contenders if compare_hands(evaluations[player.id], best) == 0)
    return ShowdownResult(winners=winners, description=best.description, evaluations=evaluations)
