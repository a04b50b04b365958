import itertools
import random

import pytest

from backend.poker.cards import create_deck, parse_cards, shuffle_deck
from backend.poker.evaluator import (
    UNCONTESTED,
    HandRank,
    compare_hands,
    evaluate_five,
    evaluate_hand,
    find_winners,
)
from backend.poker.state import Player


def _evaluate(labels):
    cards = parse_cards(labels)
    return evaluate_hand(cards[:2], cards[2:])


def _player(player_id, hole, folded=False):
    return Player(id=player_id, name=player_id.upper(), type="automated", chips=0, hand=tuple(parse_cards(hole)), is_folded=folded)


def test_evaluate_identifies_all_hand_categories() -> None:
    cases = [
        (HandRank.ROYAL_FLUSH, ["Ah", "Kh", "Qh", "Jh", "Th"]),
        (HandRank.STRAIGHT_FLUSH, ["9h", "8h", "7h", "6h", "5h"]),
        (HandRank.FOUR_OF_A_KIND, ["As", "Ah", "Ad", "Ac", "Kd"]),
        (HandRank.FULL_HOUSE, ["Qc", "Qd", "Qs", "9h", "9s"]),
        (HandRank.FLUSH, ["Ah", "Jh", "9h", "6h", "2h"]),
        (HandRank.STRAIGHT, ["9h", "8d", "7c", "6s", "5h"]),
        (HandRank.THREE_OF_A_KIND, ["8h", "8d", "8s", "Qd", "Js"]),
        (HandRank.TWO_PAIR, ["7h", "7d", "4s", "4c", "As"]),
        (HandRank.PAIR, ["6h", "6s", "Qh", "8d", "4c"]),
        (HandRank.HIGH_CARD, ["As", "Kd", "Jh", "9c", "4d"]),
    ]

    for expected, labels in cases:
        assert evaluate_five(parse_cards(labels)).rank == expected, labels


def test_descriptions_read_naturally() -> None:
    assert evaluate_five(parse_cards(["Ah", "Kh", "Qh", "Jh", "Th"])).description == "Royal Flush"
    assert evaluate_five(parse_cards(["Qc", "Qd", "Qs", "9h", "9s"])).description == "Full House, Queens full of Nines"
    assert evaluate_five(parse_cards(["6h", "6s", "Qh", "8d", "4c"])).description == "Pair of Sixes"
    assert evaluate_five(parse_cards(["7h", "7d", "4s", "4c", "As"])).description == "Two Pair, Sevens and Fours"
    assert evaluate_five(parse_cards(["As", "Kd", "Jh", "9c", "4d"])).description == "Ace High"


def test_best_five_of_seven_is_selected() -> None:
    evaluation = _evaluate(["Ah", "Kh", "Qh", "Jh", "2c", "Th", "3d"])
    assert evaluation.rank == HandRank.ROYAL_FLUSH
    assert len(evaluation.cards) == 5


def test_wheel_straight_plays_five_high() -> None:
    evaluation = _evaluate(["As", "2s", "3h", "4d", "5c", "9d", "Kd"])
    assert evaluation.rank == HandRank.STRAIGHT
    assert evaluation.kickers == (5,)
    assert evaluation.description == "Straight, Five high"

    six_high = _evaluate(["2s", "3h", "4d", "5c", "6h", "9d", "Kd"])
    assert compare_hands(six_high, evaluation) > 0


def test_steel_wheel_is_a_straight_flush_not_royal() -> None:
    evaluation = _evaluate(["Ad", "2d", "3d", "4d", "5d", "Kc", "Qs"])
    assert evaluation.rank == HandRank.STRAIGHT_FLUSH
    assert evaluation.kickers == (5,)


def test_kickers_break_ties_within_a_rank() -> None:
    better = _evaluate(["Ah", "Ad", "Kc", "Qs", "9h", "2d", "3c"])
    worse = _evaluate(["Ah", "Ad", "Qc", "Js", "8h", "2d", "3c"])
    assert better.rank == worse.rank == HandRank.PAIR
    assert compare_hands(better, worse) > 0
    assert compare_hands(worse, better) < 0


def test_two_pair_compares_high_pair_then_low_pair_then_kicker() -> None:
    aces_up = _evaluate(["Ah", "Ad", "3c", "3s", "9h", "2d", "7c"])
    kings_up = _evaluate(["Kh", "Kd", "Qc", "Qs", "9h", "2d", "7c"])
    assert compare_hands(aces_up, kings_up) > 0

    kicker_k = _evaluate(["Ah", "Ad", "3c", "3s", "Kh", "2d", "7c"])
    kicker_9 = _evaluate(["Ah", "Ad", "3c", "3s", "9h", "2d", "7c"])
    assert compare_hands(kicker_k, kicker_9) > 0


def test_identical_strength_compares_equal() -> None:
    board = ["As", "Kd", "Qc", "Jh", "Ts"]
    first = _evaluate(["2c", "3d", *board])
    second = _evaluate(["2h", "3s", *board])
    assert compare_hands(first, second) == 0


def test_rank_tiers_dominate_kickers() -> None:
    low_quads = _evaluate(["2c", "2d", "2h", "2s", "3c", "4d", "6h"])
    ace_flush = _evaluate(["Ah", "Kh", "9h", "6h", "2h", "3c", "4d"])
    broadway = _evaluate(["Ah", "Kd", "Qc", "Js", "Th", "3c", "4d"])
    assert compare_hands(low_quads, ace_flush) > 0
    assert compare_hands(ace_flush, broadway) > 0


def test_compare_is_a_consistent_total_preorder() -> None:
    deck = shuffle_deck(create_deck(), random.Random(99))
    hands = [evaluate_hand(deck[i : i + 2], deck[i + 2 : i + 7]) for i in range(0, 42, 7)]

    for first, second in itertools.product(hands, repeat=2):
        assert (compare_hands(first, second) > 0) == (compare_hands(second, first) < 0)
        assert (compare_hands(first, second) == 0) == (compare_hands(second, first) == 0)
    for first, second, third in itertools.product(hands, repeat=3):
        if compare_hands(first, second) >= 0 and compare_hands(second, third) >= 0:
            assert compare_hands(first, third) >= 0


def test_evaluation_is_deterministic() -> None:
    deck = shuffle_deck(create_deck(), random.Random(5))
    assert evaluate_hand(deck[:2], deck[2:7]) == evaluate_hand(deck[:2], deck[2:7])


def test_evaluate_requires_five_cards() -> None:
    with pytest.raises(ValueError):
        evaluate_hand(parse_cards(["As", "Ks"]), parse_cards(["2c", "3d"]))


def test_find_winners_picks_best_hand() -> None:
    board = parse_cards(["2c", "7d", "9h", "Js", "4c"])
    players = [_player("a", ["As", "Ah"]), _player("b", ["Ks", "Kh"]), _player("c", ["Qs", "Qd"], folded=True)]
    result = find_winners(players, board)
    assert [winner.id for winner in result.winners] == ["a"]
    assert result.description == "Pair of Aces"
    assert set(result.evaluations) == {"a", "b"}


def test_find_winners_returns_every_tied_player() -> None:
    board = parse_cards(["As", "Kd", "Qc", "Jh", "Ts"])
    players = [_player("a", ["2c", "3d"]), _player("b", ["2h", "3s"]), _player("c", ["4h", "5s"])]
    result = find_winners(players, board)
    assert {winner.id for winner in result.winners} == {"a", "b", "c"}
    assert result.description == "Straight, Ace high"


def test_find_winners_uncontested_skips_evaluation() -> None:
    players = [_player("a", ["2c", "3d"]), _player("b", ["As", "Ah"], folded=True)]
    result = find_winners(players, [])
    assert [winner.id for winner in result.winners] == ["a"]
    assert result.description == UNCONTESTED
    assert result.evaluations == {}
