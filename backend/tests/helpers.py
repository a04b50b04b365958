from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Sequence, Tuple

from backend.poker.cards import Card, create_deck, parse_cards
from backend.poker.engine import create_initial_state, process_player_action, start_new_hand
from backend.poker.state import BetAction, BettingAction, GameState, Player


def make_players(chips: Sequence[int]) -> tuple[Player, ...]:
    return tuple(
        Player(id=f"p{index}", name=f"P{index}", type="automated", chips=stack)
        for index, stack in enumerate(chips)
    )


def rigged_deck(holes: Sequence[Sequence[str]], board: Sequence[str] = ()) -> tuple[Card, ...]:
    """Deck dealing ``holes`` to funded seats in seat order, then ``board`` as flop, turn, river."""
    chosen = [card for hole in holes for card in parse_cards(hole)] + parse_cards(board)
    rest = [card for card in create_deck() if card not in chosen]
    return tuple(chosen + rest)


def make_table(
    chips: Sequence[int],
    *,
    dealer: int = 0,
    small_blind: int = 10,
    big_blind: int = 20,
    deck: Sequence[Card] | None = None,
) -> GameState:
    """Start a hand with the button on seat ``dealer``."""
    state = replace(
        create_initial_state(small_blind, big_blind),
        players=make_players(chips),
        dealer_index=(dealer - 1) % len(chips),
        seed="table-seed",
    )
    return start_new_hand(state, deck=deck)


def act(state: GameState, player_id: str, action: BettingAction, amount: int | None = None) -> GameState:
    new_state = process_player_action(state, BetAction(player_id=player_id, action=action, amount=amount))
    assert new_state is not state, f"{player_id} {action} was rejected"
    return new_state


def play(state: GameState, steps: Iterable[Tuple[str, BettingAction, int | None]]) -> GameState:
    for player_id, action, amount in steps:
        state = act(state, player_id, action, amount)
    return state
