from __future__ import annotations

import logging
import random
import secrets
from dataclasses import replace
from typing import Callable, Optional, Sequence

from .actions import get_available_actions, get_min_raise
from .cards import Card, create_deck, deal_cards, shuffle_deck
from .evaluator import find_winners
from .state import (
    BETTING_PHASES,
    BIG_BLIND,
    SMALL_BLIND,
    STARTING_CHIPS,
    ActionRecord,
    BetAction,
    GameAction,
    GameState,
    Player,
    Phase,
    ResetGame,
    SeatSpec,
    ShowdownHand,
    StartGame,
    StartNewHand,
)

logger = logging.getLogger(__name__)

EVERYONE_FOLDED = "Everyone else folded"
MAX_SEATS = (52 - 5) // 2

# phase -> (next phase, community cards dealt on entering it)
NEXT_STREET: dict[str, tuple[Phase, int]] = {
    "pre-flop": ("flop", 3),
    "flop": ("turn", 1),
    "turn": ("river", 1),
}


def create_initial_state(small_blind: int = SMALL_BLIND, big_blind: int = BIG_BLIND) -> GameState:
    return GameState(
        small_blind=small_blind,
        big_blind=big_blind,
        min_raise=big_blind,
        last_raise_amount=big_blind,
    )


def start_game(
    roster: Sequence[SeatSpec],
    *,
    starting_chips: int = STARTING_CHIPS,
    small_blind: int = SMALL_BLIND,
    big_blind: int = BIG_BLIND,
    seed: str | None = None,
    deck: Sequence[Card] | None = None,
) -> GameState:
    """Seat ``roster``, pick a random initial dealer and deal the first hand."""
    if len(roster) < 2:
        raise ValueError("A game needs at least two players.")
    if len(roster) > MAX_SEATS:
        raise ValueError(f"A single deck supports at most {MAX_SEATS} players.")
    if len({seat.id for seat in roster}) != len(roster):
        raise ValueError("Player ids must be unique.")
    if starting_chips <= 0 or small_blind <= 0 or big_blind < small_blind:
        raise ValueError("Invalid chip or blind configuration.")

    seed = seed or secrets.token_hex(8)
    players = tuple(
        Player(id=seat.id, name=seat.name, type=seat.type, policy=seat.policy, chips=starting_chips)
        for seat in roster
    )
    state = replace(
        create_initial_state(small_blind, big_blind),
        players=players,
        dealer_index=random.Random(seed).randrange(len(players)),
        seed=seed,
    )
    return start_new_hand(state, deck=deck)


def start_new_hand(state: GameState, deck: Sequence[Card] | None = None) -> GameState:
    if state.phase in BETTING_PHASES or state.phase == "showdown":
        logger.debug("Ignoring new hand request during %s", state.phase)
        return state
    if sum(1 for player in state.players if player.chips > 0) < 2:
        logger.debug("Not enough funded players to start a hand")
        return state

    dealer_index = _next_seat(state.players, state.dealer_index, lambda player: player.chips > 0)
    assert dealer_index is not None
    hand_number = state.hand_number + 1

    players = [
        replace(
            player,
            hand=(),
            current_bet=0,
            is_folded=player.chips == 0,
            is_all_in=False,
            is_dealer=index == dealer_index,
            has_acted_this_round=False,
        )
        for index, player in enumerate(state.players)
    ]

    remaining = tuple(deck) if deck is not None else shuffle_deck(create_deck(), _hand_rng(state.seed, hand_number))
    for index, player in enumerate(players):
        if player.chips > 0:
            hole, remaining = deal_cards(remaining, 2)
            players[index] = replace(player, hand=hole)

    small_index = _next_seat(players, dealer_index, _is_dealt_in)
    big_index = _next_seat(players, small_index, _is_dealt_in)
    pot = 0
    players[small_index], paid = _commit(players[small_index], min(state.small_blind, players[small_index].chips))
    pot += paid
    players[big_index], paid = _commit(players[big_index], min(state.big_blind, players[big_index].chips))
    pot += paid

    new_state = replace(
        state,
        phase="pre-flop",
        players=tuple(players),
        deck=remaining,
        community_cards=(),
        pot=pot,
        current_bet=state.big_blind,
        current_player_index=big_index,
        dealer_index=dealer_index,
        min_raise=state.big_blind,
        last_raise_amount=state.big_blind,
        action_history=(),
        last_raiser_index=big_index,
        winner_ids=(),
        winning_hand=None,
        showdown_hands=(),
        pot_awarded=0,
        hand_number=hand_number,
    )
    logger.debug("Hand %s started, dealer seat %s", hand_number, dealer_index)

    new_state = _progress(new_state)
    if new_state.is_betting:
        new_state = replace(new_state, round_start_player_index=new_state.current_player_index)
    return new_state


def process_player_action(state: GameState, action: BetAction) -> GameState:
    """Apply one betting action; anything illegal returns ``state`` unchanged."""
    if not state.is_betting:
        return state

    index = state.index_of(action.player_id)
    if index is None or index != state.current_player_index:
        logger.debug("Rejected %s from %s: not their turn", action.action, action.player_id)
        return state
    if action.action not in get_available_actions(state):
        logger.debug("Rejected illegal %s from %s", action.action, action.player_id)
        return state

    player = state.players[index]
    players = list(state.players)
    current_bet = state.current_bet
    min_raise = state.min_raise
    last_raise_amount = state.last_raise_amount
    last_raiser_index = state.last_raiser_index
    paid = 0

    if action.action == "fold":
        player = replace(player, is_folded=True)

    elif action.action == "call":
        player, paid = _commit(player, min(state.current_bet - player.current_bet, player.chips))

    elif action.action in ("raise", "all-in"):
        if action.action == "raise":
            target = action.amount if action.amount is not None else get_min_raise(state)
            to_add = target - player.current_bet
            if to_add > player.chips:
                to_add = player.chips
            elif target < get_min_raise(state):
                logger.debug("Rejected raise to %s below minimum %s", target, get_min_raise(state))
                return state
        else:
            to_add = player.chips

        player, paid = _commit(player, to_add)
        if player.current_bet > state.current_bet:
            last_raise_amount = player.current_bet - state.current_bet
            current_bet = player.current_bet
            min_raise = max(state.big_blind, last_raise_amount)
            last_raiser_index = index
            # Everyone else must respond to the new bet level.
            players = [other if seat == index else replace(other, has_acted_this_round=False) for seat, other in enumerate(players)]

    players[index] = replace(player, has_acted_this_round=True)
    record = ActionRecord(
        player_id=player.id,
        player_name=player.name,
        action=action.action,
        amount=paid,
        phase=state.phase,
        reasoning=action.reasoning,
    )

    return _progress(
        replace(
            state,
            players=tuple(players),
            pot=state.pot + paid,
            current_bet=current_bet,
            min_raise=min_raise,
            last_raise_amount=last_raise_amount,
            last_raiser_index=last_raiser_index,
            action_history=(*state.action_history, record),
        )
    )


def find_next_player_to_act(state: GameState) -> Optional[int]:
    players = state.players
    count = len(players)
    for step in range(1, count + 1):
        index = (state.current_player_index + step) % count
        player = players[index]
        if player.can_act and (player.current_bet < state.current_bet or not player.has_acted_this_round):
            return index
    return None


def advance_phase(state: GameState) -> GameState:
    if not state.is_betting:
        return state

    new_state = _reset_round(state)

    if state.phase == "river":
        return _resolve_showdown(replace(new_state, phase="showdown"))

    next_phase, count = NEXT_STREET[state.phase]
    cards, remaining = deal_cards(new_state.deck, count)
    new_state = replace(
        new_state,
        phase=next_phase,
        deck=remaining,
        community_cards=(*new_state.community_cards, *cards),
    )
    logger.debug("Advanced to %s", next_phase)

    if sum(1 for player in new_state.players if player.can_act) < 2:
        return _run_out(new_state)

    first = _next_seat(new_state.players, new_state.dealer_index, lambda player: player.can_act)
    assert first is not None
    return replace(new_state, current_player_index=first, round_start_player_index=first)


def is_game_over(state: GameState) -> bool:
    if not state.players:
        return False
    return sum(1 for player in state.players if player.chips > 0) <= 1


def get_game_winner(state: GameState) -> Optional[Player]:
    funded = [player for player in state.players if player.chips > 0]
    if len(funded) == 1:
        return funded[0]
    return None


def dispatch(state: GameState, action: GameAction) -> GameState:
    if isinstance(action, StartGame):
        return start_game(
            action.roster,
            starting_chips=action.starting_chips,
            small_blind=action.small_blind,
            big_blind=action.big_blind,
            seed=action.seed,
        )
    if isinstance(action, StartNewHand):
        return start_new_hand(state, deck=action.deck)
    if isinstance(action, BetAction):
        return process_player_action(state, action)
    if isinstance(action, ResetGame):
        return create_initial_state(state.small_blind, state.big_blind)
    raise TypeError(f"Unsupported game action: {action!r}")


def _progress(state: GameState) -> GameState:
    contenders = [index for index, player in enumerate(state.players) if player.in_hand]
    if len(contenders) == 1:
        return _award_uncontested(state, contenders[0])

    if _betting_closed(state):
        return _run_out(state)

    next_index = find_next_player_to_act(state)
    if next_index is None:
        return advance_phase(state)
    return replace(state, current_player_index=next_index)


def _betting_closed(state: GameState) -> bool:
    able = [player for player in state.players if player.can_act]
    if not able:
        return True
    return len(able) == 1 and able[0].current_bet >= state.current_bet


def _reset_round(state: GameState) -> GameState:
    return replace(
        state,
        players=tuple(replace(player, current_bet=0, has_acted_this_round=False) for player in state.players),
        current_bet=0,
        min_raise=state.big_blind,
        last_raise_amount=state.big_blind,
        last_raiser_index=None,
    )


def _run_out(state: GameState) -> GameState:
    new_state = _reset_round(state)
    board = list(new_state.community_cards)
    remaining = new_state.deck
    if len(board) < 5:
        cards, remaining = deal_cards(remaining, 5 - len(board))
        board.extend(cards)
    logger.debug("Running out the board for hand %s", state.hand_number)
    return _resolve_showdown(replace(new_state, phase="showdown", deck=remaining, community_cards=tuple(board)))


def _resolve_showdown(state: GameState) -> GameState:
    result = find_winners(state.players, state.community_cards)
    winner_ids = _seat_order_from_dealer(state, {player.id for player in result.winners})

    share, odd_chips = divmod(state.pot, len(winner_ids))
    payouts = {player_id: share for player_id in winner_ids}
    for player_id in winner_ids[:odd_chips]:
        payouts[player_id] += 1

    players = tuple(
        replace(player, chips=player.chips + payouts[player.id]) if player.id in payouts else player
        for player in state.players
    )
    showdown_hands = tuple(
        ShowdownHand(player_id=player_id, rank=evaluation.rank_value, description=evaluation.description)
        for player_id, evaluation in result.evaluations.items()
    )
    logger.debug("Hand %s won by %s with %s", state.hand_number, winner_ids, result.description)
    return replace(
        state,
        phase="hand-complete",
        players=players,
        pot=0,
        pot_awarded=state.pot,
        winner_ids=winner_ids,
        winning_hand=result.description,
        showdown_hands=showdown_hands,
    )


def _award_uncontested(state: GameState, index: int) -> GameState:
    players = list(state.players)
    winner = players[index]
    players[index] = replace(winner, chips=winner.chips + state.pot)
    logger.debug("Hand %s won uncontested by %s", state.hand_number, winner.id)
    return replace(
        state,
        phase="hand-complete",
        players=tuple(players),
        pot=0,
        pot_awarded=state.pot,
        winner_ids=(winner.id,),
        winning_hand=EVERYONE_FOLDED,
        showdown_hands=(),
    )


def _seat_order_from_dealer(state: GameState, player_ids: set[str]) -> tuple[str, ...]:
    count = len(state.players)
    ordered = (state.players[(state.dealer_index + step) % count] for step in range(1, count + 1))
    return tuple(player.id for player in ordered if player.id in player_ids)


def _commit(player: Player, amount: int) -> tuple[Player, int]:
    paid = max(0, min(amount, player.chips))
    chips = player.chips - paid
    return replace(player, chips=chips, current_bet=player.current_bet + paid, is_all_in=player.is_all_in or chips == 0), paid


def _next_seat(players: Sequence[Player], from_index: int, predicate: Callable[[Player], bool]) -> Optional[int]:
    count = len(players)
    for step in range(1, count + 1):
        index = (from_index + step) % count
        if predicate(players[index]):
            return index
    return None


def _is_dealt_in(player: Player) -> bool:
    return player.in_hand


def _hand_rng(seed: str | None, hand_number: int) -> random.Random:
    if seed is None:
        return random.Random()
    return random.Random(f"{seed}:{hand_number}")
