from __future__ import annotations

from dataclasses import dataclass, field

from .state import BettingAction, GameState


@dataclass(frozen=True)
class ActionOptions:
    actions: list[BettingAction] = field(default_factory=list)
    call_amount: int = 0
    min_raise: int = 0
    max_raise: int = 0


def get_available_actions(state: GameState) -> list[BettingAction]:
    player = state.current_player
    if player is None or not player.can_act:
        return []

    actions: list[BettingAction] = ["fold"]
    to_call = max(0, state.current_bet - player.current_bet)

    if to_call == 0:
        actions.append("check")
    elif player.chips > 0:
        actions.append("call")

    if player.chips > to_call and player.chips + player.current_bet >= get_min_raise(state):
        actions.append("raise")

    if player.chips > 0:
        actions.append("all-in")

    return actions


def get_call_amount(state: GameState) -> int:
    player = state.current_player
    if player is None:
        return 0
    return max(0, min(state.current_bet - player.current_bet, player.chips))


def get_min_raise(state: GameState) -> int:
    """Smallest legal total bet for a raise this round."""
    return state.current_bet + state.min_raise


def get_max_raise(state: GameState) -> int:
    player = state.current_player
    if player is None:
        return 0
    return player.chips + player.current_bet


def get_action_options(state: GameState) -> ActionOptions:
    return ActionOptions(
        actions=get_available_actions(state),
        call_amount=get_call_amount(state),
        min_raise=get_min_raise(state),
        max_raise=get_max_raise(state),
    )
