from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .evaluator import HandRank
from .state import BettingAction, GameState, Phase

WEAK_SHOWDOWN_RANK = HandRank.PAIR


@dataclass(frozen=True)
class HandActionSummary:
    player_name: str
    action: BettingAction
    amount: Optional[int]
    phase: Phase


@dataclass(frozen=True)
class ShowdownSummary:
    player_name: str
    hand: str


@dataclass(frozen=True)
class HandSummary:
    hand_number: int
    winner: str
    winning_hand: str
    pot_size: int
    actions: tuple[HandActionSummary, ...] = ()
    showdown_hands: tuple[ShowdownSummary, ...] = ()


@dataclass
class PlayerStats:
    hands_played: int = 0
    hands_won: int = 0
    total_bet: int = 0
    all_in_count: int = 0
    fold_count: int = 0
    bluff_caught: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "hands_played": self.hands_played,
            "hands_won": self.hands_won,
            "total_bet": self.total_bet,
            "all_in_count": self.all_in_count,
            "fold_count": self.fold_count,
            "bluff_caught": self.bluff_caught,
        }


@dataclass
class GameHistory:
    """Completed hands of one session plus running per-player tendencies."""

    hands: list[HandSummary] = field(default_factory=list)
    player_stats: dict[str, PlayerStats] = field(default_factory=dict)
    _recorded: set[int] = field(default_factory=set, repr=False)

    def record_hand(self, state: GameState) -> Optional[HandSummary]:
        """Fold a finished hand into the history. Recording the same hand twice is a no-op."""
        if state.phase != "hand-complete" or state.hand_number in self._recorded:
            return None
        self._recorded.add(state.hand_number)

        names = {player.id: player.name for player in state.players}
        showdown_ranks = {item.player_id: item.rank for item in state.showdown_hands}

        for player in state.players:
            if not player.is_dealt_in:
                continue
            stats = self.player_stats.setdefault(player.id, PlayerStats())
            records = [record for record in state.action_history if record.player_id == player.id]
            stats.hands_played += 1
            stats.total_bet += sum(record.amount for record in records)
            went_all_in = any(record.action == "all-in" for record in records)
            stats.all_in_count += int(went_all_in)
            stats.fold_count += sum(1 for record in records if record.action == "fold")

            won = player.id in state.winner_ids
            stats.hands_won += int(won)
            rank = showdown_ranks.get(player.id)
            if went_all_in and not won and rank is not None and rank <= WEAK_SHOWDOWN_RANK:
                stats.bluff_caught += 1

        summary = HandSummary(
            hand_number=state.hand_number,
            winner=", ".join(names.get(player_id, player_id) for player_id in state.winner_ids),
            winning_hand=state.winning_hand or "",
            pot_size=state.pot_awarded,
            actions=tuple(
                HandActionSummary(
                    player_name=record.player_name,
                    action=record.action,
                    amount=record.amount or None,
                    phase=record.phase,
                )
                for record in state.action_history
            ),
            showdown_hands=tuple(
                ShowdownSummary(player_name=names.get(item.player_id, item.player_id), hand=item.description)
                for item in state.showdown_hands
            ),
        )
        self.hands.append(summary)
        return summary

    def opponent_tendencies(self, player_id: str, names: dict[str, str] | None = None) -> dict[str, Any]:
        names = names or {}
        return {
            names.get(other_id, other_id): stats.as_dict()
            for other_id, stats in self.player_stats.items()
            if other_id != player_id
        }
