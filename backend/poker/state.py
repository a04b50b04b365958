from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Union

from .cards import Card

Phase = Literal["waiting", "pre-flop", "flop", "turn", "river", "showdown", "hand-complete"]
BettingAction = Literal["fold", "check", "call", "raise", "all-in"]
PlayerType = Literal["human", "automated"]

BETTING_PHASES: tuple[Phase, ...] = ("pre-flop", "flop", "turn", "river")
BETTING_ACTIONS: tuple[BettingAction, ...] = ("fold", "check", "call", "raise", "all-in")

STARTING_CHIPS = 1000
SMALL_BLIND = 10
BIG_BLIND = 20


@dataclass(frozen=True)
class SeatSpec:
    id: str
    name: str
    type: PlayerType = "automated"
    policy: Optional[str] = None


@dataclass(frozen=True)
class Player:
    id: str
    name: str
    type: PlayerType
    chips: int
    policy: Optional[str] = None
    hand: tuple[Card, ...] = ()
    current_bet: int = 0
    is_folded: bool = False
    is_all_in: bool = False
    is_dealer: bool = False
    has_acted_this_round: bool = False

    @property
    def is_dealt_in(self) -> bool:
        return len(self.hand) > 0

    @property
    def in_hand(self) -> bool:
        return self.is_dealt_in and not self.is_folded

    @property
    def can_act(self) -> bool:
        return self.in_hand and not self.is_all_in


@dataclass(frozen=True)
class BetAction:
    """A betting decision for the seat to act. ``amount`` is the new total bet for raises."""

    player_id: str
    action: BettingAction
    amount: Optional[int] = None
    reasoning: Optional[str] = None


@dataclass(frozen=True)
class ActionRecord:
    player_id: str
    player_name: str
    action: BettingAction
    amount: int
    phase: Phase
    reasoning: Optional[str] = None


@dataclass(frozen=True)
class ShowdownHand:
    player_id: str
    rank: int
    description: str


@dataclass(frozen=True)
class GameState:
    phase: Phase = "waiting"
    players: tuple[Player, ...] = ()
    deck: tuple[Card, ...] = ()
    community_cards: tuple[Card, ...] = ()
    pot: int = 0
    current_bet: int = 0
    current_player_index: int = 0
    dealer_index: int = 0
    small_blind: int = SMALL_BLIND
    big_blind: int = BIG_BLIND
    min_raise: int = BIG_BLIND
    last_raise_amount: int = BIG_BLIND
    action_history: tuple[ActionRecord, ...] = ()
    round_start_player_index: int = 0
    last_raiser_index: Optional[int] = None
    winner_ids: tuple[str, ...] = ()
    winning_hand: Optional[str] = None
    showdown_hands: tuple[ShowdownHand, ...] = ()
    pot_awarded: int = 0
    hand_number: int = 0
    seed: Optional[str] = None

    @property
    def is_betting(self) -> bool:
        return self.phase in BETTING_PHASES

    @property
    def current_player(self) -> Optional[Player]:
        if not self.is_betting or not 0 <= self.current_player_index < len(self.players):
            return None
        return self.players[self.current_player_index]

    @property
    def winner(self) -> Optional[Player]:
        if not self.winner_ids:
            return None
        return self.player_by_id(self.winner_ids[0])

    def player_by_id(self, player_id: str) -> Optional[Player]:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def index_of(self, player_id: str) -> Optional[int]:
        for index, player in enumerate(self.players):
            if player.id == player_id:
                return index
        return None

    def total_chips(self) -> int:
        return sum(player.chips for player in self.players) + self.pot


@dataclass(frozen=True)
class StartGame:
    roster: tuple[SeatSpec, ...]
    starting_chips: int = STARTING_CHIPS
    small_blind: int = SMALL_BLIND
    big_blind: int = BIG_BLIND
    seed: Optional[str] = None


@dataclass(frozen=True)
class StartNewHand:
    deck: Optional[tuple[Card, ...]] = None


@dataclass(frozen=True)
class ResetGame:
    pass


GameAction = Union[StartGame, StartNewHand, BetAction, ResetGame]


DEFAULT_HUMAN = SeatSpec(id="jonas", name="JONAS", type="human")
DEFAULT_AUTOMATED = (
    SeatSpec(id="claude", name="CLAUDE", policy="anthropic/claude-sonnet-4.5"),
    SeatSpec(id="gemini", name="GEMINI", policy="google/gemini-3-flash-preview"),
    SeatSpec(id="gpt", name="GPT", policy="openai/gpt-5.2"),
)


def default_roster(human_name: str | None = None) -> tuple[SeatSpec, ...]:
    human = DEFAULT_HUMAN
    if human_name:
        human = SeatSpec(id=human_name.strip().lower(), name=human_name.strip().upper(), type="human")
    return (human, *DEFAULT_AUTOMATED)
