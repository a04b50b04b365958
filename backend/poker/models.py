from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Phase = Literal["waiting", "pre-flop", "flop", "turn", "river", "showdown", "hand-complete"]
ActionType = Literal["fold", "check", "call", "raise", "all-in"]
FamilyMember = Literal["Dad", "Mom", "Jonas", "Bo", "Oliver", "Torvald"]
SessionStatus = Literal["in_progress", "hand_complete", "game_over"]


def to_camel(value: str) -> str:
    parts = value.split("_")
    return parts[0] + "".join(part.capitalize() for part in parts[1:])


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class CardModel(CamelModel):
    suit: str
    rank: str
    label: str


class PlayerStateModel(CamelModel):
    id: str
    name: str
    type: Literal["human", "automated"]
    policy: Optional[str] = None
    chips: int
    hand: List[CardModel]
    cards_visible: bool
    current_bet: int
    is_folded: bool
    is_all_in: bool
    is_dealer: bool
    has_acted_this_round: bool


class LegalActionsModel(CamelModel):
    actions: List[ActionType]
    call_amount: int
    min_raise: int
    max_raise: int


class ActionRecordModel(CamelModel):
    player_id: str
    player_name: str
    action: ActionType
    amount: int
    phase: Phase
    reasoning: Optional[str] = None


class ShowdownHandModel(CamelModel):
    player_id: str
    rank: int
    description: str


class SessionStateModel(CamelModel):
    session_id: str
    hand_number: int
    phase: Phase
    small_blind: int
    big_blind: int
    pot: int
    current_bet: int
    min_raise: int
    community_cards: List[CardModel]
    players: List[PlayerStateModel]
    dealer_index: int
    current_player_id: Optional[str] = None
    human_player_id: str
    legal_actions: LegalActionsModel
    action_history: List[ActionRecordModel]
    winner_ids: List[str]
    winning_hand: Optional[str] = None
    showdown_hands: List[ShowdownHandModel]
    game_winner_id: Optional[str] = None
    status: SessionStatus


class CreateSessionRequestModel(CamelModel):
    player_name: FamilyMember = "Jonas"
    seed: Optional[str] = Field(default=None, max_length=64)


class HumanActionRequestModel(CamelModel):
    action_type: ActionType
    amount: Optional[int] = Field(default=None, ge=0)


class ActionResolutionModel(CamelModel):
    session_state: SessionStateModel
    applied_events: List[ActionRecordModel]
    hand_complete: bool


class HandActionModel(CamelModel):
    player_name: str
    action: ActionType
    amount: Optional[int] = None
    phase: Phase


class ShowdownSummaryModel(CamelModel):
    player_name: str
    hand: str


class HandSummaryModel(CamelModel):
    hand_number: int
    winner: str
    winning_hand: str
    pot_size: int
    actions: List[HandActionModel]
    showdown_hands: List[ShowdownSummaryModel]


class PlayerStatsModel(CamelModel):
    hands_played: int
    hands_won: int
    total_bet: int
    all_in_count: int
    fold_count: int
    bluff_caught: int


class ScoreSubmissionModel(CamelModel):
    game: Literal["solitaire", "sudoku", "memory", "pixel-hoops", "poker", "code-quest"]
    player: FamilyMember
    score: int


class ScoreRecordModel(CamelModel):
    id: Optional[int] = None
    game: str
    player: str
    score: int
    created_at: str
    points: int

