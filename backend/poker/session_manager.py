from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from dataclasses import asdict
from typing import Optional, Sequence

from .actions import ActionOptions, get_action_options
from .cards import Card
from .config import Settings
from .engine import dispatch, get_game_winner, is_game_over, start_game
from .history import GameHistory
from .models import (
    ActionRecordModel,
    ActionResolutionModel,
    CardModel,
    HandSummaryModel,
    HumanActionRequestModel,
    LegalActionsModel,
    PlayerStateModel,
    PlayerStatsModel,
    ScoreRecordModel,
    ScoreSubmissionModel,
    SessionStateModel,
    ShowdownHandModel,
)
from .opponent import Decision, DecisionProvider, OpenRouterPolicy, build_observable_state, coerce_decision
from .scoring import (
    InMemoryScoreStore,
    ScoreRecord,
    ScoreStore,
    ScoreSubmissionError,
    SupabaseScoreStore,
    calculate_normalized_points,
    poker_score,
)
from .state import ActionRecord, BetAction, BettingAction, Player, ResetGame, SeatSpec, StartNewHand, default_roster

logger = logging.getLogger(__name__)


class InvalidActionError(ValueError):
    def __init__(self, message: str, legal_actions: LegalActionsModel) -> None:
        super().__init__(message)
        self.legal_actions = legal_actions


class SessionFlowError(ValueError):
    pass


class SessionNotFoundError(KeyError):
    pass


def _legal_model(options: ActionOptions) -> LegalActionsModel:
    return LegalActionsModel(
        actions=options.actions,
        call_amount=options.call_amount,
        min_raise=options.min_raise,
        max_raise=options.max_raise,
    )


def _card_models(cards: Sequence[Card]) -> list[CardModel]:
    return [CardModel(suit=card.suit, rank=card.rank, label=card.label) for card in cards]


def _record_model(record: ActionRecord) -> ActionRecordModel:
    return ActionRecordModel.model_validate(asdict(record))


class TableSession:
    """One table: the engine state plus the automated seats that play against the human."""

    def __init__(
        self,
        session_id: str,
        decision_provider: DecisionProvider,
        *,
        player_name: str = "Jonas",
        roster: Sequence[SeatSpec] | None = None,
        starting_chips: int = 1000,
        small_blind: int = 10,
        big_blind: int = 20,
        seed: str | None = None,
        score_store: ScoreStore | None = None,
        max_automated_actions: int = 64,
        decision_timeout_seconds: float = 10.0,
        deck: Sequence[Card] | None = None,
    ) -> None:
        self.session_id = session_id
        self.decision_provider = decision_provider
        self.player_name = player_name
        self.roster = tuple(roster or default_roster(player_name))
        humans = [seat for seat in self.roster if seat.type == "human"]
        if len(humans) != 1:
            raise ValueError("A table session needs exactly one human seat.")
        self.human_id = humans[0].id
        self.starting_chips = starting_chips
        self.small_blind = small_blind
        self.big_blind = big_blind
        self.seed = seed
        self.score_store = score_store
        self.max_automated_actions = max(1, max_automated_actions)
        self.decision_timeout_seconds = decision_timeout_seconds
        self.history = GameHistory()
        self.resets = 0
        self._score_submitted = False
        self.state = start_game(
            self.roster,
            starting_chips=starting_chips,
            small_blind=small_blind,
            big_blind=big_blind,
            seed=seed,
            deck=deck,
        )

    @property
    def human(self) -> Player:
        player = self.state.player_by_id(self.human_id)
        assert player is not None
        return player

    def get_state(self) -> SessionStateModel:
        state = self.state
        if state.phase == "hand-complete" and is_game_over(state):
            status = "game_over"
        elif state.phase == "hand-complete":
            status = "hand_complete"
        else:
            status = "in_progress"

        revealed = {item.player_id for item in state.showdown_hands}
        current = state.current_player
        human_turn = current is not None and current.id == self.human_id
        options = get_action_options(state) if human_turn else ActionOptions()
        winner = get_game_winner(state)

        return SessionStateModel(
            session_id=self.session_id,
            hand_number=state.hand_number,
            phase=state.phase,
            small_blind=state.small_blind,
            big_blind=state.big_blind,
            pot=state.pot,
            current_bet=state.current_bet,
            min_raise=state.min_raise,
            community_cards=_card_models(state.community_cards),
            players=[self._player_model(player, revealed) for player in state.players],
            dealer_index=state.dealer_index,
            current_player_id=current.id if current else None,
            human_player_id=self.human_id,
            legal_actions=_legal_model(options),
            action_history=[_record_model(record) for record in state.action_history],
            winner_ids=list(state.winner_ids),
            winning_hand=state.winning_hand,
            showdown_hands=[ShowdownHandModel.model_validate(asdict(item)) for item in state.showdown_hands],
            game_winner_id=winner.id if winner and status == "game_over" else None,
            status=status,
        )

    def list_hands(self) -> list[HandSummaryModel]:
        return [HandSummaryModel.model_validate(asdict(summary)) for summary in reversed(self.history.hands)]

    def get_stats(self) -> dict[str, PlayerStatsModel]:
        return {
            player_id: PlayerStatsModel.model_validate(stats.as_dict())
            for player_id, stats in self.history.player_stats.items()
        }

    async def process_human_action(self, action_type: BettingAction, amount: int | None = None) -> list[ActionRecord]:
        await self._resume_automated_turns()
        if not self.state.is_betting:
            raise SessionFlowError("Hand is complete. Start the next hand first.")
        current = self.state.current_player
        if current is None or current.id != self.human_id:
            raise SessionFlowError("It is not the human player's turn.")

        options = get_action_options(self.state)
        if action_type not in options.actions:
            raise InvalidActionError("Illegal action for current game state.", _legal_model(options))
        if action_type == "raise" and amount is not None and not options.min_raise <= amount <= options.max_raise:
            raise InvalidActionError("Raise amount is out of legal range.", _legal_model(options))

        start_index = len(self.state.action_history)
        self.state = dispatch(self.state, BetAction(player_id=self.human_id, action=action_type, amount=amount))
        await self.play_automated_turns()
        return list(self.state.action_history[start_index:])

    async def start_next_hand(self) -> SessionStateModel:
        await self._resume_automated_turns()
        if self.state.is_betting:
            raise SessionFlowError("Current hand is still in progress.")
        if is_game_over(self.state):
            raise SessionFlowError("The game is over. Reset to play again.")

        self.state = dispatch(self.state, StartNewHand())
        logger.info("Session %s started hand %s", self.session_id, self.state.hand_number)
        await self.play_automated_turns()
        return self.get_state()

    async def reset(self) -> SessionStateModel:
        self.resets += 1
        seed = f"{self.seed}:reset-{self.resets}" if self.seed else None
        self.state = dispatch(self.state, ResetGame())
        self.state = start_game(
            self.roster,
            starting_chips=self.starting_chips,
            small_blind=self.small_blind,
            big_blind=self.big_blind,
            seed=seed,
        )
        self.history = GameHistory()
        self._score_submitted = False
        await self.play_automated_turns()
        return self.get_state()

    async def play_automated_turns(self) -> None:
        """Let automated seats act until the human is up or the hand is over.

        Only the first ``max_automated_actions`` turns consult the decision provider.
        Later turns, and any decision the engine rejects, play the safe fallback,
        which never raises, so the betting round always finishes.
        """
        budget = self.max_automated_actions
        while True:
            current = self.state.current_player
            if current is None or current.type != "automated":
                break
            if budget > 0:
                budget -= 1
                action = await self._automated_action(current)
            else:
                if budget == 0:
                    budget -= 1
                    logger.warning("Session %s used its decision budget; automated seats play fallback", self.session_id)
                action = coerce_decision(self.state, None)

            next_state = dispatch(self.state, action)
            if next_state is self.state:
                logger.error("Engine rejected %s for %s; playing fallback", action.action, current.id)
                next_state = dispatch(self.state, coerce_decision(self.state, None))
                if next_state is self.state:
                    raise RuntimeError(f"Engine rejected the fallback action for {current.id}")
            self.state = next_state
        await self._settle()

    async def _resume_automated_turns(self) -> None:
        current = self.state.current_player
        if current is not None and current.type == "automated":
            logger.info("Session %s resuming automated play for %s", self.session_id, current.id)
            await self.play_automated_turns()

    async def _automated_action(self, player: Player) -> BetAction:
        view = build_observable_state(self.state, player.id, self.history)
        decision: Optional[Decision] = None
        try:
            decision = await asyncio.wait_for(
                self.decision_provider.request_decision(view, player.policy),
                timeout=self.decision_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("Decision for %s timed out after %ss", player.name, self.decision_timeout_seconds)
        except Exception as exc:  # any provider failure means fallback
            logger.warning("Decision provider failed for %s: %s", player.name, exc)

        action = coerce_decision(self.state, decision)
        if decision is None or decision.action != action.action:
            logger.info("%s plays fallback %s", player.name, action.action)
        return action

    async def _settle(self) -> None:
        if self.state.phase != "hand-complete":
            return
        summary = self.history.record_hand(self.state)
        if summary is not None:
            logger.info(
                "Session %s hand %s won by %s (%s)",
                self.session_id,
                summary.hand_number,
                summary.winner,
                summary.winning_hand,
            )
        if is_game_over(self.state) and not self._score_submitted:
            self._score_submitted = True
            await self._submit_final_score()

    async def _submit_final_score(self) -> None:
        winner = get_game_winner(self.state)
        logger.info("Session %s game over, winner %s", self.session_id, winner.name if winner else None)
        if self.score_store is None:
            return
        score = poker_score(self.human.chips, self.starting_chips)
        try:
            await self.score_store.submit_score("poker", self.player_name, score)
        except ScoreSubmissionError as exc:
            logger.warning("Score submission for %s failed: %s", self.player_name, exc)

    def _player_model(self, player: Player, revealed: set[str]) -> PlayerStateModel:
        visible = player.id == self.human_id or player.id in revealed
        return PlayerStateModel(
            id=player.id,
            name=player.name,
            type=player.type,
            policy=player.policy,
            chips=player.chips,
            hand=_card_models(player.hand) if visible else [],
            cards_visible=visible,
            current_bet=player.current_bet,
            is_folded=player.is_folded,
            is_all_in=player.is_all_in,
            is_dealer=player.is_dealer,
            has_acted_this_round=player.has_acted_this_round,
        )


def _score_model(record: ScoreRecord) -> ScoreRecordModel:
    return ScoreRecordModel(
        id=record.id,
        game=record.game,
        player=record.player,
        score=record.score,
        created_at=record.created_at,
        points=calculate_normalized_points(record.game, record.score).total,
    )


class SessionManager:
    def __init__(
        self,
        settings: Settings | None = None,
        decision_provider: DecisionProvider | None = None,
        score_store: ScoreStore | None = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self._sessions: dict[str, TableSession] = {}
        self._session_locks: dict[str, asyncio.Lock] = {}
        self._lock = asyncio.Lock()
        self._decision_provider = decision_provider or OpenRouterPolicy.from_env()
        if score_store is not None:
            self._score_store: ScoreStore = score_store
        elif self.settings.supabase_configured:
            self._score_store = SupabaseScoreStore(self.settings.supabase_url or "", self.settings.supabase_key or "")
        else:
            self._score_store = InMemoryScoreStore()

    async def aclose(self) -> None:
        for resource in (self._decision_provider, self._score_store):
            close_method = getattr(resource, "aclose", None)
            if close_method is None:
                continue
            result = close_method()
            if inspect.isawaitable(result):
                await result

    async def create_session(self, player_name: str = "Jonas", seed: str | None = None) -> SessionStateModel:
        async with self._lock:
            session_id = uuid.uuid4().hex[:12]
            session = TableSession(
                session_id=session_id,
                decision_provider=self._decision_provider,
                player_name=player_name,
                starting_chips=self.settings.starting_chips,
                small_blind=self.settings.small_blind,
                big_blind=self.settings.big_blind,
                seed=seed,
                score_store=self._score_store,
                max_automated_actions=self.settings.max_automated_actions,
                decision_timeout_seconds=self.settings.decision_timeout_ms / 1000.0,
            )
            self._sessions[session_id] = session
            lock = self._session_locks[session_id] = asyncio.Lock()
        async with lock:
            await session.play_automated_turns()
            return session.get_state()

    async def get_state(self, session_id: str) -> SessionStateModel:
        session, lock = await self._get_session_entry(session_id)
        async with lock:
            return session.get_state()

    async def apply_action(self, session_id: str, payload: HumanActionRequestModel) -> ActionResolutionModel:
        session, lock = await self._get_session_entry(session_id)
        async with lock:
            events = await session.process_human_action(payload.action_type, payload.amount)
            state = session.get_state()
            return ActionResolutionModel(
                session_state=state,
                applied_events=[_record_model(record) for record in events],
                hand_complete=state.status in {"hand_complete", "game_over"},
            )

    async def next_hand(self, session_id: str) -> SessionStateModel:
        session, lock = await self._get_session_entry(session_id)
        async with lock:
            return await session.start_next_hand()

    async def reset(self, session_id: str) -> SessionStateModel:
        session, lock = await self._get_session_entry(session_id)
        async with lock:
            return await session.reset()

    async def list_hands(self, session_id: str) -> list[HandSummaryModel]:
        session, lock = await self._get_session_entry(session_id)
        async with lock:
            return session.list_hands()

    async def get_stats(self, session_id: str) -> dict[str, PlayerStatsModel]:
        session, lock = await self._get_session_entry(session_id)
        async with lock:
            return session.get_stats()

    async def leaderboard(self, game: str, limit: int = 10) -> list[ScoreRecordModel]:
        records = await self._score_store.top_scores(game, limit)
        return [_score_model(record) for record in records]

    async def submit_score(self, payload: ScoreSubmissionModel) -> ScoreRecordModel:
        record = await self._score_store.submit_score(payload.game, payload.player, payload.score)
        return _score_model(record)

    async def _get_session_entry(self, session_id: str) -> tuple[TableSession, asyncio.Lock]:
        async with self._lock:
            session = self._get_session(session_id)
            lock = self._session_locks.get(session_id)
            if lock is None:
                lock = asyncio.Lock()
                self._session_locks[session_id] = lock
            return session, lock

    def _get_session(self, session_id: str) -> TableSession:
        session = self._sessions.get(session_id)
        if not session:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        return session


__all__ = [
    "InvalidActionError",
    "SessionFlowError",
    "SessionManager",
    "SessionNotFoundError",
    "TableSession",
]
