import asyncio
from dataclasses import replace

import pytest

from backend.poker.config import Settings
from backend.poker.engine import create_initial_state, start_new_hand
from backend.poker.models import HumanActionRequestModel, ScoreSubmissionModel
from backend.poker.opponent import Decision, DeterministicPolicy
from backend.poker.scoring import InMemoryScoreStore, ScoreSubmissionError
from backend.poker.session_manager import (
    InvalidActionError,
    SessionFlowError,
    SessionManager,
    SessionNotFoundError,
    TableSession,
)
from backend.poker.state import Player, SeatSpec

from .helpers import act, rigged_deck

HEADS_UP = (SeatSpec(id="jonas", name="JONAS", type="human"), SeatSpec(id="bot", name="BOT"))


class FailingPolicy:
    async def request_decision(self, view, model=None):
        raise RuntimeError("provider offline")


class SlowPolicy:
    async def request_decision(self, view, model=None):
        await asyncio.sleep(5)
        return Decision(action="fold")


class MinRaisePolicy:
    async def request_decision(self, view, model=None):
        return Decision(action="raise", amount=view["min_raise"])


class RejectingStore(InMemoryScoreStore):
    async def submit_score(self, game, player, score):
        raise ScoreSubmissionError("database unavailable")


def _session(provider=None, **kwargs) -> TableSession:
    return TableSession("table-1", provider or DeterministicPolicy(), seed="family-night", **kwargs)


def _short_stack_session(store) -> TableSession:
    deck = rigged_deck([["As", "Ah"], ["7c", "2d"]], ["Ks", "Qd", "9h", "5c", "3s"])
    return _session(
        roster=HEADS_UP,
        starting_chips=20,
        small_blind=10,
        big_blind=20,
        score_store=store,
        deck=deck,
    )


def test_automated_seats_play_until_human_turn() -> None:
    async def run() -> None:
        session = _session()
        await session.play_automated_turns()

        state = session.get_state()
        assert state.status == "in_progress"
        assert state.current_player_id == "jonas"
        assert state.human_player_id == "jonas"
        assert state.legal_actions.actions
        assert all(record.player_id != "jonas" for record in state.action_history)

    asyncio.run(run())


def test_opponent_cards_are_hidden_until_showdown() -> None:
    session = _session()
    state = session.get_state()

    for player in state.players:
        if player.id == "jonas":
            assert player.cards_visible
            assert len(player.hand) == 2
        else:
            assert not player.cards_visible
            assert player.hand == []


def test_human_fold_plays_out_the_hand() -> None:
    async def run() -> None:
        session = _session()
        await session.play_automated_turns()

        events = await session.process_human_action("fold")
        assert events[0].player_id == "jonas"
        assert events[0].action == "fold"

        state = session.get_state()
        assert state.status == "hand_complete"
        assert state.current_player_id is None
        assert state.legal_actions.actions == []
        assert "jonas" not in state.winner_ids

        hands = session.list_hands()
        assert len(hands) == 1
        assert hands[0].hand_number == 1
        assert session.get_stats()["jonas"].fold_count == 1

        with pytest.raises(SessionFlowError):
            await session.process_human_action("check")

        next_state = await session.start_next_hand()
        assert next_state.hand_number == 2
        assert next_state.current_player_id == "jonas"

    asyncio.run(run())


def test_out_of_range_raise_is_rejected_with_legal_actions() -> None:
    async def run() -> None:
        session = _session()
        await session.play_automated_turns()
        before = session.state

        with pytest.raises(InvalidActionError) as excinfo:
            await session.process_human_action("raise", 1)

        assert "raise" in excinfo.value.legal_actions.actions
        assert excinfo.value.legal_actions.min_raise > 1
        assert session.state is before

    asyncio.run(run())


def test_next_hand_is_refused_mid_hand() -> None:
    async def run() -> None:
        session = _session()
        await session.play_automated_turns()
        with pytest.raises(SessionFlowError):
            await session.start_next_hand()

    asyncio.run(run())


def test_failing_provider_falls_back_to_safe_actions() -> None:
    async def run() -> None:
        session = _session(FailingPolicy())
        await session.play_automated_turns()

        assert session.state.current_player.id == "jonas"
        for record in session.state.action_history:
            assert record.action in {"check", "call"}

    asyncio.run(run())


def test_slow_provider_times_out_to_fallback() -> None:
    async def run() -> None:
        session = _session(SlowPolicy(), decision_timeout_seconds=0.01)
        await session.play_automated_turns()

        assert session.state.current_player.id == "jonas"
        assert all(record.action != "fold" for record in session.state.action_history)

    asyncio.run(run())


def test_game_over_submits_final_score_once() -> None:
    async def run() -> None:
        store = InMemoryScoreStore()
        session = _short_stack_session(store)
        await session.play_automated_turns()
        if session.state.is_betting:
            await session.process_human_action("call")

        state = session.get_state()
        assert state.status == "game_over"
        assert state.game_winner_id == "jonas"
        assert state.winning_hand == "Pair of Aces"
        assert [player.chips for player in state.players] == [40, 0]

        await session.play_automated_turns()
        scores = await store.top_scores("poker")
        assert [(record.player, record.score) for record in scores] == [("Jonas", 20)]

        with pytest.raises(SessionFlowError):
            await session.start_next_hand()

        fresh = await session.reset()
        assert fresh.hand_number == 1
        assert sum(player.chips for player in fresh.players) + fresh.pot == 40
        assert all(hand.hand_number == 1 for hand in session.list_hands())

    asyncio.run(run())


def test_score_store_failure_does_not_break_the_session() -> None:
    async def run() -> None:
        session = _short_stack_session(RejectingStore())
        await session.play_automated_turns()
        if session.state.is_betting:
            await session.process_human_action("call")
        assert session.get_state().status == "game_over"

    asyncio.run(run())


def test_session_requires_exactly_one_human() -> None:
    with pytest.raises(ValueError):
        TableSession("bad", DeterministicPolicy(), roster=(SeatSpec("a", "A"), SeatSpec("b", "B")))


def test_manager_routes_calls_to_sessions() -> None:
    async def run() -> None:
        manager = SessionManager(Settings(), decision_provider=DeterministicPolicy(), score_store=InMemoryScoreStore())
        created = await manager.create_session(player_name="Bo", seed="manager-seed")
        assert created.human_player_id == "bo"
        assert created.current_player_id == "bo"
        assert len(created.players) == 4

        fetched = await manager.get_state(created.session_id)
        assert fetched == created

        result = await manager.apply_action(created.session_id, HumanActionRequestModel(action_type="fold"))
        assert result.hand_complete
        assert result.applied_events[0].player_id == "bo"
        assert len(await manager.list_hands(created.session_id)) == 1
        assert "bo" in await manager.get_stats(created.session_id)

        with pytest.raises(SessionNotFoundError):
            await manager.get_state("missing")

        await manager.aclose()

    asyncio.run(run())


def test_manager_scores_and_leaderboard() -> None:
    async def run() -> None:
        manager = SessionManager(Settings(), decision_provider=DeterministicPolicy(), score_store=InMemoryScoreStore())
        await manager.submit_score(ScoreSubmissionModel(game="poker", player="Mom", score=150))
        record = await manager.submit_score(ScoreSubmissionModel(game="poker", player="Dad", score=500))
        await manager.submit_score(ScoreSubmissionModel(game="sudoku", player="Bo", score=900))

        assert record.points == 110
        board = await manager.leaderboard("poker")
        assert [entry.player for entry in board] == ["Dad", "Mom"]
        assert [entry.points for entry in board] == [110, 103]

    asyncio.run(run())


def _two_all_ins_before_human():
    players = (
        Player(id="a", name="A", type="automated", chips=1000),
        Player(id="b", name="B", type="automated", chips=1000),
        Player(id="jonas", name="JONAS", type="human", chips=1000),
    )
    state = start_new_hand(replace(create_initial_state(), players=players, dealer_index=2, seed="all-ins"))
    state = act(state, "a", "all-in")
    return act(state, "b", "all-in")


def test_busted_all_in_seats_do_not_end_the_game_mid_hand() -> None:
    roster = (SeatSpec("a", "A"), SeatSpec("b", "B"), SeatSpec("jonas", "JONAS", type="human"))
    session = TableSession("table-2", DeterministicPolicy(), roster=roster, seed="all-ins")
    session.state = _two_all_ins_before_human()

    view = session.get_state()
    assert view.phase == "pre-flop"
    assert view.current_player_id == "jonas"
    assert view.status == "in_progress"
    assert view.game_winner_id is None
    assert "fold" in view.legal_actions.actions

    async def run() -> None:
        await session.process_human_action("fold")

    asyncio.run(run())
    after = session.get_state()
    assert after.status == "hand_complete"
    assert after.game_winner_id is None


def test_decision_budget_falls_back_instead_of_stalling() -> None:
    async def run() -> None:
        session = _session(MinRaisePolicy(), max_automated_actions=3)
        await session.play_automated_turns()
        assert session.state.current_player.id == "jonas"

        await session.process_human_action("fold")
        assert session.get_state().status == "hand_complete"

        next_state = await session.start_next_hand()
        assert next_state.hand_number == 2
        assert next_state.current_player_id == "jonas"

    asyncio.run(run())


def test_human_action_resumes_pending_automated_turns() -> None:
    async def run() -> None:
        session = _session()
        events = await session.process_human_action("fold")
        assert events[0].player_id == "jonas"
        assert session.get_state().status == "hand_complete"

    asyncio.run(run())
