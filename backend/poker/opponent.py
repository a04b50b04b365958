from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import httpx

from .actions import get_available_actions, get_call_amount, get_max_raise, get_min_raise
from .cards import cards_to_labels
from .history import GameHistory
from .state import BETTING_ACTIONS, BetAction, BettingAction, GameState

logger = logging.getLogger(__name__)

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"
RECENT_ACTIONS = 5
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def _normalize_api_key(raw: str | None) -> str | None:
    if raw is None:
        return None

    value = raw.strip()
    if not value:
        return None

    if value.lower() in {
        "your_openrouter_api_key_here",
        "replace_with_openrouter_key",
        "__replace_me__",
        "changeme",
    }:
        return None

    return value


@dataclass(frozen=True)
class Decision:
    action: str
    amount: Optional[int] = None
    reasoning: Optional[str] = None


class DecisionProvider(Protocol):
    async def request_decision(self, view: dict[str, Any], model: str | None = None) -> Decision:
        ...


def safe_fallback(available: list[BettingAction]) -> BettingAction:
    if "check" in available:
        return "check"
    if "call" in available:
        return "call"
    return "fold"


class DeterministicPolicy:
    """Safe fallback policy: check, else call, else fold."""

    async def request_decision(self, view: dict[str, Any], model: str | None = None) -> Decision:
        del model
        action = safe_fallback(list(view.get("available_actions", [])))
        return Decision(action=action, reasoning="Fallback decision")


class OpenRouterPolicy:
    """Chat-completion backed policy with JSON output and deterministic fallback."""

    _SYSTEM_PROMPT = (
        "You are an expert poker player AI. Respond only with valid JSON. "
        "Be strategic but occasionally make human-like plays."
    )

    def __init__(
        self,
        api_key: str | None,
        timeout_ms: int,
        retries: int = 0,
        base_url: str = OPENROUTER_URL,
        default_model: str = "openai/gpt-5.2",
        fallback: DecisionProvider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url
        self.default_model = default_model
        self.timeout_seconds = max(0.5, timeout_ms / 1000.0)
        self.retries = max(0, retries)
        self.fallback = fallback or DeterministicPolicy()
        self._http = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_seconds),
            limits=httpx.Limits(max_connections=16, max_keepalive_connections=8),
            headers={
                "Content-Type": "application/json",
                "HTTP-Referer": "https://family-games.local",
                "X-Title": "Family Games - AI Poker",
            },
            transport=transport,
        )

    @classmethod
    def from_env(cls) -> "OpenRouterPolicy":
        return cls(
            api_key=_normalize_api_key(os.getenv("OPENROUTER_API_KEY")),
            timeout_ms=int(os.getenv("LLM_TIMEOUT_MS", "8000")),
            retries=int(os.getenv("LLM_RETRIES", "0")),
            base_url=os.getenv("OPENROUTER_BASE_URL", OPENROUTER_URL),
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def request_decision(self, view: dict[str, Any], model: str | None = None) -> Decision:
        available = list(view.get("available_actions", []))
        if len(available) == 1:
            return Decision(action=available[0], reasoning="Only legal action")

        if not self.api_key:
            return await self.fallback.request_decision(view, model)

        for attempt in range(self.retries + 1):
            try:
                content = await self._request_completion(view, model or self.default_model)
                return parse_decision(content)
            except (httpx.HTTPError, ValueError, KeyError, IndexError) as exc:
                logger.warning("Decision attempt %s for %s failed: %s", attempt + 1, view.get("player_name"), exc)

        return await self.fallback.request_decision(view, model)

    async def _request_completion(self, view: dict[str, Any], model: str) -> str:
        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": self._SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(view)},
            ],
            "max_tokens": 150,
            "temperature": 0.7,
        }
        response = await self._http.post(
            self.base_url,
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        response.raise_for_status()

        content = response.json()["choices"][0]["message"]["content"]
        if not content:
            raise ValueError("Completion did not include any content.")
        return content


def build_observable_state(
    state: GameState,
    player_id: str,
    history: GameHistory | None = None,
) -> dict[str, Any]:
    """What a seat is allowed to see when it is asked for a decision."""
    player = state.player_by_id(player_id)
    if player is None:
        raise KeyError(f"Unknown player: {player_id}")

    is_turn = state.current_player is not None and state.current_player.id == player_id
    names = {seat.id: seat.name for seat in state.players}
    return {
        "player_id": player.id,
        "player_name": player.name,
        "phase": state.phase,
        "hand": cards_to_labels(player.hand),
        "community_cards": cards_to_labels(state.community_cards),
        "pot": state.pot,
        "current_bet": state.current_bet,
        "to_call": max(0, state.current_bet - player.current_bet),
        "chips": player.chips,
        "player_current_bet": player.current_bet,
        "available_actions": get_available_actions(state) if is_turn else [],
        "min_raise": get_min_raise(state),
        "max_raise": get_max_raise(state) if is_turn else player.chips + player.current_bet,
        "recent_actions": [
            {"player_name": record.player_name, "action": record.action, "amount": record.amount}
            for record in state.action_history[-RECENT_ACTIONS:]
        ],
        "opponent_stats": history.opponent_tendencies(player_id, names) if history else {},
    }


def build_prompt(view: dict[str, Any]) -> str:
    board = " ".join(view["community_cards"]) or "None yet"
    recent = "\n".join(
        f"{item['player_name']}: {item['action']}" + (f" ${item['amount']}" if item.get("amount") else "")
        for item in view.get("recent_actions", [])
    ) or "None"
    stats = view.get("opponent_stats") or {}
    tendencies = "\n".join(
        f"- {name}: played {s['hands_played']}, won {s['hands_won']}, folds {s['fold_count']}, "
        f"all-ins {s['all_in_count']}, weak all-ins caught {s['bluff_caught']}"
        for name, s in stats.items()
    ) or "No history yet"
    available = view["available_actions"]

    return (
        f"You are {view['player_name']}, an AI playing Texas Hold'em poker. Make a strategic decision.\n\n"
        f"YOUR HAND: {' '.join(view['hand'])}\n"
        f"COMMUNITY CARDS: {board}\n"
        f"PHASE: {view['phase']}\n\n"
        "GAME STATE:\n"
        f"- Pot: ${view['pot']}\n"
        f"- Current bet: ${view['current_bet']}\n"
        f"- Amount to call: ${view['to_call']}\n"
        f"- Your chips: ${view['chips']}\n"
        f"- Your current bet this round: ${view['player_current_bet']}\n"
        f"- Minimum raise to: ${view['min_raise']}\n\n"
        f"RECENT ACTIONS:\n{recent}\n\n"
        f"OPPONENT TENDENCIES:\n{tendencies}\n\n"
        f"AVAILABLE ACTIONS: {', '.join(available)}\n\n"
        "Respond with ONLY a JSON object in this exact format (no markdown, no explanation outside JSON):\n"
        f'{{"action": "{available[0] if available else "fold"}", "amount": 0, "reasoning": "brief explanation"}}\n\n'
        "For raises, set amount to your total bet (not the raise increment).\n"
        "For fold/check/call, amount should be 0.\n\n"
        "Your decision:"
    )


def parse_decision(content: str) -> Decision:
    match = _JSON_OBJECT.search(content)
    if not match:
        raise ValueError("No JSON object found in completion.")

    parsed = json.loads(match.group(0))
    if not isinstance(parsed, dict):
        raise ValueError("Decision payload must be a JSON object.")

    action = str(parsed.get("action", "")).strip().lower().replace("_", "-")
    if not action:
        raise ValueError("Decision payload did not name an action.")

    amount = parsed.get("amount")
    if isinstance(amount, float) and amount.is_integer():
        amount = int(amount)
    if isinstance(amount, bool) or not isinstance(amount, int):
        amount = None

    reasoning = parsed.get("reasoning")
    return Decision(action=action, amount=amount, reasoning=str(reasoning) if reasoning else None)


def coerce_decision(state: GameState, decision: Decision | None) -> BetAction:
    """Turn an untrusted decision into a legal action for the seat to act."""
    player = state.current_player
    available = get_available_actions(state)
    if player is None or not available:
        raise ValueError("No player is waiting to act.")

    reasoning = decision.reasoning if decision else None
    if decision is None or decision.action not in BETTING_ACTIONS or decision.action not in available:
        return BetAction(player_id=player.id, action=safe_fallback(available), reasoning=reasoning)

    if decision.action == "raise":
        if decision.amount is None:
            return BetAction(player_id=player.id, action=safe_fallback(available), reasoning=reasoning)
        amount = max(get_min_raise(state), min(get_max_raise(state), decision.amount))
        return BetAction(player_id=player.id, action="raise", amount=amount, reasoning=reasoning)

    if decision.action == "all-in":
        return BetAction(player_id=player.id, action="all-in", amount=get_max_raise(state), reasoning=reasoning)

    if decision.action == "call":
        return BetAction(player_id=player.id, action="call", amount=get_call_amount(state), reasoning=reasoning)

    return BetAction(player_id=player.id, action=decision.action, reasoning=reasoning)  # type: ignore[arg-type]
