from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal, Optional, Protocol

import httpx

logger = logging.getLogger(__name__)

GameType = Literal["solitaire", "sudoku", "memory", "pixel-hoops", "poker", "code-quest"]
GAME_TYPES: tuple[str, ...] = ("solitaire", "sudoku", "memory", "pixel-hoops", "poker", "code-quest")
FAMILY_MEMBERS: tuple[str, ...] = ("Dad", "Mom", "Jonas", "Bo", "Oliver", "Torvald")

BASE_POINTS = 100
MAX_BONUS = 100


class ScoreSubmissionError(RuntimeError):
    pass


@dataclass(frozen=True)
class NormalizedPoints:
    base: int
    bonus: int
    total: int


@dataclass(frozen=True)
class ScoreRecord:
    game: str
    player: str
    score: int
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    id: Optional[int] = None


def calculate_normalized_points(game: str, raw_score: int) -> NormalizedPoints:
    """Every game pays 100 base points plus up to 100 bonus points for performance."""
    if game == "solitaire":
        bonus = raw_score // 5
    elif game == "sudoku":
        bonus = raw_score // 35
    elif game == "memory":
        bonus = (raw_score - 100) // 35
    elif game == "pixel-hoops":
        bonus = raw_score // 2
    elif game == "poker":
        # raw score is chips won
        bonus = raw_score // 50
    else:
        bonus = 0

    bonus = max(0, min(bonus, MAX_BONUS))
    return NormalizedPoints(base=BASE_POINTS, bonus=bonus, total=BASE_POINTS + bonus)


def poker_score(final_chips: int, starting_chips: int) -> int:
    return max(0, final_chips - starting_chips)


class ScoreStore(Protocol):
    async def submit_score(self, game: str, player: str, score: int) -> ScoreRecord:
        ...

    async def top_scores(self, game: str, limit: int = 10) -> list[ScoreRecord]:
        ...


def _validate(game: str, player: str, score: int) -> None:
    if game not in GAME_TYPES:
        raise ScoreSubmissionError(f"Unknown game: {game}")
    if player not in FAMILY_MEMBERS:
        raise ScoreSubmissionError("Invalid player name")
    if isinstance(score, bool) or not isinstance(score, int):
        raise ScoreSubmissionError("Score must be an integer")


class InMemoryScoreStore:
    def __init__(self) -> None:
        self._records: list[ScoreRecord] = []
        self._lock = asyncio.Lock()

    async def submit_score(self, game: str, player: str, score: int) -> ScoreRecord:
        _validate(game, player, score)
        async with self._lock:
            record = ScoreRecord(game=game, player=player, score=score, id=len(self._records) + 1)
            self._records.append(record)
        return record

    async def top_scores(self, game: str, limit: int = 10) -> list[ScoreRecord]:
        async with self._lock:
            matching = [record for record in self._records if record.game == game]
        return sorted(matching, key=lambda record: record.score, reverse=True)[:limit]


class SupabaseScoreStore:
    """Scores table behind a hosted PostgREST endpoint."""

    def __init__(
        self,
        url: str,
        api_key: str,
        timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._http = httpx.AsyncClient(
            base_url=f"{url.rstrip('/')}/rest/v1",
            timeout=httpx.Timeout(timeout_seconds),
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def submit_score(self, game: str, player: str, score: int) -> ScoreRecord:
        _validate(game, player, score)
        try:
            response = await self._http.post(
                "/scores",
                json=[{"game": game, "player": player, "score": score}],
                headers={"Prefer": "return=representation"},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ScoreSubmissionError(f"Score submission failed: {exc}") from exc

        rows = response.json()
        row = rows[0] if isinstance(rows, list) and rows else {}
        return ScoreRecord(
            game=game,
            player=player,
            score=score,
            id=row.get("id"),
            created_at=row.get("created_at") or datetime.now(timezone.utc).isoformat(),
        )

    async def top_scores(self, game: str, limit: int = 10) -> list[ScoreRecord]:
        try:
            response = await self._http.get(
                "/scores",
                params={"select": "*", "game": f"eq.{game}", "order": "score.desc", "limit": str(limit)},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Leaderboard query for %s failed: %s", game, exc)
            return []

        return [
            ScoreRecord(
                game=row["game"],
                player=row["player"],
                score=row["score"],
                id=row.get("id"),
                created_at=row.get("created_at", ""),
            )
            for row in response.json()
        ]
