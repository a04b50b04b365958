from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Iterable, Sequence

SUITS = ("hearts", "diamonds", "clubs", "spades")
RANKS = ("2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K", "A")
RANK_VALUES = {rank: index + 2 for index, rank in enumerate(RANKS)}

SUIT_SYMBOLS = {"hearts": "♥", "diamonds": "♦", "clubs": "♣", "spades": "♠"}
_SUIT_CODES = {"h": "hearts", "d": "diamonds", "c": "clubs", "s": "spades"}


class DeckExhaustedError(RuntimeError):
    pass


@dataclass(frozen=True)
class Card:
    suit: str
    rank: str

    def __post_init__(self) -> None:
        if self.suit not in SUITS:
            raise ValueError(f"Invalid suit: {self.suit}")
        if self.rank not in RANKS:
            raise ValueError(f"Invalid rank: {self.rank}")

    @property
    def value(self) -> int:
        return RANK_VALUES[self.rank]

    @property
    def label(self) -> str:
        return f"{self.rank}{SUIT_SYMBOLS[self.suit]}"

    def __str__(self) -> str:
        return self.label


Deck = tuple[Card, ...]


def create_deck() -> Deck:
    return tuple(Card(suit, rank) for suit in SUITS for rank in RANKS)


def shuffle_deck(deck: Sequence[Card], rng: random.Random | None = None) -> Deck:
    """Return a uniformly permuted copy of ``deck``.

    ``random.Random.shuffle`` is a Fisher-Yates shuffle, so every ordering is
    equally likely for a given generator state.
    """
    cards = list(deck)
    (rng or random.Random()).shuffle(cards)
    return tuple(cards)


def deal_cards(deck: Sequence[Card], count: int) -> tuple[Deck, Deck]:
    if count < 0:
        raise ValueError("Cannot deal a negative number of cards")
    if count > len(deck):
        raise DeckExhaustedError(f"Cannot deal {count} cards from a deck of {len(deck)}")
    return tuple(deck[:count]), tuple(deck[count:])


def cards_to_labels(cards: Iterable[Card]) -> list[str]:
    return [card.label for card in cards]


def parse_card(code: str) -> Card:
    """Parse short codes such as ``"As"``, ``"Td"`` or ``"10h"``."""
    text = code.strip()
    if len(text) < 2:
        raise ValueError(f"Invalid card code: {code}")
    rank, suit_code = text[:-1].upper(), text[-1].lower()
    if rank == "T":
        rank = "10"
    if suit_code not in _SUIT_CODES:
        raise ValueError(f"Invalid suit: {suit_code}")
    return Card(_SUIT_CODES[suit_code], rank)


def parse_cards(codes: Iterable[str]) -> list[Card]:
    return [parse_card(code) for code in codes]
