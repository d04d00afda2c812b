from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional

from .cards import CardSource, build_card_source
from .evaluator import HandEvaluator, build_evaluator
from .models import (
    ROUND_ORDER,
    ActionType,
    GameSession,
    GameStatus,
    GameType,
    LobbyConfig,
    Player,
    Round,
    User,
    utcnow,
)
from .rating import FALLBACK_SCORE, RatingCalculator, higher_tier, tier_for_score
from .store import MemoryStore

LOGGER = logging.getLogger("poker_lobby.engine")

# GameTable owns the betting rules for every session in the store. It never
# touches sockets; the lobby server broadcasts whatever comes back.


class ActionRejected(ValueError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass
class ActionOutcome:
    session: GameSession
    ended: bool = False


class GameTable:
    """Simplified multi-round poker for in-memory game sessions."""

    def __init__(
        self,
        store: MemoryStore,
        config: Optional[LobbyConfig] = None,
        card_source: Optional[CardSource] = None,
        evaluator: Optional[HandEvaluator] = None,
        rating: Optional[RatingCalculator] = None,
    ) -> None:
        self.store = store
        self.config = config or LobbyConfig()
        self.card_source = card_source or build_card_source(self.config.cards)
        self.evaluator = evaluator or build_evaluator(self.config.hand_evaluator)
        self.rating = rating or RatingCalculator(self.config.k_factor)

    # Dealing ---------------------------------------------------------

    def deal(self, game_id: str) -> GameSession:
        session = self.store.get_game(game_id)
        if session is None:
            raise RuntimeError(f"Game {game_id} not found")
        if session.status != GameStatus.IN_PROGRESS:
            raise RuntimeError(f"Game {game_id} is not in progress")
        working = session.copy()
        for player in working.players:
            if player.is_active:
                player.cards = self.card_source.hole_cards(working.id, 2)
        return self.store.save_game(working)

    # Action handling -------------------------------------------------

    def apply_action(
        self,
        game_id: str,
        user_id: str,
        action: str,
        amount: Optional[int] = None,
    ) -> ActionOutcome:
        session = self._active_session(game_id)
        seat_idx = session.seat_of(user_id)
        if seat_idx is None:
            raise ActionRejected("NOT_SEATED", "Player not in game")
        if session.current_turn != seat_idx:
            raise ActionRejected("OUT_OF_TURN", "Not your turn")
        try:
            action_type = ActionType(action)
        except ValueError:
            raise ActionRejected("INVALID_ACTION", "Invalid action") from None

        working = session.copy()
        player = working.players[seat_idx]

        if action_type == ActionType.FOLD:
            player.is_folded = True
            player.has_acted = True
        elif action_type == ActionType.CHECK:
            player.has_acted = True
        else:
            if not self._valid_bet(amount, player):
                raise ActionRejected("INVALID_BET", "Invalid bet amount")
            assert amount is not None
            player.chips -= amount
            player.current_bet += amount
            player.total_bet += amount
            working.pot += amount
            player.has_acted = True

        LOGGER.debug(
            "Game %s seat=%s action=%s amount=%s pot=%s",
            working.id,
            seat_idx,
            action_type.value,
            amount,
            working.pot,
        )
        working.current_turn = self._next_turn(working)
        return self._progress(working)

    def leave(self, game_id: str, user_id: str) -> Optional[ActionOutcome]:
        session = self.store.get_game(game_id)
        if session is None or session.status != GameStatus.IN_PROGRESS:
            return None
        seat_idx = session.seat_of(user_id)
        if seat_idx is None:
            return None

        working = session.copy()
        player = working.players[seat_idx]
        player.is_folded = True
        player.is_active = False
        LOGGER.info("Player %s left game %s", user_id, game_id)
        if working.current_turn == seat_idx:
            working.current_turn = self._next_turn(working)
        return self._progress(working)

    def player_games(self, user_id: str) -> List[GameSession]:
        return [game for game in self.store.active_games() if game.seat_of(user_id) is not None]

    def _active_session(self, game_id: str) -> GameSession:
        session = self.store.get_game(game_id)
        if session is None:
            raise ActionRejected("GAME_NOT_FOUND", "Game not found")
        if session.status != GameStatus.IN_PROGRESS:
            raise ActionRejected("GAME_NOT_ACTIVE", "Game is not in progress")
        return session

    def _valid_bet(self, amount: object, player: Player) -> bool:
        if isinstance(amount, bool) or not isinstance(amount, int):
            return False
        return 0 < amount <= player.chips

    # Turn and round progression --------------------------------------

    def _next_turn(self, session: GameSession) -> int:
        count = len(session.players)
        current = session.current_turn
        nxt = (current + 1) % count
        while session.players[nxt].is_folded and nxt != current:
            nxt = (nxt + 1) % count
        return nxt

    def _first_live_seat(self, session: GameSession) -> int:
        for idx, player in enumerate(session.players):
            if not player.is_folded:
                return idx
        return 0

    def is_round_complete(self, session: GameSession) -> bool:
        live = session.live_players()
        return len(live) <= 1 or all(player.has_acted for player in live)

    def is_game_complete(self, session: GameSession) -> bool:
        return len(session.live_players()) <= 1 or session.round == Round.SHOWDOWN

    def _progress(self, session: GameSession) -> ActionOutcome:
        if len(session.live_players()) <= 1:
            return ActionOutcome(session=self._finish(session), ended=True)
        if self.is_round_complete(session):
            self._advance_round(session)
        if self.is_game_complete(session):
            return ActionOutcome(session=self._finish(session), ended=True)
        return ActionOutcome(session=self.store.save_game(session), ended=False)

    def _advance_round(self, session: GameSession) -> None:
        idx = ROUND_ORDER.index(session.round)
        if idx >= len(ROUND_ORDER) - 1:
            return
        session.round = ROUND_ORDER[idx + 1]
        for player in session.players:
            player.reset_for_round()
        session.current_turn = self._first_live_seat(session)
        session.community_cards.extend(self.card_source.community_cards(session.id, session.round))
        LOGGER.debug("Game %s advanced to %s", session.id, session.round.value)

    # Settlement ------------------------------------------------------

    def _pick_winners(self, session: GameSession) -> List[Player]:
        live = session.live_players()
        if len(live) <= 1:
            return live
        # Showdown with several live seats: the evaluator decides.
        return self.evaluator.pick_winners(session, live)

    def _finish(self, session: GameSession) -> GameSession:
        winners = self._pick_winners(session)
        winner_ids = [player.user_id for player in winners]
        self._award_pot(session, winners)

        deltas: Dict[str, int] = {}
        updated_users: List[User] = []
        if session.game_type == GameType.RANKED:
            deltas = self.rating.calculate_deltas(session.players, self._score_of)
            updated_users = self._settle_users(session, winner_ids, deltas)

        finished = replace(
            session,
            status=GameStatus.COMPLETED,
            winners=winner_ids,
            rating_deltas=deltas,
            completed_at=utcnow(),
        )
        self.store.commit_settlement(finished, updated_users)
        self.card_source.release(session.id)
        LOGGER.info(
            "Game %s completed (%s); winners=%s deltas=%s",
            session.id,
            session.game_type.value,
            winner_ids,
            deltas,
        )
        return finished

    def _award_pot(self, session: GameSession, winners: List[Player]) -> None:
        # The pot total stays on the session as the final figure; chips move.
        if not winners or session.pot <= 0:
            return
        share, remainder = divmod(session.pot, len(winners))
        for idx, player in enumerate(sorted(winners, key=lambda p: p.position)):
            player.chips += share + (1 if idx < remainder else 0)

    def _score_of(self, user_id: str) -> int:
        user = self.store.get_user_by_auth_id(user_id)
        return user.score if user else FALLBACK_SCORE

    def _settle_users(self, session: GameSession, winner_ids: List[str], deltas: Dict[str, int]) -> List[User]:
        updated: List[User] = []
        for player in session.players:
            user = self.store.get_user_by_auth_id(player.user_id)
            if user is None:
                LOGGER.warning("No user record for %s in game %s; skipping", player.user_id, session.id)
                continue
            won = player.user_id in winner_ids
            score = user.score + deltas.get(player.user_id, 0)
            tier = tier_for_score(score)
            placement = user.placement_matches
            if placement < self.config.placement_games:
                placement += 1
            updated.append(
                replace(
                    user,
                    score=score,
                    tier=tier,
                    peak_tier=higher_tier(user.peak_tier, tier),
                    total_games=user.total_games + 1,
                    total_wins=user.total_wins + (1 if won else 0),
                    season_wins=user.season_wins + (1 if won else 0),
                    placement_matches=placement,
                )
            )
        return updated
