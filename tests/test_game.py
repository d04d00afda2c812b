import random

import pytest

from engine.cards import DEMO_HOLE_POOL
from engine.evaluator import HandEvaluator, RandomHandEvaluator
from engine.game import ActionRejected
from engine.models import GameStatus, GameType, Round

from .helpers import (
    ForbiddenEvaluator,
    FixedEvaluator,
    add_users,
    auth_id,
    check_around,
    create_table,
    play,
)


class SplitEvaluator(HandEvaluator):
    def pick_winners(self, session, contenders):
        return list(contenders)


def _reject(table, game_id, seat, action, amount=None, user_id=None):
    with pytest.raises(ActionRejected) as excinfo:
        table.apply_action(game_id, user_id or auth_id(seat), action, amount)
    return excinfo.value.code


def test_deal_gives_two_cards_to_each_seat():
    store, _, session = create_table(players=4)
    stored = store.get_game(session.id)
    for player in stored.players:
        assert len(player.cards) == 2
        assert all(card in DEMO_HOLE_POOL for card in player.cards)
    assert stored.round == Round.PREFLOP
    assert stored.community_cards == []


def test_deal_refuses_completed_game():
    store, table, session = create_table()
    play(table, session.id, [(0, "fold", None)])
    before = store.get_game(session.id).to_payload()

    with pytest.raises(RuntimeError, match="not in progress"):
        table.deal(session.id)
    assert store.get_game(session.id).to_payload() == before


def test_bet_moves_chips_into_pot_and_passes_turn():
    store, table, session = create_table()
    outcome = table.apply_action(session.id, auth_id(0), "bet", 50)

    assert not outcome.ended
    stored = store.get_game(session.id)
    bettor = stored.players[0]
    assert bettor.chips == 450
    assert bettor.current_bet == 50
    assert bettor.total_bet == 50
    assert bettor.has_acted
    assert stored.pot == 50
    assert stored.current_turn == 1


def test_consecutive_bets_accumulate_current_bet():
    store, table, session = create_table(players=3)
    play(table, session.id, [(0, "bet", 20), (1, "check", None), (2, "bet", 10)])
    stored = store.get_game(session.id)
    assert stored.round == Round.FLOP
    assert [player.total_bet for player in stored.players] == [20, 0, 10]
    assert stored.pot == 30


@pytest.mark.parametrize("amount", [None, 0, -5, 501, True, 12.5, "50"])
def test_invalid_bet_amounts_are_rejected_without_changes(amount):
    store, table, session = create_table()
    before = store.get_game(session.id).to_payload()
    assert _reject(table, session.id, 0, "bet", amount) == "INVALID_BET"
    assert store.get_game(session.id).to_payload() == before


def test_all_in_bet_is_allowed():
    store, table, session = create_table()
    table.apply_action(session.id, auth_id(0), "bet", 500)
    assert store.get_game(session.id).players[0].chips == 0


def test_rejection_codes():
    store, table, session = create_table()
    before = store.get_game(session.id).to_payload()

    assert _reject(table, "missing-game", 0, "check") == "GAME_NOT_FOUND"
    assert _reject(table, session.id, 0, "check", user_id="stranger") == "NOT_SEATED"
    assert _reject(table, session.id, 1, "check") == "OUT_OF_TURN"
    assert _reject(table, session.id, 0, "raise") == "INVALID_ACTION"

    assert store.get_game(session.id).to_payload() == before


def test_round_advances_once_every_live_seat_acted():
    store, table, session = create_table(players=3)
    play(table, session.id, [(0, "check", None), (1, "bet", 40)])
    assert store.get_game(session.id).round == Round.PREFLOP

    outcome = table.apply_action(session.id, auth_id(2), "check")
    stored = outcome.session
    assert stored.round == Round.FLOP
    assert stored.community_cards == ["As", "Kh", "Qd"]
    assert stored.current_turn == 0
    assert all(not player.has_acted for player in stored.players)
    assert all(player.current_bet == 0 for player in stored.players)
    assert stored.players[1].total_bet == 40


def test_turn_skips_folded_seats():
    store, table, session = create_table(players=3)
    play(table, session.id, [(0, "check", None), (1, "fold", None), (2, "check", None)])
    stored = store.get_game(session.id)
    assert stored.round == Round.FLOP
    assert stored.current_turn == 0

    table.apply_action(session.id, auth_id(0), "check")
    assert store.get_game(session.id).current_turn == 2
    assert _reject(table, session.id, 1, "check") == "OUT_OF_TURN"


def test_new_round_starts_at_first_unfolded_seat():
    store, table, session = create_table(players=3)
    play(table, session.id, [(0, "fold", None), (1, "check", None), (2, "check", None)])
    stored = store.get_game(session.id)
    assert stored.round == Round.FLOP
    assert stored.current_turn == 1


def test_everyone_folding_ends_game_without_showdown():
    store, table, session = create_table(players=3, evaluator=ForbiddenEvaluator())
    play(table, session.id, [(0, "bet", 100), (1, "bet", 20), (2, "fold", None)])
    outcome = table.apply_action(session.id, auth_id(0), "fold")

    assert outcome.ended
    finished = store.get_game(session.id)
    assert finished.status == GameStatus.COMPLETED
    assert finished.winners == [auth_id(1)]
    assert finished.pot == 120
    assert [player.chips for player in finished.players] == [400, 600, 500]
    assert finished.completed_at is not None


def test_full_hand_reaches_showdown():
    evaluator = FixedEvaluator(index=1)
    store, table, session = create_table(players=2, evaluator=evaluator)
    table.apply_action(session.id, auth_id(0), "bet", 30)
    table.apply_action(session.id, auth_id(1), "bet", 30)

    for expected in (Round.TURN, Round.RIVER):
        outcome = check_around(table, session.id)
        assert outcome.session.round == expected
    outcome = check_around(table, session.id)

    assert outcome.ended
    assert evaluator.calls == 1
    finished = store.get_game(session.id)
    assert finished.round == Round.SHOWDOWN
    assert finished.community_cards == ["As", "Kh", "Qd", "Jc", "Ts"]
    assert finished.winners == [auth_id(1)]
    assert [player.chips for player in finished.players] == [470, 530]


def test_split_pot_gives_odd_chip_to_lowest_position():
    store, table, session = create_table(players=2, evaluator=SplitEvaluator())
    play(table, session.id, [(0, "bet", 51), (1, "bet", 50)])
    for _ in range(3):
        check_around(table, session.id)

    finished = store.get_game(session.id)
    assert finished.status == GameStatus.COMPLETED
    assert finished.winners == [auth_id(0), auth_id(1)]
    assert finished.pot == 101
    assert [player.chips for player in finished.players] == [500, 500]


def test_pot_always_equals_total_contributions():
    store, table, session = create_table(players=4)
    play(
        table,
        session.id,
        [(0, "bet", 25), (1, "check", None), (2, "bet", 60), (3, "fold", None)],
    )
    play(table, session.id, [(0, "bet", 5), (1, "bet", 70), (2, "check", None)])
    stored = store.get_game(session.id)
    assert stored.pot == sum(player.total_bet for player in stored.players) == 160
    assert sum(player.chips for player in stored.players) + stored.pot == 2000


def test_actions_after_completion_are_rejected():
    store, table, session = create_table()
    play(table, session.id, [(0, "check", None), (1, "fold", None)])
    assert store.get_game(session.id).status == GameStatus.COMPLETED
    assert _reject(table, session.id, 0, "check") == "GAME_NOT_ACTIVE"


def test_ranked_game_settles_ratings_and_counters():
    store, table, session = create_table(game_type=GameType.RANKED, scores=[800, 800])
    outcome = play(table, session.id, [(0, "check", None), (1, "fold", None)])

    assert outcome.ended
    assert outcome.session.rating_deltas == {auth_id(0): 16, auth_id(1): -16}
    assert outcome.session.to_payload()["eloChanges"] == {auth_id(0): 16, auth_id(1): -16}

    winner = store.get_user_by_auth_id(auth_id(0))
    loser = store.get_user_by_auth_id(auth_id(1))
    assert (winner.score, winner.tier, winner.peak_tier) == (816, "Gold III", "Gold III")
    assert (loser.score, loser.tier, loser.peak_tier) == (784, "Gold II", "Gold III")
    assert (winner.total_games, winner.total_wins, winner.season_wins) == (1, 1, 1)
    assert (loser.total_games, loser.total_wins, loser.season_wins) == (1, 0, 0)
    assert winner.placement_matches == loser.placement_matches == 1


def test_ranked_showdown_with_random_evaluator_crowns_one_winner():
    evaluator = RandomHandEvaluator(random.Random(2024))
    store, table, session = create_table(game_type=GameType.RANKED, players=3, evaluator=evaluator)
    play(table, session.id, [(0, "bet", 10), (1, "bet", 10), (2, "bet", 10)])
    for _ in range(3):
        outcome = check_around(table, session.id)

    assert outcome.ended
    assert outcome.session.round == Round.SHOWDOWN
    assert len(outcome.session.winners) == 1
    users = [store.get_user_by_auth_id(auth_id(idx)) for idx in range(3)]
    assert [user.total_games for user in users] == [1, 1, 1]
    assert sorted(user.total_wins for user in users) == [0, 0, 1]
    winner = next(user for user in users if user.total_wins == 1)
    assert winner.auth_id == outcome.session.winners[0]
    assert outcome.session.rating_deltas[winner.auth_id] > 0


def test_placement_matches_stop_counting_after_limit():
    store, table, session = create_table(game_type=GameType.RANKED)
    user = store.get_user_by_auth_id(auth_id(0))
    store.update_user(user.id, placement_matches=10)
    play(table, session.id, [(0, "check", None), (1, "fold", None)])
    assert store.get_user_by_auth_id(auth_id(0)).placement_matches == 10
    assert store.get_user_by_auth_id(auth_id(1)).placement_matches == 1


def test_casual_game_leaves_user_records_alone():
    store, table, session = create_table(game_type=GameType.CASUAL)
    before = [store.get_user_by_auth_id(auth_id(idx)) for idx in range(2)]
    outcome = play(table, session.id, [(0, "check", None), (1, "fold", None)])

    assert outcome.ended
    assert outcome.session.rating_deltas == {}
    assert outcome.session.winners == [auth_id(0)]
    assert [store.get_user_by_auth_id(auth_id(idx)) for idx in range(2)] == before


def test_failed_settlement_leaves_store_untouched(monkeypatch):
    store, table, session = create_table(game_type=GameType.RANKED)
    table.apply_action(session.id, auth_id(0), "bet", 40)
    before_game = store.get_game(session.id).to_payload()
    before_users = [store.get_user_by_auth_id(auth_id(idx)) for idx in range(2)]

    def explode(*args, **kwargs):
        raise RuntimeError("rating service down")

    monkeypatch.setattr(table.rating, "calculate_deltas", explode)
    with pytest.raises(RuntimeError, match="rating service down"):
        table.apply_action(session.id, auth_id(1), "fold")

    assert store.get_game(session.id).to_payload() == before_game
    assert [store.get_user_by_auth_id(auth_id(idx)) for idx in range(2)] == before_users


def test_missing_user_record_uses_fallback_score():
    store, table, session = create_table(game_type=GameType.RANKED, with_users=False)
    add_users(store, [1000])
    outcome = play(table, session.id, [(0, "check", None), (1, "fold", None)])

    assert outcome.session.rating_deltas == {auth_id(0): 16, auth_id(1): -16}
    assert store.get_user_by_auth_id(auth_id(0)).score == 1016
    assert store.get_user_by_auth_id(auth_id(1)) is None


def test_leave_out_of_turn_folds_seat_without_moving_turn():
    store, table, session = create_table(players=3)
    outcome = table.leave(session.id, auth_id(2))
    assert outcome is not None and not outcome.ended
    leaver = store.get_game(session.id).players[2]
    assert leaver.is_folded and not leaver.is_active
    assert store.get_game(session.id).current_turn == 0


def test_leave_on_turn_passes_turn():
    store, table, session = create_table(players=3)
    table.leave(session.id, auth_id(0))
    assert store.get_game(session.id).current_turn == 1


def test_leave_can_complete_the_round():
    store, table, session = create_table(players=3)
    play(table, session.id, [(0, "check", None), (1, "check", None)])
    outcome = table.leave(session.id, auth_id(2))
    assert outcome.session.round == Round.FLOP
    assert outcome.session.current_turn == 0


def test_leave_heads_up_ends_game():
    store, table, session = create_table(game_type=GameType.RANKED)
    outcome = table.leave(session.id, auth_id(0))
    assert outcome.ended
    assert outcome.session.winners == [auth_id(1)]
    assert outcome.session.rating_deltas[auth_id(1)] > 0


def test_leave_ignores_unknown_or_finished_games():
    store, table, session = create_table()
    assert table.leave("missing-game", auth_id(0)) is None
    assert table.leave(session.id, "stranger") is None
    table.leave(session.id, auth_id(0))
    assert store.get_game(session.id).status == GameStatus.COMPLETED
    assert table.leave(session.id, auth_id(1)) is None


def test_player_games_lists_active_sessions_only():
    store, table, session = create_table()
    assert [game.id for game in table.player_games(auth_id(0))] == [session.id]
    assert table.player_games("stranger") == []
    play(table, session.id, [(0, "fold", None)])
    assert table.player_games(auth_id(0)) == []
