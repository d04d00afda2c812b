import argparse
import asyncio
import logging

from engine.cards import build_card_source
from engine.evaluator import build_evaluator
from engine.models import LobbyConfig

from .server import LobbyServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Poker lobby: matchmaking, tables and ratings")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=5000)
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--table-capacity", type=int, default=6)
    parser.add_argument("--starting-chips", type=int, default=500)
    parser.add_argument("--ranked-window", type=int, default=200, help="Max MMR gap from the group anchor")
    parser.add_argument("--k-factor", type=int, default=32)
    parser.add_argument("--season-days", type=int, default=30)
    parser.add_argument(
        "--season-check",
        type=int,
        default=3_600,
        help="Seconds between season rollover checks (0 disables)",
    )
    parser.add_argument(
        "--fold-on-disconnect",
        action="store_true",
        help="Fold a player's open seats when their socket drops",
    )
    parser.add_argument("--cards", choices=["demo", "deck"], default="demo")
    parser.add_argument(
        "--hand-evaluator",
        choices=["random", "ranked"],
        default="random",
        help="random picks a showdown winner by chance; ranked compares real hands",
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed for dealing and random showdowns")
    return parser


def main() -> None:
    args = build_parser().parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level))

    config = LobbyConfig(
        table_capacity=args.table_capacity,
        starting_chips=args.starting_chips,
        ranked_window=args.ranked_window,
        k_factor=args.k_factor,
        season_length_days=args.season_days,
        season_check_interval_s=args.season_check,
        fold_on_disconnect=args.fold_on_disconnect,
        cards=args.cards,
        hand_evaluator=args.hand_evaluator,
    )

    server = LobbyServer(
        config,
        card_source=build_card_source(config.cards, args.seed),
        evaluator=build_evaluator(config.hand_evaluator, args.seed),
    )
    asyncio.run(server.start(host=args.host, port=args.port))


if __name__ == "__main__":
    main()
