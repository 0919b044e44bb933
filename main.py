"""Group chat — command-line launcher. Runs one turn and prints who spoke."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from ensemble.config import build_llm, load_settings
from ensemble.demo import create_demo_data
from ensemble.pipeline.orchestrator import TurnInputError, run_turn
from ensemble.storage import Storage

ROOT = Path(__file__).parent


def main():
    parser = argparse.ArgumentParser(description="Run one group chat turn")
    parser.add_argument("message", help="The user's message")
    parser.add_argument("--agents", default="maya,alex,zoe,finn",
                        help="Comma-separated active agent ids")
    parser.add_argument("--user", default="local", help="User id")
    parser.add_argument("--session", default="default", help="Session id")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ENSEMBLE_DATA_DIR or ./data)")
    parser.add_argument("--demo", action="store_true",
                        help="Seed the demo cast before running the turn")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = load_settings(ROOT / ".env")
    storage = Storage(args.data_dir or settings.data_dir)
    if args.demo:
        create_demo_data(storage, args.user)

    try:
        result = asyncio.run(run_turn(
            storage=storage,
            llm=build_llm(settings),
            user_id=args.user,
            session_id=args.session,
            user_message=args.message,
            agent_ids=[a for a in args.agents.split(",") if a],
            secondary_delay_ms=settings.secondary_delay_ms,
            history_limit=settings.history_limit,
        ))
    except TurnInputError as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(2)

    print(f"Queue: {result.queue.summary()}")
    for scored in result.queue.ranked:
        mood = scored.mood_state
        print(f"  {scored.agent.name:<12} score={scored.score:.2f} {mood.mood}({mood.intensity:.2f})")
    print()
    for r in result.responses:
        print(f"[+{r.delay_ms}ms] {r.agent_name}: {r.content}")


if __name__ == "__main__":
    main()
