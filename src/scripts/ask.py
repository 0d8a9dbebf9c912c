"""Ask the configured Cortex agent one question from the command line.

    python src/scripts/ask.py "What were last month's top products?"

Connection and agent settings come from the environment (see
``cortexrelay.config.Settings.from_env``).
"""

import argparse
import asyncio
import sys

from cortexrelay.config import Settings
from cortexrelay.logging_setup import configure_logging
from cortexrelay.models import TextContent
from cortexrelay.responder import QueryResponder
from cortexrelay.runner import Runner
from cortexrelay.streaming import Delta, StreamCompletion


def print_delta(record):
    if isinstance(record, Delta):
        for item in record.content:
            if isinstance(item, TextContent):
                print(item.text, end="", flush=True)
    elif isinstance(record, StreamCompletion):
        print(f"\n[stream complete: {record.total_deltas} deltas]\n")


async def main(question: str, timeout: float | None, check: bool) -> int:
    settings = Settings.from_env()
    runner = Runner.from_settings(settings)
    try:
        if check:
            status = await runner.executor.test_connection()
            print(status["message"])
            if not status["success"]:
                print(f"Error: {status['error']}")
                return 1
            print(f"Version: {status['version']}, user: {status['user']}, role: {status['role']}")
            return 0

        responder = QueryResponder(runner)
        for message in await responder.respond(question, on_delta=print_delta, timeout=timeout):
            print(message)
            print()
        return 0
    finally:
        await runner.provider.aclose()
        await runner.executor.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("question", nargs="?", default="")
    parser.add_argument("--timeout", type=float, default=None,
                        help="overall deadline in seconds")
    parser.add_argument("--check", action="store_true",
                        help="only test the Snowflake connection")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()

    configure_logging(args.log_level)
    sys.exit(asyncio.run(main(args.question, args.timeout, args.check)))
