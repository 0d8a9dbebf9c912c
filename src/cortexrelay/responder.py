import logging

from cortexrelay.config import Settings
from cortexrelay.formatting import (
    format_reasoning,
    format_result,
    sanitize_query,
    split_message,
)
from cortexrelay.models import MultiMessageResult
from cortexrelay.runner import DeltaCallback, Runner

logger = logging.getLogger(__name__)

EMPTY_QUERY_MESSAGE = "I need a question to help you. Please ask me about your data."
ERROR_MESSAGE = (
    "I'm sorry, I encountered an error while processing your request. "
    "Please try again or rephrase your question."
)
CONTINUED_PREFIX = "**Continued...**\n\n"


class QueryResponder:
    """Turns a chat message into the reply messages to send back.

    The responder never raises: any failure while answering is logged
    and replaced by an apology message.

    Args:
        runner: Pipeline that answers the query.
        settings: Display limits. Defaults to the runner's settings.
    """

    def __init__(self, runner: Runner, settings: Settings | None = None):
        self.runner = runner
        self.settings = settings or runner.settings

    async def respond(
        self,
        query: str,
        on_delta: DeltaCallback | None = None,
        timeout: float | None = None,
    ) -> list[str]:
        """Answer *query*. The reasoning message, when present, comes first."""
        question = sanitize_query(query)
        if not question:
            return [EMPTY_QUERY_MESSAGE]

        try:
            result = await self.runner.run(question, on_delta=on_delta, timeout=timeout)
        except Exception as e:
            logger.error(f"Error processing query {question!r}: {e}")
            return [ERROR_MESSAGE]

        s = self.settings
        messages = []
        main = result
        if isinstance(result, MultiMessageResult):
            messages.append(format_reasoning(result.reasoning))
            main = result.main
        messages.append(format_result(
            main,
            row_limit=s.table_row_limit,
            inline_csv_limit=s.inline_csv_limit,
            export_dir=s.export_dir,
        ))

        replies = []
        for message in messages:
            for i, chunk in enumerate(split_message(message, s.message_limit)):
                replies.append(chunk if i == 0 else CONTINUED_PREFIX + chunk)
        return replies
