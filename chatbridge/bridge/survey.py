"""Post-chat survey lifecycle."""

import html
import logging
from typing import Any

from chatbridge.channels.api_client import ChatApiClient
from chatbridge.channels.base import BotPlatform
from chatbridge.core.config.models import BridgeConfig
from chatbridge.model.session import Survey
from chatbridge.stores.state import SURVEY, PersistentStateStore

logger = logging.getLogger(__name__)

# Window message posted by the survey page once it has been answered
SURVEY_ANSWERED_MESSAGE = "inbenta.survey.successful_answer"


class SurveyManager:
    """Shows the configured survey after a chat and tracks whether it was answered.

    A shown survey stays pending in the state store, and is shown again on
    the next start, until the survey page reports an answer.
    """

    def __init__(
        self,
        config: BridgeConfig,
        bot: BotPlatform,
        api: ChatApiClient | None,
        store: PersistentStateStore,
    ):
        self.config = config
        self.bot = bot
        self.api = api
        self.store = store

    async def show_pending(self) -> bool:
        """Re-show a survey left unanswered by a previous page load."""
        survey = Survey.from_dict(await self.store.get_item(SURVEY))
        if survey is None or not survey.pending or not survey.content:
            return False
        self.bot.show_custom_conversation_window({"content": survey.content})
        return True

    async def show(self, ticket_id: str | None) -> Survey | None:
        """Show the survey for a finished chat, if surveys are configured."""
        if self.config.surveys is None:
            return None

        url = await self._survey_url(ticket_id)
        if not url:
            logger.warning(f"No survey URL available for ticket {ticket_id}")
            return None

        survey = Survey(
            pending=True,
            content=f'<iframe name="chat-survey" src="{html.escape(url, quote=True)}"></iframe>',
        )
        await self.store.set_item(SURVEY, survey.to_dict())
        self.bot.show_custom_conversation_window({"content": survey.content})
        return survey

    async def _survey_url(self, ticket_id: str | None) -> str | None:
        surveys = self.config.surveys
        if surveys is None:
            return None
        if surveys.url:
            return surveys.url
        if self.api is None:
            return None
        res = await self.api.request(
            f"/surveys/{surveys.id}", "GET", {"sourceType": "ticket", "sourceId": ticket_id}
        )
        return (res.get("survey") or {}).get("url")

    async def on_window_message(self, data: dict[str, Any]) -> bool:
        """Handle a cross-window message. Returns True if it answered the survey."""
        if data.get("message") != SURVEY_ANSWERED_MESSAGE:
            return False

        await self.store.set_item(SURVEY, Survey(pending=False).to_dict())
        self.bot.hide_custom_conversation_window()
        if not self.config.transcript_download:
            self.bot.hide_conversation_window()
        logger.info("Survey answered")
        return True
