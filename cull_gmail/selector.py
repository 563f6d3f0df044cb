"""
Message Selector - pages through a Gmail search and accumulates message ids
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from cull_gmail.errors import ExternalError, InvalidMaxResults, InvalidPagingMode
from cull_gmail.gmail_service import MailProvider
from cull_gmail.headers import Headers
from cull_gmail.models import MAX_RESULTS_LIMIT, MessageSummary, SelectorConfig


logger = logging.getLogger(__name__)

METADATA_HEADERS = ['Subject', 'Date']


class MessageSelector:
    """Handles message listing for a query and a set of label ids"""

    def __init__(
        self,
        provider: MailProvider,
        config: SelectorConfig,
        progress_callback: Optional[Callable] = None
    ):
        self.provider = provider
        self.config = config
        self.progress_callback = progress_callback

        # Results in order of discovery, kept if a later page fails
        self.summaries: List[MessageSummary] = []
        self.pages_fetched = 0
        self.interrupted = False

    @property
    def message_ids(self) -> List[str]:
        return [summary.id for summary in self.summaries]

    # === Validation ===

    def _validate(self) -> None:
        if isinstance(self.config.pages, bool) or not isinstance(self.config.pages, int) or self.config.pages < 0:
            raise InvalidPagingMode(self.config.pages)
        if not 1 <= self.config.max_results <= MAX_RESULTS_LIMIT:
            raise InvalidMaxResults(self.config.max_results)

    def _limit_reached(self) -> bool:
        return self.config.limit is not None and len(self.summaries) >= self.config.limit

    # === Main Entry Point ===

    async def select(self) -> List[MessageSummary]:
        """Fetch pages per the page cap; returns the accumulated summaries"""
        self._validate()

        self.summaries.clear()
        self.pages_fetched = 0
        page_token = None

        logger.debug(f"Selecting messages for query `{self.config.query}` and labels {self.config.label_ids}")

        while not self.interrupted:
            page = await self.provider.list_messages(
                self.config.query,
                self.config.label_ids,
                page_token,
                self.config.max_results
            )
            self.pages_fetched += 1

            messages = page.get('messages') or []
            if not messages and page.get('estimate') == 0:
                logger.warning("Search returned no messages.")

            for message in messages:
                if self._limit_reached():
                    break
                self.summaries.append(MessageSummary(message['id']))

            await self._report_progress("page_fetched", {
                "page": self.pages_fetched,
                "page_messages": len(messages),
                "total_messages": len(self.summaries)
            })

            if self._limit_reached():
                logger.info(f"Reached limit of {self.config.limit} messages, stopping selection")
                break

            page_token = page.get('next_page_token')
            if not page_token:
                break

            if self.config.pages and self.pages_fetched >= self.config.pages:
                break

        logger.info(f"Selected {len(self.summaries)} messages from {self.pages_fetched} page(s)")
        return self.summaries

    # === Enrichment ===

    async def enrich(self) -> List[MessageSummary]:
        """Fetch subject and date for each summary; failures leave the placeholders"""
        for index, summary in enumerate(self.summaries):
            if self.interrupted:
                break

            try:
                message = await self.provider.get_message_metadata(summary.id, METADATA_HEADERS)
            except ExternalError as error:
                logger.warning(f"Could not fetch headers for message {summary.id}: {error}")
                continue

            headers = Headers.from_message(message)
            summary.subject = headers.get_subject()
            summary.date = headers.get_date()

            await self._report_progress("message_enriched", {
                "message_id": summary.id,
                "subject": summary.subject_text,
                "processed_messages": index + 1,
                "total_messages": len(self.summaries)
            })

            # Yield control every 10 messages
            if (index + 1) % 10 == 0:
                await asyncio.sleep(0)

        return self.summaries

    # === Progress ===

    async def _report_progress(self, event: str, data: Dict) -> None:
        """Send progress update if callback is set"""
        if self.progress_callback:
            await self.progress_callback(event, data)
