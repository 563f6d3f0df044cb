"""
Action Applier - trashes or deletes selected messages in batches
"""

import logging
from enum import Enum
from typing import Callable, Dict, List, Optional

from cull_gmail.gmail_service import MailProvider
from cull_gmail.models import Action, ApplierConfig, MessageSummary


logger = logging.getLogger(__name__)

TRASH_LABEL = 'TRASH'
BATCH_LIMIT = 1000


class ApplierState(Enum):
    IDLE = 'idle'
    PREPARED = 'prepared'
    EXECUTED = 'executed'
    SKIPPED = 'skipped'
    DONE = 'done'


class ActionApplier:
    """Applies the configured action to a list of message summaries"""

    def __init__(
        self,
        provider: MailProvider,
        config: ApplierConfig,
        progress_callback: Optional[Callable] = None
    ):
        self.provider = provider
        self.config = config
        self.progress_callback = progress_callback
        self.state = ApplierState.IDLE

    # === Main Entry Point ===

    async def apply(self, summaries: List[MessageSummary], label_ids: Optional[List[str]] = None) -> Dict:
        """Apply the action; with execute off only the intent is logged"""
        self.state = ApplierState.PREPARED
        label_ids = list(label_ids or [])
        ids = [summary.id for summary in summaries]
        action = self.config.action

        if not ids:
            logger.info("No messages selected, nothing to do")
            self.state = ApplierState.DONE
            return self._build_stats(0, 0, False)

        if not self.config.execute:
            logger.info(f"Dry run: {len(ids)} messages would be {action.outcome}")
            for summary in summaries:
                logger.info(f"Dry run: message with subject `{summary.subject_text}` would be {action.outcome}")
            self.state = ApplierState.SKIPPED
            await self._report_progress("action_skipped", {"action": str(action), "messages": len(ids)})
            self.state = ApplierState.DONE
            return self._build_stats(len(ids), 0, False)

        batches = 0
        for chunk in self._chunks(ids):
            if action is Action.DELETE:
                await self.provider.batch_delete(chunk)
            else:
                await self.provider.batch_modify(chunk, [TRASH_LABEL], label_ids)
            batches += 1
            await self._report_progress("batch_applied", {
                "action": str(action),
                "batch": batches,
                "messages": len(chunk)
            })

        self.state = ApplierState.EXECUTED
        for summary in summaries:
            logger.info(f"Message with subject `{summary.subject_text}` {action.outcome}")

        self.state = ApplierState.DONE
        return self._build_stats(len(ids), batches, True)

    @staticmethod
    def _chunks(ids: List[str]):
        for start in range(0, len(ids), BATCH_LIMIT):
            yield ids[start:start + BATCH_LIMIT]

    # === Progress ===

    async def _report_progress(self, event: str, data: Dict) -> None:
        """Send progress update if callback is set"""
        if self.progress_callback:
            await self.progress_callback(event, data)

    # === Results ===

    @staticmethod
    def _build_stats(messages: int, batches: int, executed: bool) -> Dict:
        """Build result statistics dict"""
        return {
            "messages": messages,
            "batches": batches,
            "executed": executed
        }
