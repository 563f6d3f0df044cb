"""
Rule Engine - runs every rule of a rule set against the mailbox
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, Optional

from cull_gmail.applier import ActionApplier
from cull_gmail.errors import InvalidComputedDate, LabelNotFoundInMailbox, NoQueryStringCalculated
from cull_gmail.gmail_service import MailProvider
from cull_gmail.models import (
    DEFAULT_MAX_RESULTS,
    Action,
    ApplierConfig,
    RuleOutcome,
    RunSummary,
    SelectorConfig,
)
from cull_gmail.rule import Rule
from cull_gmail.rules import RuleSet
from cull_gmail.selector import MessageSelector


logger = logging.getLogger(__name__)

# Failures confined to a single rule; anything else ends the run
RULE_ERRORS = (LabelNotFoundInMailbox, NoQueryStringCalculated, InvalidComputedDate)


class RuleEngine:
    """Selects and culls messages for each label of a rule set, one rule at a time"""

    def __init__(
        self,
        provider: MailProvider,
        ruleset: RuleSet,
        label_map: Dict[str, str],
        execute: bool = False,
        skip_actions: Optional[Iterable[Action]] = None,
        enrich: bool = False,
        progress_callback: Optional[Callable] = None,
        today: Optional[datetime] = None
    ):
        self.provider = provider
        self.ruleset = ruleset
        self.label_map = label_map
        self.execute = execute
        self.skip_actions = set(skip_actions or [])
        self.enrich = enrich
        self.progress_callback = progress_callback
        self.today = today

        self.interrupted = False
        self._selector: Optional[MessageSelector] = None

    def interrupt(self) -> None:
        """Stop after the current request"""
        self.interrupted = True
        if self._selector is not None:
            self._selector.interrupted = True

    # === Main Entry Point ===

    async def run(self) -> RunSummary:
        summary = RunSummary(execute=self.execute)
        rules_by_label = self.ruleset.rules_by_label()
        labels = self.ruleset.labels()

        await self._report_progress("run_started", {
            "execute": self.execute,
            "labels": len(labels)
        })

        for label in labels:
            if self.interrupted:
                logger.warning("Run interrupted, remaining rules were not processed")
                break

            rule = rules_by_label.get(label)
            if rule is None:
                logger.warning(f"No rule found for label `{label}`")
                continue

            try:
                outcome = await self._run_rule(label, rule)
            except RULE_ERRORS as error:
                logger.error(f"Rule #{rule.id} on label `{label}` failed: {error}")
                outcome = RuleOutcome(label=label, rule_id=rule.id, action=rule.action(), error=str(error))

            if outcome is not None:
                summary.outcomes.append(outcome)

        await self._report_progress("run_completed", {
            "execute": self.execute,
            "rules_completed": len(summary.completed),
            "rules_failed": len(summary.failures),
            "messages_selected": summary.messages_selected
        })
        logger.info(
            f"Run complete: {len(summary.completed)} rule(s) processed, "
            f"{len(summary.failures)} failed, {summary.messages_selected} messages selected"
        )
        return summary

    # === Rule Processing ===

    async def _run_rule(self, label: str, rule: Rule) -> Optional[RuleOutcome]:
        """Process one label; returns None when the rule is passed over"""
        label_id = self.label_map.get(label)
        if label_id is None:
            raise LabelNotFoundInMailbox(label)

        action = rule.action()
        if action is None:
            logger.warning(f"Rule #{rule.id} has no valid action, skipping label `{label}`")
            return None

        if action in self.skip_actions:
            logger.info(f"Skipping rule #{rule.id} on `{label}`: {action} rules are disabled for this run")
            return None

        query = rule.eol_query(self.today)
        if query is None:
            raise NoQueryStringCalculated(rule.id)

        logger.info(f"Processing {rule}")
        logger.debug(f"Label `{label}` ({label_id}) query: {query}")

        selector = MessageSelector(
            self.provider,
            SelectorConfig(query=query, label_ids=[label_id], max_results=DEFAULT_MAX_RESULTS, pages=0),
            self.progress_callback
        )
        self._selector = selector
        try:
            summaries = await selector.select()
            if summaries and (self.enrich or not self.execute):
                await selector.enrich()
        finally:
            self._selector = None

        outcome = RuleOutcome(label=label, rule_id=rule.id, action=action, message_ids=selector.message_ids)
        if self.interrupted:
            logger.warning(f"Run interrupted before {action} on `{label}`")
            return outcome

        applier = ActionApplier(self.provider, ApplierConfig(action=action, execute=self.execute), self.progress_callback)
        stats = await applier.apply(summaries, [label_id])
        outcome.executed = stats['executed']
        return outcome

    # === Progress ===

    async def _report_progress(self, event: str, data: Dict) -> None:
        """Send progress update if callback is set"""
        if self.progress_callback:
            await self.progress_callback(event, data)
