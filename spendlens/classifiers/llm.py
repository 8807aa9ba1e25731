# spendlens/classifiers/llm.py
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from spendlens.ai import LLMClient, get_provider_from_env
from spendlens.classifiers.base import DEFAULT_CATEGORY, BaseClassifier
from spendlens.core.models import Transaction

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a financial assistant that classifies transactions into categories."


class LLMClassifier(BaseClassifier):
    """One chat completion per transaction, a bounded number in flight."""

    name = "ai"

    def __init__(
        self,
        categories: Dict[str, List[str]],
        client: Optional[LLMClient] = None,
        concurrency: int = 10,
        openai_api_key: Optional[str] = None,
        openai_model: Optional[str] = None,
    ):
        self.labels = list(categories or {})
        self.client = client
        self.concurrency = max(1, int(concurrency))
        self.openai_api_key = openai_api_key
        self.openai_model = openai_model

    def build_messages(self, tx: Transaction) -> List[dict]:
        date = tx.date.isoformat() if tx.date else ""
        prompt = (
            f"Categories: {', '.join(self.labels)}\n"
            "Assign the best category to this transaction. "
            "Reply with exactly one category from the list.\n"
            f"Date: {date}\n"
            f"Amount: {tx.amount}\n"
            f"Description: {tx.description}\n"
            f"Original Category: {tx.original_category}"
        )
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    def post_process(self, response: str) -> str:
        answer = (response or "").strip()
        return answer if answer in self.labels else DEFAULT_CATEGORY

    def _classify_one(self, tx: Transaction) -> str:
        try:
            reply = self.client.chat(self.build_messages(tx))
        except Exception as exc:
            logger.error("AI categorization error for %r: %s", tx.description, exc)
            return DEFAULT_CATEGORY
        return self.post_process(reply)

    def classify(self, transactions):
        if not transactions:
            return []
        if self.client is None:
            # raises ClassifierError when no provider is configured
            self.client = LLMClient(get_provider_from_env(self.openai_api_key, self.openai_model))
        logger.info(
            "Categorizing %d transactions using AI (%d concurrent requests)...",
            len(transactions),
            self.concurrency,
        )
        with ThreadPoolExecutor(max_workers=self.concurrency) as pool:
            return list(pool.map(self._classify_one, transactions))
