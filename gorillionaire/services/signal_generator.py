"""
LLM trading-signal generator.

For each tracked token the generator rewrites the question into a standalone
one, pulls context from the vector store, asks for a signal and parses it.
Only the most confident signal of a run is kept.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from gorillionaire.core.config import settings
from gorillionaire.core.logger import Logger
from gorillionaire.core.timezone import utc_now
from gorillionaire.clients.notifier import TelegramNotifier, telegram_notifier
from gorillionaire.clients.vector_store import Document, VectorStore, VectorStoreError, vector_store
from gorillionaire.providers.base import BaseProvider
from gorillionaire.providers.openai import openai_provider
from gorillionaire.services.realtime import SSEHub, sse_hub
from gorillionaire.services.signals import (
    SIGNAL_TOKENS,
    ParsedSignal,
    SignalService,
    format_signal_message,
    parse_signal_answer,
    signal_service,
)

logger = Logger("SignalGenerator")

RETRIEVAL_K = 4

BUY_QUESTION = (
    "Give me the best trading signal you can deduce from the context you have. Make it a BUY signal. "
    "Range from 1000 to 5000, always add two decimals. Like 3000.00. Min Value for Yaki is 1000 Unit. "
    "Make sure the signal is different from previous ones. Remember that both BUY and SELL signals are "
    "equally important for making money in trading. Base your signal on the actual market data and "
    "events in the context."
)
SELL_QUESTION = (
    "Give me the best trading signal you can deduce from the context you have. Make it a SELL signal. "
    "Make sure the signal is different from previous ones. Remember that both BUY and SELL signals are "
    "equally important for making money in trading. Base your signal on the actual market data and "
    "events in the context."
)

STANDALONE_PROMPT = (
    "Given a question, convert it into a standalone question about {symbol} token. "
    "Question: {question} Standalone question about {symbol}:"
)

ANSWER_PROMPT = """You are an AI Agent that gives accurate trading signals about {name} ({symbol}) token on the Monad Testnet.
Whenever a user asks you a question, you will evaluate EQUALLY the spike events, the transfer events, and the price data available in your context and respond with
BUY or SELL, followed by the symbol of the token followed by the suggested quantity (for BUY signals please comunicate the nominal value, with max 2 decimals,
for SELL signals please express the percentage of the tokens hold by the user that you suggest to sell) of that token, along with a Confidence Score, a measurement that goes
from 0 to 10, with two decimals, that represents how much you feel confident about the signal you gave.
These responses will have to reflect the exact market situation in which the user is operating and will have
to allow the user to maximize profits from their trades.
Provide a mix of BUY and SELL signals, don't always give the same signal.
Consider that we want the user to spend an average of 5 MON per signal and that 1 MON is approximately {mon_ratio} {symbol}.

context: {context}
question: {question}
answer:"""


@dataclass(frozen=True)
class TokenTemplate:
    symbol: str
    name: str
    mon_ratio: int


TEMPLATES = [
    TokenTemplate("CHOG", "Chog", 140),
    TokenTemplate("DAK", "Molandak", 8),
    TokenTemplate("YAKI", "Moyaki", 1600),
]

TOKEN_PATTERNS = {symbol: re.compile(rf"\b{symbol}\b") for symbol in SIGNAL_TOKENS}


class SignalGenerationError(Exception):
    pass


@dataclass
class SignalCandidate:
    symbol: str
    answer: str
    context: str
    parsed: ParsedSignal


def primary_token(text: str) -> Optional[str]:
    """Token mentioned most often as a whole word. Ties keep the earlier token."""
    best, best_count = None, 0
    for symbol, pattern in TOKEN_PATTERNS.items():
        count = len(pattern.findall(text or ""))
        if count > best_count:
            best, best_count = symbol, count
    return best


def filter_documents(docs: List[Document], symbol: str) -> List[Document]:
    matching = [doc for doc in docs if doc.page_content and primary_token(doc.page_content) == symbol]
    return matching or docs


def combine_documents(docs: List[Document]) -> str:
    return "\n\n".join(doc.page_content for doc in docs)


class SignalGenerator:
    def __init__(
        self,
        llm: BaseProvider = None,
        store: VectorStore = None,
        signals: SignalService = None,
        notifier: TelegramNotifier = None,
        hub: SSEHub = None,
    ):
        self.llm = llm or openai_provider
        self.store = store or vector_store
        self.signals = signals or signal_service
        self.notifier = notifier or telegram_notifier
        self.hub = hub or sse_hub

    async def _ask(self, prompt: str) -> str:
        result = await self.llm.call(prompt, temperature=settings.AI_TEMPERATURE)
        return (result.get("content") or "").strip()

    async def _retrieve(self, query: str, symbol: str) -> List[Document]:
        try:
            docs = await self.store.similarity_search(query, k=RETRIEVAL_K)
        except VectorStoreError as e:
            logger.warn(f"Retrieval for {symbol} failed, continuing without context: {e}")
            return []
        logger.debug(f"Retrieved {len(docs)} documents for {symbol}")
        return filter_documents(docs, symbol)

    async def run_template(self, template: TokenTemplate, question: str) -> Optional[SignalCandidate]:
        standalone = await self._ask(STANDALONE_PROMPT.format(symbol=template.symbol, question=question))
        docs = await self._retrieve(f"{standalone} about {template.symbol} token", template.symbol)
        context = combine_documents(docs)

        answer = await self._ask(ANSWER_PROMPT.format(
            name=template.name,
            symbol=template.symbol,
            mon_ratio=template.mon_ratio,
            context=context,
            question=question,
        ))
        if not answer:
            return None
        return SignalCandidate(template.symbol, answer, context, parse_signal_answer(answer))

    async def generate(self, question: str) -> Dict[str, Any]:
        """Run every template and keep the most confident signal."""
        candidates: List[SignalCandidate] = []
        for template in TEMPLATES:
            try:
                candidate = await self.run_template(template, question)
            except Exception as e:
                logger.error(f"Error generating signal for {template.symbol}", e)
                continue
            if candidate:
                candidates.append(candidate)

        if not candidates:
            raise SignalGenerationError("No results were generated from any template")

        best = max(candidates, key=lambda c: c.parsed.confidence or 0)
        saved = await self.signals.save_generated(best.symbol, best.parsed, best.answer, best.context)
        logger.info(
            f"📈 New {best.parsed.action or '?'} signal for {best.symbol} "
            f"(confidence {best.parsed.confidence})"
        )

        message = format_signal_message(
            best.symbol,
            best.parsed,
            utc_now().strftime("%Y-%m-%d %H:%M:%S UTC"),
            settings.SIGNALS_PAGE_URL,
        )
        await self.notifier.send(message)
        self.hub.publish("NEW_SIGNAL", saved)
        return saved

    async def generate_buy(self) -> Dict[str, Any]:
        return await self.generate(BUY_QUESTION)

    async def generate_sell(self) -> Dict[str, Any]:
        return await self.generate(SELL_QUESTION)


signal_generator = SignalGenerator()
