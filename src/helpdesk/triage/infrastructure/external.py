"""
Triage LLM Providers
====================

Implementations of the application-layer ILLMProvider.

The stub provider is deterministic: keyword classification and templated
drafting, so triage outcomes are reproducible in tests and demos. Real
model-backed providers plug in through `get_llm_provider`.
"""

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple, Type

from helpdesk.config import TicketCategory
from helpdesk.core import ConfigurationException
from helpdesk.triage.application import ILLMProvider
from helpdesk.triage.domain import Article, ClassificationResult, DraftResult, ModelInfo


CATEGORY_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    TicketCategory.BILLING: (
        "refund", "invoice", "payment", "charge", "billing", "credit card", "subscription",
    ),
    TicketCategory.TECH: (
        "error", "bug", "crash", "500", "login", "password", "technical", "api", "website",
    ),
    TicketCategory.SHIPPING: (
        "delivery", "shipping", "package", "tracking", "shipment", "delayed", "lost",
    ),
}

NO_MATCH_CONFIDENCE = 0.5
BASE_CONFIDENCE = 0.6
PER_KEYWORD_CONFIDENCE = 0.1
MAX_CONFIDENCE = 0.95
MAX_CITATIONS = 2

ACKNOWLEDGEMENT = (
    "Thank you for contacting our support team. We've received your request and "
    "will look into it shortly. If you have any urgent concerns, please don't "
    "hesitate to reach out."
)
KB_CLOSING = (
    "\n\nFor more information, please refer to our knowledge base articles that "
    "I've included as references."
)


@dataclass(frozen=True)
class DraftTopic:
    """
    Reply template for one topic.

    `triggers` select the topic from the ticket text; an article is on-topic
    when its title contains one of `title_keywords` or its body one of
    `body_keywords`. An empty keyword set on both sides accepts every
    article.
    """
    name: str
    triggers: Tuple[str, ...]
    opening: str
    follow_up: str
    title_keywords: Tuple[str, ...] = ()
    body_keywords: Tuple[str, ...] = ()

    def matches_text(self, lower_text: str) -> bool:
        return any(trigger in lower_text for trigger in self.triggers)

    def matches_article(self, article: Article) -> bool:
        if not self.title_keywords and not self.body_keywords:
            return True
        title = article.title.lower()
        body = article.body.lower()
        return (
            any(k in title for k in self.title_keywords)
            or any(k in body for k in self.body_keywords)
        )


DRAFT_TOPICS: Tuple[DraftTopic, ...] = (
    DraftTopic(
        name="billing",
        triggers=("refund", "charge"),
        opening=(
            "Hello! I understand you're having a billing issue. I've reviewed your "
            "account and can help resolve this matter. "
        ),
        follow_up=(
            "I've processed the necessary changes to address your concern. You should "
            "see the updates reflected in your account within 3-5 business days."
        ),
        title_keywords=("payment", "billing"),
        body_keywords=("refund",),
    ),
    DraftTopic(
        name="technical",
        triggers=("error", "500", "login"),
        opening=(
            "I understand you're experiencing a technical issue. Let me help you "
            "resolve this problem. "
        ),
        follow_up=(
            "Please try the following troubleshooting steps: clear your browser cache, "
            "try a different browser, or check our status page. If the issue persists, "
            "our technical team will investigate further."
        ),
        title_keywords=("error", "troubleshooting"),
        body_keywords=("technical",),
    ),
    DraftTopic(
        name="shipping",
        triggers=("shipping", "package", "delivery"),
        opening=(
            "Thank you for reaching out about your shipment. I can help you track your "
            "package and provide updates on delivery status. "
        ),
        follow_up=(
            "I've checked your tracking information and will provide you with the most "
            "current status. If there are any delays, I'll ensure you receive regular "
            "updates."
        ),
        title_keywords=("shipping", "tracking"),
        body_keywords=("delivery",),
    ),
)

GENERIC_TOPIC = DraftTopic(
    name="generic",
    triggers=(),
    opening=(
        "Thank you for contacting our support team. I've reviewed your request and am "
        "ready to assist you with your inquiry. "
    ),
    follow_up=(
        "Please refer to our knowledge base articles below for additional information "
        "that may be helpful."
    ),
)


def select_topic(text: str) -> DraftTopic:
    """First topic whose triggers appear in `text`, else the generic one."""
    lower_text = text.lower()
    for topic in DRAFT_TOPICS:
        if topic.matches_text(lower_text):
            return topic
    return GENERIC_TOPIC


class StubLLMProvider(ILLMProvider):
    """Deterministic keyword-based classifier and template drafter."""

    provider_name = "stub"
    model_name = "deterministic-v1.0"
    prompt_version = "1.0"

    async def classify(self, text: str) -> ClassificationResult:
        """
        Classify ticket text by keyword counts.

        The category with strictly the most keyword hits wins. No hits, or a
        tie for the top count, yields `other` at 0.5 confidence. Otherwise
        confidence is 0.6 + 0.1 per hit, plus a length-based nudge of
        (len(text) % 20) / 100, capped at 0.95 and rounded to two places.
        """
        lower_text = text.lower()
        counts = {
            category: sum(1 for keyword in keywords if keyword in lower_text)
            for category, keywords in CATEGORY_KEYWORDS.items()
        }
        best = max(counts.values())
        winners = [category for category, count in counts.items() if count == best]

        if best == 0 or len(winners) > 1:
            return ClassificationResult(
                predicted_category=TicketCategory.OTHER,
                confidence=NO_MATCH_CONFIDENCE
            )

        confidence = min(BASE_CONFIDENCE + best * PER_KEYWORD_CONFIDENCE, MAX_CONFIDENCE)
        confidence = min(confidence + (len(text) % 20) / 100, MAX_CONFIDENCE)
        return ClassificationResult(
            predicted_category=winners[0],
            confidence=round(confidence, 2)
        )

    async def draft(self, text: str, articles: Sequence[Article]) -> DraftResult:
        """
        Draft a reply for the ticket text.

        Cites up to two on-topic articles in the order given. Without any
        articles a fixed acknowledgement is returned.
        """
        if not articles:
            return DraftResult(draft_reply=ACKNOWLEDGEMENT, citations=())

        topic = select_topic(text)
        on_topic: List[Article] = [a for a in articles if topic.matches_article(a)]
        citations = tuple(a.id for a in on_topic[:MAX_CITATIONS])

        reply = topic.opening
        if citations:
            reply += topic.follow_up + KB_CLOSING

        return DraftResult(draft_reply=reply.strip(), citations=citations)

    def get_model_info(self, latency_ms: int) -> ModelInfo:
        return ModelInfo(
            provider=self.provider_name,
            model=self.model_name,
            prompt_version=self.prompt_version,
            latency_ms=latency_ms
        )


PROVIDERS: Dict[str, Type[ILLMProvider]] = {
    StubLLMProvider.provider_name: StubLLMProvider,
}


def get_llm_provider(name: str) -> ILLMProvider:
    """
    Build the provider configured by name.

    Raises:
        ConfigurationException: If no provider is registered under `name`
    """
    try:
        provider_cls = PROVIDERS[name]
    except KeyError:
        raise ConfigurationException(
            f"Unknown LLM provider '{name}'",
            {"available": sorted(PROVIDERS)}
        )
    return provider_cls()
