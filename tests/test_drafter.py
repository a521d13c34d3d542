"""
Template drafter tests
"""
import pytest

from helpdesk.triage.infrastructure.external import (
    ACKNOWLEDGEMENT, GENERIC_TOPIC, KB_CLOSING, MAX_CITATIONS, select_topic
)


class TestSelectTopic:

    @pytest.mark.parametrize("text, topic", [
        ("I want a refund", "billing"),
        ("Unexpected charge on my card", "billing"),
        ("Getting a 500 on checkout", "technical"),
        ("Cannot login", "technical"),
        ("Where is my package", "shipping"),
        ("Delivery address change", "shipping"),
        ("Just saying hi", "generic"),
    ])
    def test_topic_from_text(self, text, topic):
        assert select_topic(text).name == topic

    def test_billing_checked_first(self):
        assert select_topic("refund for the error").name == "billing"


class TestDraft:

    @pytest.mark.asyncio
    async def test_no_articles_gives_acknowledgement(self, provider):
        result = await provider.draft("I want a refund", [])

        assert result.draft_reply == ACKNOWLEDGEMENT
        assert result.citations == ()

    @pytest.mark.asyncio
    async def test_cites_on_topic_articles_in_order(self, provider, make_article):
        # Given: billing text, two billing articles around an off-topic one
        payment = make_article("How to update payment method", "Go to Account Settings")
        errors = make_article("Troubleshooting 500 errors", "Clear your browser cache")
        billing_faq = make_article("Billing FAQ", "Common questions")

        # When
        result = await provider.draft("I want a refund", [payment, errors, billing_faq])

        # Then
        assert result.citations == (payment.id, billing_faq.id)
        assert result.draft_reply.endswith(KB_CLOSING.strip())

    @pytest.mark.asyncio
    async def test_at_most_two_citations(self, provider, make_article):
        articles = [make_article(f"Billing topic {i}") for i in range(3)]

        result = await provider.draft("refund", articles)

        assert len(result.citations) == MAX_CITATIONS
        assert result.citations == tuple(a.id for a in articles[:2])

    @pytest.mark.asyncio
    async def test_body_keyword_makes_article_on_topic(self, provider, make_article):
        article = make_article("Money back", "How a refund is processed")

        result = await provider.draft("unexpected charge", [article])

        assert result.citations == (article.id,)

    @pytest.mark.asyncio
    async def test_no_on_topic_articles(self, provider, make_article):
        result = await provider.draft(
            "Where is my package", [make_article("Update payment method", "billing steps")]
        )

        assert result.citations == ()
        assert result.draft_reply
        assert KB_CLOSING.strip() not in result.draft_reply

    @pytest.mark.asyncio
    async def test_generic_topic_accepts_any_article(self, provider, make_article):
        articles = [make_article("Anything"), make_article("Something else")]

        result = await provider.draft("Just saying hi", articles)

        assert result.citations == tuple(a.id for a in articles)
        assert result.draft_reply.startswith(GENERIC_TOPIC.opening.strip()[:20])

    @pytest.mark.asyncio
    async def test_citations_subset_of_input(self, provider, make_article):
        articles = [
            make_article("Tracking your shipment", "check delivery status"),
            make_article("Shipping rates"),
            make_article("Troubleshooting 500 errors"),
        ]

        result = await provider.draft("package delivery late", articles)

        assert set(result.citations) <= {a.id for a in articles}
        assert result.draft_reply.strip() == result.draft_reply
