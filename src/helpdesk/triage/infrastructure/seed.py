"""
Starter Knowledge Base
======================

Published articles inserted on startup when the KB is empty.
"""

from typing import List

from helpdesk.config import ArticleStatus
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.triage.application import IHelpdeskStorage
from helpdesk.triage.domain import Article, new_id

logger = get_logger(__name__)


DEFAULT_ARTICLES = (
    {
        "title": "How to update payment method",
        "body": (
            "Follow these steps to update your payment information: 1. Go to Account "
            "Settings 2. Click on Billing 3. Select Payment Methods 4. Add or edit your "
            "payment information 5. Save changes"
        ),
        "tags": ["billing", "payments"],
    },
    {
        "title": "Troubleshooting 500 errors",
        "body": (
            "If you encounter a 500 error: 1. Clear your browser cache 2. Try a different "
            "browser 3. Check our status page 4. If the issue persists, contact support "
            "with the error details"
        ),
        "tags": ["technical", "errors"],
    },
    {
        "title": "Tracking your shipment",
        "body": (
            "To track your package: 1. Check your email for tracking information 2. Visit "
            "our shipping partner's website 3. Enter your tracking number 4. Contact "
            "support if tracking shows no updates for 5+ days"
        ),
        "tags": ["shipping", "delivery"],
    },
)


async def seed_knowledge_base(storage: IHelpdeskStorage) -> List[Article]:
    """
    Insert the starter articles unless the KB already has content.

    Returns:
        The articles created; empty when the KB was already populated
    """
    if await storage.list_articles():
        return []

    created = []
    for data in DEFAULT_ARTICLES:
        article = Article(
            id=new_id(),
            title=data["title"],
            body=data["body"],
            tags=list(data["tags"]),
            status=ArticleStatus.PUBLISHED,
        )
        created.append(await storage.create_article(article))

    logger.info("Seeded knowledge base", extra={"articles": len(created)})
    return created
