"""Entity extraction agent for Phase 1: Ground Truth extraction."""

import logging

from pydantic import BaseModel

from app.agents.base_agent import BaseAgent
from app.integrations.page_signals import PageSignals
from app.schemas.audit import EntityProfile

logger = logging.getLogger(__name__)

MAX_CONTENT_CHARS = 15000


class EntityExtractionInput(BaseModel):
    """Input for the entity extraction agent."""

    brand_name: str
    url: str
    content: str
    page_signals: PageSignals | None = None


class EntityExtractionAgent(BaseAgent[EntityExtractionInput, EntityProfile]):
    """Agent that extracts a brand's self-declared identity from its website.

    The output is the "ground truth" the judge later compares against what
    AI answer engines say about the brand.
    """

    model_tier = "standard"
    settings_model_attr = "extraction_model"
    temperature = 0.3  # Factual extraction

    @property
    def system_prompt(self) -> str:
        return """You are a brand analyst preparing ground truth for an AI visibility audit.
Your task is to extract what a company says about itself on its own website.

Guidelines:
- Only use information the website explicitly states or clearly implies
- Never add facts from your own knowledge of the brand
- When a field is not covered by the content, answer "Not specified"
- Key facts must be specific and verifiable (numbers, names, dates, features)
- Technical and content signals describe the page itself, not the company
"""

    @property
    def output_type(self) -> type[EntityProfile]:
        return EntityProfile

    def _build_prompt(self, input_data: EntityExtractionInput) -> str:
        logger.info(
            "Building extraction prompt",
            extra={
                "brand_name": input_data.brand_name,
                "url": input_data.url,
                "content_length": len(input_data.content),
                "has_page_signals": input_data.page_signals is not None,
            },
        )
        content = input_data.content
        if len(content) > MAX_CONTENT_CHARS:
            content = content[:MAX_CONTENT_CHARS] + "\n\n[Content truncated...]"

        prompt = f"""Analyze this website content and extract the brand's self-declared identity.

Brand Name: {input_data.brand_name}
URL: {input_data.url}

## Website Content

{content}

"""
        signals = input_data.page_signals
        if signals is not None:
            schema_types = ", ".join(signals.schema_types) or "None"
            prompt += f"""## Observed Page Markup

These were detected directly in the page HTML. Treat them as reliable.
- Schema types: {schema_types}
- Table tags: {_yes_no(signals.has_table_tags)}
- FAQ blocks: {_yes_no(signals.has_faq_markup)}
- Ordered/unordered lists: {_yes_no(signals.has_lists)}
- Author markup: {_yes_no(signals.has_author_markup)}
- Date markup: {_yes_no(signals.has_date_markup)}
- Outbound citation links: {signals.external_link_count}

"""

        prompt += """## Instructions

Focus on:
1. What they say they do (core offering)
2. Who they serve (target audience)
3. What makes them different (unique value proposition)
4. Their pricing approach
5. Key factual claims that can be verified
6. Technical SEO signals present in the content structure
"""
        return prompt


def _yes_no(value: bool) -> str:
    return "yes" if value else "no"
