"""Judge agent for Phase 3: compare ground truth against AI perception."""

import logging

from pydantic import BaseModel

from app.agents.base_agent import BaseAgent
from app.schemas.audit import NO_AI_INFO_TEXT, AEOAuditReport, AIPerception, EntityProfile

logger = logging.getLogger(__name__)

MAX_SAMPLE_MENTIONS = 5
MENTION_CONTEXT_CHARS = 200


class AuditJudgeInput(BaseModel):
    """Input for the audit judge agent."""

    brand_name: str
    entity_profile: EntityProfile
    perception: AIPerception


class AuditJudgeAgent(BaseAgent[AuditJudgeInput, AEOAuditReport]):
    """Agent that scores a brand's AI visibility and trustworthiness.

    Compares what the brand says about itself (ground truth) with what AI
    systems say about it (perception), detects hallucinations and writes
    a prioritized action plan.
    """

    model_tier = "reasoning"
    settings_model_attr = "judge_model"
    temperature = 0.4

    @property
    def system_prompt(self) -> str:
        return """You are the AEO (Answer Engine Optimization) Trust Auditor.

Your task is to compare what a brand says about itself (Ground Truth) versus
what AI systems say about it (AI Perception), then produce a trust score,
hallucination findings and an action plan.

Rules:
- Score strictly with the rubric you are given; do not invent extra categories
- A hallucination must cite the specific AI statement and the fact it contradicts
- If AI systems have no information, that is low visibility, not a hallucination
- Recommendations must be concrete enough to implement this week
"""

    @property
    def output_type(self) -> type[AEOAuditReport]:
        return AEOAuditReport

    def _build_prompt(self, input_data: AuditJudgeInput) -> str:
        profile = input_data.entity_profile
        perception = input_data.perception
        logger.info(
            "Building judge prompt",
            extra={
                "brand_name": input_data.brand_name,
                "llm_mentions_count": perception.llm_mentions_count,
                "knowledge_graph_exists": perception.knowledge_graph_exists,
                "key_facts": len(profile.key_facts),
            },
        )

        sections = [
            f"## BRAND: {input_data.brand_name}",
            _format_ground_truth(profile),
            _format_perception(perception),
            SCORING_RUBRIC,
            HALLUCINATION_GUIDE,
            ACTION_PLAN_GUIDE,
        ]
        return "\n\n".join(sections)


def _format_ground_truth(profile: EntityProfile) -> str:
    tech = profile.technical_signals
    content = profile.content_signals
    facts = "\n".join(f"  - {fact}" for fact in profile.key_facts) or "  - None stated"

    return f"""## GROUND TRUTH (From Website)
- Core Offering: {profile.core_offering}
- Target Audience: {profile.target_audience}
- Unique Value Proposition: {profile.unique_value_proposition}
- Pricing Model: {profile.pricing_model}
- Industry: {profile.industry_category}
- Founded: {profile.founded_year or "Not specified"}
- Headquarters: {profile.headquarters or "Not specified"}
- Key Facts They Claim:
{facts}

### Technical Signals
- Has Schema Markup: {tech.has_schema}
- Schema Types: {", ".join(tech.schema_types) or "None"}
- Has FAQs: {tech.has_faqs}
- Has Definitions: {tech.has_definitions}
- Has Direct Answers: {tech.has_direct_answers}
- Has Tables: {tech.has_table_tags}
- Has Structured Lists: {tech.has_structured_lists}

### Content Signals
- Has Author Bio: {content.has_author_bio}
- Has Publish Date: {content.has_publish_date}
- Has Last Updated: {content.has_last_updated}
- Has Citations: {content.has_citations}
- Readability: {content.readability_level}
- Estimated Word Count: {content.estimated_word_count}"""


def _format_perception(perception: AIPerception) -> str:
    platform = perception.llm_mentions_by_platform
    volume = (
        f"{perception.ai_search_volume:,}"
        if perception.ai_search_volume is not None
        else "Unknown"
    )

    lines = [
        "## AI PERCEPTION (From AI platforms and SEO data providers)",
        f"- LLM Mentions Count: {perception.llm_mentions_count:,} (total mentions in AI responses)",
        f"  - Google AI: {platform.google:,}",
        f"  - ChatGPT: {platform.chat_gpt:,}",
        f"  - Perplexity: {platform.perplexity:,}",
        f"- Knowledge Graph Exists: {perception.knowledge_graph_exists}",
        f"- AI Search Volume: {volume}",
        "",
        "### Sample LLM Mentions (where AI mentions this brand):",
        _format_mentions(perception),
        "",
        "### What ChatGPT Says:",
        f'"{perception.chatgpt_summary or NO_AI_INFO_TEXT}"',
    ]

    insight = perception.perplexity_insight
    if insight is not None:
        sources = ", ".join(insight.sources[:5]) or "None cited"
        lines.extend([
            "",
            "### What Perplexity Says:",
            f'"{insight.summary or NO_AI_INFO_TEXT}"',
            f"- Sources cited: {sources}",
        ])

    metrics = perception.domain_metrics
    if metrics is not None:
        lines.extend([
            "",
            "### Domain SEO Metrics",
            f"- Organic Traffic (est.): {_fmt_optional(metrics.organic_traffic)}",
            f"- Organic Keywords: {_fmt_optional(metrics.organic_keywords)}",
            f"- Backlinks: {_fmt_optional(metrics.backlinks)}",
            f"- Referring Domains: {_fmt_optional(metrics.referring_domains)}",
            f"- Domain Rank: {_fmt_optional(metrics.domain_rank)}",
        ])

    if perception.competitors:
        lines.extend(["", "### Top Competitors"])
        for competitor in perception.competitors:
            lines.append(
                f"- {competitor.domain}: traffic {_fmt_optional(competitor.organic_traffic)}, "
                f"keywords {_fmt_optional(competitor.organic_keywords)}"
            )

    return "\n".join(lines)


def _format_mentions(perception: AIPerception) -> str:
    mentions = perception.llm_mentions[:MAX_SAMPLE_MENTIONS]
    if not mentions:
        return "No mentions found"
    return "\n".join(
        f'{index}. Source: {mention.source}\n   Context: "{mention.context[:MENTION_CONTEXT_CHARS]}..."'
        for index, mention in enumerate(mentions, start=1)
    )


def _fmt_optional(value: float | int | None) -> str:
    if value is None:
        return "Unknown"
    if isinstance(value, float):
        return f"{value:,.0f}"
    return f"{value:,}"


SCORING_RUBRIC = """## SCORING RUBRIC
Calculate scores for each category (0-25 points each). The overall aeo_score
is the sum of the four categories.

1. **Entity Recognition (0-25)**
   - Knowledge Graph exists: +15 points
   - 1000+ LLM mentions: +10 points
   - 100-999 LLM mentions: +7 points
   - 10-99 LLM mentions: +5 points
   - 1-9 LLM mentions: +2 points
   - 0 mentions: 0 points

2. **Accuracy Score (0-25)**
   - AI description matches reality closely: +25 points
   - Partial match with minor errors: +15 points
   - Major discrepancies or missing key info: +5 points
   - AI says "I don't know" or no info: 0 points

3. **Citation Strength (0-25)**
   - AI cites the brand's website as source: +15 points
   - AI mentions specific products/services correctly: +10 points
   - No citations or sources: 0 points

4. **Technical Readiness (0-25)**
   - Has schema markup: +10 points
   - Has FAQs/definitions: +5 points
   - Has author/date info: +5 points
   - Has citations: +5 points

Verdicts: Invisible (0-20), Emerging (21-40), Rising Star (41-60),
Authority (61-80), Dominant (81-100)."""

HALLUCINATION_GUIDE = """## HALLUCINATION DETECTION
- **Positive Hallucinations**: AI overstates capabilities, claims bigger market share, etc.
- **Negative Hallucinations**: Wrong pricing, incorrect features, outdated info, competitor confusion"""

ACTION_PLAN_GUIDE = """## ACTION PLAN PRIORITIES
Generate 3-5 actionable recommendations with:
- Critical: Immediate action needed (wrong info being spread)
- High: Important for visibility improvement
- Medium: Optimization opportunities

Map each recommendation to one category:
- **Technical**: Schema markup for Organization, FAQ, Product and Article
- **Content**: LLM-friendly content with definitions, direct answers and citations
- **Authority**: Earning mentions and citations across ChatGPT, Perplexity and Google AI
- **Accuracy**: Correcting AI misconceptions and outdated brand narratives

Example:
- Task: "Add FAQ schema to key pages"
- Fix: "Generate FAQPage JSON-LD from your support content and add it to product pages"
- Impact: "Increases chance of appearing in AI-generated answers"
"""
