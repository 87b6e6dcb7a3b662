"""Prompt builders for the three pipeline stages.

Each builder returns the complete user prompt for one structured-generation
call. The output schema itself is supplied by PydanticAI from the output
model, so prompts describe the task and constraints, not the JSON layout.

Date handling:
    Every time-sensitive prompt states today's date so the model can reason
    about recency and add year qualifiers to queries.
"""

import json
from datetime import datetime

from models.context import (
    GenerationContext,
    MAX_KEYWORDS,
    MAX_NEWS_ANGLES,
    MAX_QUERIES,
    MAX_QUERY_WORDS,
    MIN_KEYWORDS,
    MIN_NEWS_ANGLES,
    MIN_QUERIES,
)
from models.research import ResearchArticle, SearchDocument


def _today(now: datetime) -> str:
    return now.strftime("%Y-%m-%d")


def _source_block(source: SearchDocument, max_chars: int) -> str:
    text = source.text[:max_chars]
    return f"""<source>
  <title>{source.title or "Untitled"}</title>
  <url>{source.url}</url>
  <author>{source.author or "Unknown"}</author>
  <published>{source.published_date or "Unknown"}</published>
  <content>{text}</content>
</source>"""


def context_prompt(topic: str, now: datetime) -> str:
    """Prompt deriving audience, persona, goal and news angles for a topic."""
    return f"""You are a senior news editor setting up a recurring press review on the topic below.

## Task
Define the editorial framing for this press review:
- audience: the professional readers who follow this topic to stay informed about its latest developments
- persona: the role the writer impersonates to serve that audience
- goal: what the press review should achieve for the audience
- news_angles: {MIN_NEWS_ANGLES}-{MAX_NEWS_ANGLES} angles from which news about the topic is tracked.
  Each angle has a short name, a description of the kind of news it covers,
  and {MIN_KEYWORDS}-{MAX_KEYWORDS} trigger keywords that signal such news.

## Constraints
- This is press review coverage of current developments: regulation, market moves,
  research results, launches, disputes, policy and industry events.
- Do NOT frame it for hobbyists, beginners or enthusiasts. No tutorials, tips,
  buying guides or community showcases.
- Keep names and keywords short and concrete. Stay factual and unemotional.

<topic>{topic}</topic>

Today is {_today(now)}."""


def query_prompt(topic: str, context: GenerationContext, now: datetime) -> str:
    """Prompt turning news angles into web search queries.

    The angles are listed as separate batches so queries spread across them.
    """
    batches = []
    for i, angle in enumerate(context.news_angles, 1):
        batches.append(
            f"""<angle index="{i}">
  <name>{angle.name}</name>
  <description>{angle.description}</description>
  <keywords>{", ".join(angle.keywords)}</keywords>
</angle>"""
        )
    angles = "\n".join(batches)

    return f"""{context.persona}

{context.goal}

{context.audience}

## Task
Generate web search queries that find the latest news on the topic below.
Work through the news angles one batch at a time and write queries that combine
the topic with the angle's keywords.

## Constraints
- Return {MIN_QUERIES}-{MAX_QUERIES} queries in total, covering every angle.
- Each query has at most {MAX_QUERY_WORDS} words.
- Queries must be distinct; do not paraphrase the same query twice.
- Target news reporting, not guides or evergreen explainers.
- Add the current year or month where it helps the search engine find recent coverage.

<topic>{topic}</topic>

<news_angles>
{angles}
</news_angles>

Today is {_today(now)}."""


def evaluation_prompt(topic: str, source: SearchDocument, now: datetime, max_chars: int) -> str:
    """Prompt judging whether one source qualifies for the press review."""
    return f"""You are a press review research specialist deciding whether a source qualifies for coverage.

## Relevant (isRelevant=true) only if ALL hold
- The content substantively discusses the topic, not just in passing.
- It is news reporting, analysis or commentary from a credible outlet.
- It is recent relative to today's date.

## Not relevant (isRelevant=false) if ANY holds
- Promotional, sponsored, biased or low-quality content.
- Only a tangential mention of the topic.
- Primarily about an unrelated subject.
- Outdated for a current press review.

Judge rigorously. When in doubt, mark the source as not relevant.
Give a one or two sentence reasoning.

<topic>{topic}</topic>

{_source_block(source, max_chars)}

Today is {_today(now)}."""


def extraction_prompt(topic: str, source: SearchDocument, max_chars: int) -> str:
    """Prompt extracting summary, key facts and opinions from one source."""
    return f"""You are a press journalist specializing in the topic below, preparing a source for a press review.

## Instructions
1. Read the content carefully.
2. Write a concise, objective summary of the source.
3. List key facts: verifiable statements such as figures, dates, decisions and events.
4. List opinions: views or judgements held by the author or by people quoted.

## Constraints
- Use only information present in the content. Add nothing from outside knowledge.
- Keep only what is relevant to the topic.

<topic>{topic}</topic>

{_source_block(source, max_chars)}"""


def synthesis_prompt(
    topic: str,
    context: GenerationContext,
    research_results: list[ResearchArticle],
    now: datetime,
) -> str:
    """Prompt writing the final press review from the research results."""
    research = json.dumps(
        [article.model_dump(mode="json", by_alias=True) for article in research_results],
        ensure_ascii=False,
        indent=2,
    )
    return f"""{context.persona}

{context.goal}

{context.audience}

## Task
Write a press review on the topic below from the research results.

1. Select: keep the sources that add significant, substantive information.
   Discard redundant or low-value sources.
2. Group: organise the kept sources into mutually exclusive thematic sections.
3. Narrate: for each section write a new narrative that weaves together the
   facts and opinions of its sources. Do not summarise sources one by one.
4. Frame: write a headline and an intro that cover the whole review.

## Constraints
- Every section lists the sources it draws on, with title and url copied
  exactly from the research results.
- Cite only sources from the research results. Invent nothing.
- Professional, journalistic register.

<topic>{topic}</topic>

<research_results>
{research}
</research_results>

Today is {_today(now)}."""
