"""
Citation-Constrained Generator
===============================

Invokes the generation service with a numbered evidence list and strict
citation rules, then reconciles the emitted text against that list.

Protocol:
    1. Number the Evidence Set 1..N as ``[Source i]`` blocks, in order
    2. Generate with rules that make [1]..[N] the only citations allowed
    3. Strip citation tokens outside [1, N] (citations.clean_invalid_citations)
    4. Build Citations from the numbers present in the cleaned text

The Evidence Set reaching this point is already mode-filtered, so the
customer/internal prompts differ in audience and tone only: every
numbered source is citable.

A failed generation call raises GenerationFailure. Nothing is returned
without going through citation reconciliation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from citewise.answer.citations import build_citations, clean_invalid_citations
from citewise.answer.llm import GenerationService
from citewise.config import GenerationConfig
from citewise.schemas.answer import AnswerMode, Citation
from citewise.schemas.fragment import Candidate

logger = logging.getLogger("citewise.answer.generator")


# ── Prompt Templates ───────────────────────────────────────────────

_SHARED_RULES = """CRITICAL RULES:
- Use ONLY the provided context to answer
- First determine: Does the context actually contain information relevant to this specific question?
- If the context is about completely different topics, respond with: "I don't have enough information in the knowledge base to answer this."
- NEVER make up information or provide answers not in the context
- NEVER answer questions about unrelated topics found in the context
- Only cite sources that directly answer the question asked"""

CUSTOMER_SYSTEM_PROMPT = f"""You are a helpful assistant answering customer questions.

{_SHARED_RULES}
- Be professional and helpful; do not mention internal teams, tools, or discussions
- If unsure or if context is irrelevant, say "I don't have enough information in the knowledge base to answer this\""""

INTERNAL_SYSTEM_PROMPT = f"""You are a helpful assistant answering internal team questions.

{_SHARED_RULES}
- Be direct; internal jargon from the sources is fine
- If unsure or if context is irrelevant, say "I don't have enough information in the knowledge base to answer this\""""

USER_PROMPT = """You have access to {n} source(s) from the knowledge base.

Context from knowledge base:
{context}

Question: {query}

CITATION RULES - READ CAREFULLY:
1. You have EXACTLY {n} source(s) available
2. Valid citation numbers are ONLY: {valid}
3. DO NOT use citation numbers that don't exist (like [{n_plus_one}] or higher)
4. You MUST cite sources using [1], [2], [3], etc. when you use information from them
5. If you use information from multiple sources, cite ALL of them (e.g., "Deployments happen during business hours [1]. We also use automated rollbacks [2].")
6. Place citation numbers immediately after the statements they support
7. If a statement is supported by multiple sources, list all: [1][2]
8. ONLY use citations that actually exist in the available sources

Answer Guidelines:
- Based ONLY on the context above, provide a clear answer
- If the context doesn't contain information to answer this specific question, respond with: "I don't have enough information in the knowledge base to answer this."
- CITE EVERY source you use
- DO NOT invent citation numbers

Remember: You can ONLY use citations [1] through [{n}]. Any citation number outside this range is INVALID."""


def format_evidence_block(evidence: Sequence[Candidate]) -> str:
    """Numbered context block; position i+1 is the citation number."""
    return "\n\n---\n\n".join(
        f"[Source {i + 1}]\n{c.fragment.content}" for i, c in enumerate(evidence)
    )


@dataclass
class GeneratedAnswer:
    """Reconciled generation output."""
    answer_text: str
    citations: list[Citation] = field(default_factory=list)
    raw_text: str = ""


class CitationConstrainedGenerator:
    """
    Generates an answer whose citations are validated against its evidence.

    Usage:
        generator = CitationConstrainedGenerator(llm, config.generation)
        out = generator.generate(query, evidence, AnswerMode.CUSTOMER)
        out.answer_text, out.citations

    Args:
        llm: Generation service.
        config: Generation config (answer temperature).
    """

    def __init__(self, llm: GenerationService, config: Optional[GenerationConfig] = None):
        self.llm = llm
        self.config = config or GenerationConfig()

    def build_prompts(
        self, query: str, evidence: Sequence[Candidate], mode: AnswerMode
    ) -> tuple[str, str]:
        """Return (system_prompt, user_prompt)."""
        n = len(evidence)
        system = CUSTOMER_SYSTEM_PROMPT if mode == AnswerMode.CUSTOMER else INTERNAL_SYSTEM_PROMPT
        user = USER_PROMPT.format(
            n=n,
            n_plus_one=n + 1,
            valid=", ".join(f"[{i}]" for i in range(1, n + 1)),
            context=format_evidence_block(evidence),
            query=query,
        )
        return system, user

    def generate(
        self, query: str, evidence: Sequence[Candidate], mode: AnswerMode
    ) -> GeneratedAnswer:
        """
        Generate and reconcile.

        Raises:
            GenerationFailure: If the generation call fails.
        """
        evidence = list(evidence)
        system, user = self.build_prompts(query, evidence, mode)
        raw = self.llm.generate(
            user,
            system_prompt=system,
            temperature=self.config.answer_temperature,
        )

        cleaned = clean_invalid_citations(raw, len(evidence))
        citations = build_citations(cleaned, evidence)
        logger.info(
            f"Generated answer citing {len(citations)}/{len(evidence)} source(s) "
            f"({mode.value} mode)"
        )
        return GeneratedAnswer(answer_text=cleaned, citations=citations, raw_text=raw)
