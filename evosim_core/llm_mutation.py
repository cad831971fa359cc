"""
evosim_core/llm_mutation.py - Optional language-model mutation with structural fallback

The service is an alternative provider of the "tree in, tree out" mutation
contract. Any timeout, transport error, empty reply or unparsable reply
falls back to the structural operators, which always succeed.
"""
import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

from openai import AsyncOpenAI, OpenAIError

from .ast_nodes import ExprNode, parse_expression, ExpressionParseError
from .genome import Genome, GenomeFactory, TEMPLATE_MUTATION_RATE
from .operators import ASTMutator
from .run_context import RunContext

logger = logging.getLogger(__name__)

MUTATION_TYPES = ('generalize', 'simplify', 'extend', 'analogize')

SYSTEM_PROMPT = ("You are a mathematical expression transformer. "
                 "Respond with ONLY the transformed expression, no explanations.")

PROMPTS = {
    'generalize': ("Given the mathematical expression: {expr}\n"
                   "Make it more general by introducing additional variables or parameters.\n"
                   "Respond with ONLY the new expression in the same format "
                   "(parenthesized, operators: + - * / ^ %).\n"
                   "Example input: (x + 2)\nExample output: (x + y)"),
    'simplify': ("Given the mathematical expression: {expr}\n"
                 "Simplify it if possible, or identify a simpler equivalent form.\n"
                 "Respond with ONLY the simplified expression in the same format "
                 "(parenthesized, operators: + - * / ^ %).\n"
                 "Example input: ((x + 0) * 1)\nExample output: x"),
    'extend': ("Given the mathematical expression: {expr}\n"
               "Extend it by adding an interesting mathematical operation that might reveal new patterns.\n"
               "Respond with ONLY the new expression in the same format "
               "(parenthesized, operators: + - * / ^ %).\n"
               "Example input: (x + y)\nExample output: ((x + y) * (x - y))"),
    'analogize': ("Given the mathematical expression: {expr}\n"
                  "Create an analogous expression by substituting operations or variables with related ones.\n"
                  "Respond with ONLY the new expression in the same format "
                  "(parenthesized, operators: + - * / ^ %).\n"
                  "Example input: (x + y)\nExample output: (x * y)")
}


@dataclass
class LLMMutationConfig:
    api_key: str = ''
    base_url: str = 'https://api.openai.com/v1'
    model: str = 'gpt-4o-mini'
    timeout: float = 5.0
    enabled: bool = True
    max_failures: int = 3
    max_tokens: int = 100
    temperature: float = 0.7

    @classmethod
    def from_env(cls) -> 'LLMMutationConfig':
        """Configuration from AI_API_KEY, AI_API_URL and AI_MODEL"""
        api_key = os.getenv('AI_API_KEY', '')
        return cls(
            api_key=api_key,
            base_url=os.getenv('AI_API_URL', cls.base_url),
            model=os.getenv('AI_MODEL', cls.model),
            enabled=bool(api_key)
        )


@dataclass(frozen=True)
class MutationResult:
    tree: ExprNode
    used_llm: bool


class LLMMutationService:
    """Explicitly constructed mutation service; pass it to whoever needs it"""

    def __init__(self, config: Optional[LLMMutationConfig] = None, client: Any = None):
        self.config = config or LLMMutationConfig()
        self._client = client
        self.last_error: Optional[str] = None
        self.consecutive_failures = 0

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.config.api_key, base_url=self.config.base_url)
        return self._client

    def is_available(self) -> bool:
        has_credentials = self._client is not None or bool(self.config.api_key)
        return (self.config.enabled and has_credentials
                and self.consecutive_failures < self.config.max_failures)

    def reset_failures(self) -> None:
        self.consecutive_failures = 0
        self.last_error = None

    def _record_failure(self, message: str) -> None:
        self.consecutive_failures += 1
        self.last_error = message
        logger.warning(f"LLM mutation failed ({self.consecutive_failures} in a row): {message}")

    @staticmethod
    def create_prompt(tree: ExprNode, mutation_type: str) -> str:
        return PROMPTS[mutation_type].format(expr=tree.to_text())

    async def _complete(self, prompt: str) -> Optional[str]:
        response = await self.client.chat.completions.create(
            model=self.config.model,
            messages=[
                {'role': 'system', 'content': SYSTEM_PROMPT},
                {'role': 'user', 'content': prompt}
            ],
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature
        )
        choices = getattr(response, 'choices', None) or []
        if not choices:
            return None
        message = getattr(choices[0], 'message', None)
        content = getattr(message, 'content', None)
        return content.strip() if content else None

    async def request(self, tree: ExprNode, mutation_type: str) -> Optional[ExprNode]:
        """Ask the model for a replacement tree; None on any failure"""
        if not self.is_available():
            return None

        prompt = self.create_prompt(tree, mutation_type)
        try:
            reply = await asyncio.wait_for(self._complete(prompt), timeout=self.config.timeout)
        except asyncio.TimeoutError:
            self._record_failure(f"Timed out after {self.config.timeout}s")
            return None
        except OpenAIError as e:
            self._record_failure(f"API error: {e}")
            return None
        except Exception as e:
            # Any client failure falls back to the structural operators
            self._record_failure(f"Request failed: {type(e).__name__}: {e}")
            return None

        if not reply:
            self._record_failure("Empty response from API")
            return None

        try:
            parsed = parse_expression(reply)
        except ExpressionParseError as e:
            self._record_failure(f"Parse error: {e}")
            return None

        self.reset_failures()
        return parsed

    async def mutate(self, tree: ExprNode, mutation_type: str, mutator: ASTMutator) -> MutationResult:
        """Language-model mutation, or the matching structural operator on failure"""
        if mutation_type not in PROMPTS:
            raise ValueError(f"Unknown mutation type: {mutation_type}")

        replacement = await self.request(tree, mutation_type)
        if replacement is not None:
            return MutationResult(replacement, True)

        if mutation_type in ('generalize', 'extend'):
            fallback = mutator.mutate_grow(tree)
        elif mutation_type == 'simplify':
            fallback = mutator.mutate_shrink(tree)
        else:
            fallback = mutator.mutate_point(tree)
        return MutationResult(fallback, False)

    async def mutate_batch(self, trees: Sequence[ExprNode], mutator: ASTMutator) -> Tuple[List[ExprNode], int]:
        """Mutate trees one after another; returns the trees and how many used the model"""
        results = []
        llm_count = 0
        for tree in trees:
            mutation_type = mutator.prng.pick(MUTATION_TYPES)
            result = await self.mutate(tree, mutation_type, mutator)
            if result.used_llm:
                llm_count += 1
            results.append(result.tree)
        return results, llm_count


async def mutate_genome_with_llm(genome: Genome, scope: RunContext,
                                 service: LLMMutationService) -> Tuple[Genome, bool]:
    """Genome mutation whose solver tree goes through the service"""
    prng = scope.prng
    mutator = ASTMutator(prng)

    mutation_type = prng.pick(MUTATION_TYPES)
    result = await service.mutate(genome.solver_tree, mutation_type, mutator)

    template_tree = mutator.mutate(genome.template_tree, TEMPLATE_MUTATION_RATE)
    mutation_bias, operator_weights, guide_weights = GenomeFactory.mutate_traits(genome, scope)

    child = Genome(scope.next_id('ast'), result.tree, template_tree,
                   mutation_bias, operator_weights, guide_weights,
                   parent_ids=(genome.id,))
    return child, result.used_llm
