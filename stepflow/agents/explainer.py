"""
Step explanation agent.

Produces a standard, technical and beginner explanation for one step of a
scenario, plus a few what-if scenarios, using LiteLLM with JSON output. It
never raises to the caller: without an API key, or when the call fails, the
answer is built from the step's own narrative copy.
"""

import json
import re
from typing import Any, Dict, List, Optional, Tuple

import litellm
from pydantic import BaseModel, Field

from ..core.config import Config, get_config
from ..core.exceptions import LLMError, LLMResponseError, LLMTimeoutError
from ..core.models import Scenario
from ..core.preferences import PROVIDER_NAMES, Preferences, Provider
from ..utils.logger import get_logger

logger = get_logger("explainer")

EXPLAINER_SYSTEM_PROMPT = "You are an expert blockchain educator. Always answer with a single JSON object."

_RESPONSE_FORMAT = """
Please provide three different explanations:
1. A standard explanation that balances technical accuracy with accessibility
2. A technical explanation with implementation details for developers
3. A simplified explanation for beginners with no blockchain experience

Additionally, provide 2-3 "What-if scenarios" related to this {subject}. For example:
- "What happens if the transaction fails at {where}?"
- "What if the user has insufficient funds?"
- "What if the network is congested during {during}?"

Format your response as a JSON object with these fields:
{{
  "explanation": "Your standard explanation here",
  "technicalDetails": "Your technical explanation here",
  "technicalCode": "A code snippet that demonstrates the technical implementation of this {subject}",
  "simplifiedExplanation": "Your simplified explanation here",
  "whatIfScenarios": ["What-if scenario 1 with answer", "What-if scenario 2 with answer", "What-if scenario 3 with answer"]
}}
"""

_STEP_FORMAT = _RESPONSE_FORMAT.format(subject="step", where="this point", during="this transaction")
_FLOW_FORMAT = _RESPONSE_FORMAT.format(subject="flow", where="some point", during="transactions")


class Explanation(BaseModel):
    """One explanation payload, as shown in the side panel."""

    explanation: str
    technical_details: Optional[str] = None
    technical_code: Optional[str] = None
    simplified_explanation: Optional[str] = None
    what_if_scenarios: Optional[List[str]] = None
    source: str = Field(default="llm", description="llm | narrative | unavailable")


# ============================================
# Prompts
# ============================================

def build_prompt(scenario: Scenario, step: int) -> str:
    """Educator prompt for ``step``; step 0 introduces the whole flow."""
    flow = scenario.title
    if step == 0 and scenario.summary:
        return (
            f"\nYou are an expert blockchain educator. Please provide a detailed explanation "
            f"for the {flow} flow.\n\n"
            f'Use this description as a starting point: "{scenario.summary}"\n'
            + _FLOW_FORMAT
        )

    copy = scenario.step_copy(step)
    if copy is None:
        return (
            f"\nYou are an expert blockchain educator. Please provide a detailed explanation "
            f'for step {step} of the {flow} flow: "Unknown step".\n'
            + _STEP_FORMAT
        )

    entry = scenario.entry(step)
    graph = scenario.graph
    nodes = [graph.nodes_by_id[i] for i in entry.nodes if i in graph.nodes_by_id]
    edges = [graph.edges_by_id[i] for i in entry.edges if i in graph.edges_by_id]
    node_text = ", ".join(
        f"{n.data.label or 'Unnamed'} ({n.data.tooltip or 'No tooltip'})" for n in nodes
    ) or "None specified"
    edge_text = ", ".join(f"{e.data.label or 'Unnamed'} connection" for e in edges) or "None specified"

    return (
        f"\nYou are an expert blockchain educator explaining a {flow} flow visualization.\n"
        f'Please provide a detailed explanation for step {step} of the {flow} flow: "{copy.title}".\n\n'
        "Step information:\n"
        f"- Description: {copy.description}\n"
        f"- What happens: {copy.what}\n"
        f"- Why it matters: {copy.why}\n"
        f"- Code example: {copy.code_snippet or 'Not available'}\n\n"
        "Active components in this step:\n"
        f"- Nodes: {node_text}\n"
        f"- Edges: {edge_text}\n"
        + _STEP_FORMAT
    )


# ============================================
# Response Parsing
# ============================================

def strip_code_fences(content: str) -> str:
    if "```" not in content:
        return content
    return re.sub(r"```(?:json)?\s*|\s*```$", "", content.strip())


def format_response(payload: Dict[str, Any]) -> Explanation:
    scenarios = payload.get("whatIfScenarios")
    if scenarios is not None and not isinstance(scenarios, list):
        scenarios = [str(scenarios)]
    return Explanation(
        explanation=payload.get("explanation") or "No explanation provided.",
        technical_details=payload.get("technicalDetails") or None,
        technical_code=payload.get("technicalCode") or None,
        simplified_explanation=payload.get("simplifiedExplanation") or None,
        what_if_scenarios=[str(s) for s in scenarios] if scenarios else None,
    )


def _balance(content: str) -> str:
    fixed = content.rstrip()
    # close a dangling string value
    if fixed.count('"') % 2 == 1:
        fixed += '"'
    fixed += "]" * max(0, fixed.count("[") - fixed.count("]"))
    fixed += "}" * max(0, fixed.count("{") - fixed.count("}"))
    return fixed


def _extract_field(content: str, name: str) -> Optional[str]:
    match = re.search(rf'"{name}"\s*:\s*"((?:\\.|[^"\\])*)"', content, re.IGNORECASE)
    if not match:
        return None
    try:
        return json.loads(f'"{match.group(1)}"')
    except json.JSONDecodeError:
        return match.group(1)


def _extract_array(content: str, name: str) -> Optional[List[str]]:
    match = re.search(rf'"{name}"\s*:\s*\[(.*?)(?:\]|$)', content, re.DOTALL)
    if not match:
        return None
    items = re.findall(r'"((?:\\.|[^"\\])*)"', match.group(1))
    return items or None


def recover_response(content: str) -> Explanation:
    """Salvage what we can from malformed or truncated JSON."""
    for candidate in (_balance(content), _first_object(content)):
        if not candidate:
            continue
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(payload, dict):
            return format_response(payload)

    explanation = _extract_field(content, "explanation")
    technical = _extract_field(content, "technicalDetails")
    code = _extract_field(content, "technicalCode")
    simplified = _extract_field(content, "simplifiedExplanation")
    scenarios = _extract_array(content, "whatIfScenarios")
    if explanation or technical or code or simplified or scenarios:
        return Explanation(
            explanation=explanation or "Partial explanation recovered from incomplete response.",
            technical_details=technical,
            technical_code=code,
            simplified_explanation=simplified or "Sorry, the complete explanation could not be recovered.",
            what_if_scenarios=scenarios,
        )

    return Explanation(
        explanation=content,
        simplified_explanation="Sorry, the detailed explanations are not available for this response.",
    )


def _first_object(content: str) -> Optional[str]:
    match = re.search(r"\{[\s\S]*\}", content)
    return match.group(0) if match else None


def parse_response(content: str) -> Explanation:
    content = strip_code_fences(content)
    try:
        payload = json.loads(content)
    except json.JSONDecodeError:
        logger.debug("Recovering malformed explanation JSON", {"length": len(content)})
        return recover_response(content)
    if not isinstance(payload, dict):
        raise LLMResponseError("Explanation response is not a JSON object")
    return format_response(payload)


# ============================================
# Offline Explanations
# ============================================

def narrative_explanation(scenario: Scenario, step: int) -> Explanation:
    """Explanation assembled from the scenario's own copy."""
    if step == 0:
        return Explanation(
            explanation=scenario.summary or f"Overview of the {scenario.title} flow.",
            simplified_explanation=f"Press play to walk through the {scenario.title} flow step by step.",
            source="narrative",
        )
    copy = scenario.step_copy(step)
    if copy is None:
        return Explanation(
            explanation=f"AI explanation for {scenario.title} step {step} is not available yet.",
            simplified_explanation="This step's explanation is coming soon.",
            source="unavailable",
        )
    return Explanation(
        explanation=copy.description,
        technical_details=copy.what,
        technical_code=copy.code_snippet,
        simplified_explanation=copy.why,
        source="narrative",
    )


# ============================================
# Agent
# ============================================

class StepExplainer:
    """Cached, provider-aware explanation fetcher."""

    def __init__(self, preferences: Preferences, config: Optional[Config] = None):
        self.preferences = preferences
        self.config = config or get_config()
        self._cache: Dict[Tuple[str, int, str], Explanation] = {}

    @property
    def provider(self) -> Provider:
        return self.preferences.provider

    def has_valid_key(self) -> bool:
        return bool(self.config.api_key_for(self.provider.value))

    def _complete(self, messages: List[Dict[str, str]], max_tokens: int, json_mode: bool):
        provider = self.provider.value
        kwargs = {
            "model": self.config.model_for(provider),
            "messages": messages,
            "api_key": self.config.api_key_for(provider),
            "temperature": 0.7,
            "max_tokens": max_tokens,
            "timeout": self.config.llm_timeout_s,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            return litellm.completion(**kwargs)
        except litellm.Timeout as e:
            raise LLMTimeoutError(f"LLM request timed out: {e}")
        except Exception as e:
            raise LLMError(f"LLM request failed: {e}")

    def fetch(self, scenario: Scenario, step: int) -> Explanation:
        """
        Ask the selected provider for an explanation.

        Raises:
            LLMError: If the request fails or the response is unusable
        """
        messages = [
            {"role": "system", "content": EXPLAINER_SYSTEM_PROMPT},
            {"role": "user", "content": build_prompt(scenario, step)},
        ]
        response = self._complete(messages, max_tokens=4000, json_mode=True)
        choice = response.choices[0]
        content = choice.message.content or ""
        if getattr(choice, "finish_reason", None) == "length":
            logger.info("Explanation response truncated", {"scenario": scenario.id, "step": step})
        if not content.strip():
            raise LLMResponseError("Empty explanation response")
        return parse_response(content)

    def explain(self, scenario: Scenario, step: int, use_hardcoded: bool = False) -> Explanation:
        """Explanation for ``(scenario, step)``; never raises."""
        key = (scenario.id, step, self.provider.value)
        if key in self._cache:
            return self._cache[key]

        if use_hardcoded or self.config.use_hardcoded_explanations or not self.has_valid_key():
            logger.info("Using narrative explanation", {"scenario": scenario.id, "step": step})
            return narrative_explanation(scenario, step)

        try:
            result = self.fetch(scenario, step)
        except LLMError as e:
            logger.error(None, e, {"scenario": scenario.id, "step": step, "provider": self.provider.value})
            fallback = narrative_explanation(scenario, step)
            if fallback.source == "narrative":
                return fallback
            return Explanation(
                explanation="We couldn't generate an AI explanation for this step. Please try again later.",
                simplified_explanation="Sorry, the explanation is temporarily unavailable.",
                source="unavailable",
            )

        self._cache[key] = result
        return result

    def clear_cache(self) -> None:
        self._cache.clear()

    def test_api_key(self) -> Tuple[bool, str]:
        """Make a tiny request to check the selected provider's key."""
        name = PROVIDER_NAMES[self.provider]
        if not self.has_valid_key():
            return False, f"{name} API key is missing. Add it to your .env file and try again."
        try:
            self._complete(
                [
                    {"role": "system", "content": "You are a helpful assistant."},
                    {"role": "user", "content": "Hello, this is a test message to verify the API key is working."},
                ],
                max_tokens=10,
                json_mode=False,
            )
        except LLMError as e:
            return False, f"API key test failed: {e}"
        return True, "API key is valid and working correctly."
