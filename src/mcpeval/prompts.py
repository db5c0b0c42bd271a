"""Prompt templates for acting models and the judge."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from mcpeval.toolhost import Capability

ACTING_SYSTEM_PROMPT = (
    "You are an assistant helping with data analysis. "
    "Use the tools available to analyze data and answer questions."
)

JUDGE_SYSTEM_PROMPT = (
    "You are an evaluation assistant that reviews tool responses and determines "
    "if they meet criteria. Follow the response format you are given exactly."
)

# Example arguments shown to the model next to well-known tools.
TOOL_EXAMPLES: Dict[str, Dict[str, Any]] = {
    "run_query": {
        "dataset": "frontend",
        "calculations": [{"op": "COUNT"}, {"op": "AVG", "column": "duration_ms"}],
        "breakdowns": ["service.name"],
        "time_range": 3600,
        "filters": [{"column": "duration_ms", "op": ">", "value": 0}],
    },
    "get_columns": {"dataset": "frontend"},
    "analyze_column": {"dataset": "frontend", "column": "duration_ms"},
}


def _json(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


def render_tool_docs(capabilities: List[Capability], environment: Optional[str] = None) -> str:
    """Describe each capability with its parameters and, if known, an example."""
    sections = []
    for cap in capabilities:
        section = (
            f"## {cap.name}\n{cap.description or 'No description available'}\n\n"
            f"Parameters:\n{cap.describe_parameters()}\n"
        )
        if cap.name in TOOL_EXAMPLES:
            example = dict(TOOL_EXAMPLES[cap.name])
            if environment:
                example = {"environment": environment, **example}
            section += f"\nExample:\n```json\n{_json(example)}\n```\n"
        sections.append(section)
    return "\n".join(sections)


def _environment_notes(environment: Optional[str]) -> str:
    if not environment:
        return ""
    return (
        f'- You are working with the environment: "{environment}"\n'
        f'- Always include the "environment" parameter with value "{environment}" in your tool calls\n'
    )


CONVERSATION_CONTEXT = """You are performing a multi-step data analysis task. Your goal is to use the available tools to progressively analyze data, where each step builds on information from previous steps.

TASK:
{goal}

IMPORTANT CONTEXT:
{environment_notes}- Make sure to use information from previous steps to inform each new step

AVAILABLE TOOLS:
{tool_docs}

FORMAT INSTRUCTIONS:
When you want to use a tool, respond with:
```json
{{
  "tool": "tool_name",
  "parameters": {{"param1": "value1"}},
  "reasoning": "Brief explanation of why you're using this tool and how it builds on previous steps"
}}
```

When you've completed the analysis, respond with:
```json
{{
  "done": true,
  "explanation": "Detailed explanation of your findings and how you progressively built your analysis"
}}
```
"""

CONVERSATION_STEP_UPDATE = """

## Step {step} Results:
You called tool: {tool}
Your reasoning: {reasoning}
Parameters: {parameters}
{outcome}

What would you like to do next? Remember to:
1. Use the information you just learned to inform your next step
2. Explain your reasoning for the next step
"""

AGENT_CONTEXT = """You are an AI agent performing data analysis. Your goal is to use the available tools to analyze data and reach specific insights.

GOAL:
{goal}

AVAILABLE TOOLS:
{tool_docs}

IMPORTANT CONTEXT:
{environment_notes}- Think step-by-step about what information you need and how to get it
- Each tool call should build upon previous information
- Explain your thought process at each step
{additional_context}
FORMAT YOUR RESPONSE AS:
```json
{{
  "thought": "Analyze the current situation and what information you have",
  "plan": "Describe your plan for this step and how it contributes to the goal",
  "action": {{
    "tool": "tool_name",
    "parameters": {{"param1": "value1"}}
  }},
  "reasoning": "Why this is the best action to take right now"
}}
```

OR, if you've completed your analysis:

```json
{{
  "thought": "Analyze what you've learned from all previous steps",
  "plan": "Summarize how you've met the goal",
  "complete": true,
  "summary": "Detailed summary of findings and insights",
  "reasoning": "Why the goal has been achieved"
}}
```
"""

AGENT_STEP_UPDATE = """

## Step {step} Results:
YOUR THOUGHT: {thought}
YOUR PLAN: {plan}
YOUR REASONING: {reasoning}
TOOL CALLED: {tool}
PARAMETERS: {parameters}
{outcome}

Now analyze this information and determine your next step. Remember to:
1. Build directly on what you've just learned
2. Progress toward your overall goal
3. Explain your thinking process clearly
"""

PARSE_GUIDANCE = """

## Error in Step {step}:
Error: {diagnostic}

This might be because:
- The JSON format was incorrect
- The tool name was invalid
- Required parameters were missing

Try again with a single valid JSON object in the format described above.
"""


def build_conversation_context(
    goal: str, capabilities: List[Capability], environment: Optional[str]
) -> str:
    return CONVERSATION_CONTEXT.format(
        goal=goal,
        environment_notes=_environment_notes(environment),
        tool_docs=render_tool_docs(capabilities, environment),
    )


def build_agent_context(
    goal: str,
    capabilities: List[Capability],
    environment: Optional[str],
    context: Optional[str] = None,
) -> str:
    additional = f"\nADDITIONAL CONTEXT:\n{context}\n" if context else ""
    return AGENT_CONTEXT.format(
        goal=goal,
        environment_notes=_environment_notes(environment),
        tool_docs=render_tool_docs(capabilities, environment),
        additional_context=additional,
    )


def describe_outcome(response: Any, error: Optional[str]) -> str:
    """The tool-result line of a status update."""
    if error is not None:
        return f"TOOL ERROR: {error}"
    return f"TOOL RESPONSE: {_json(response)}"


def format_parameters(parameters: Optional[Dict[str, Any]]) -> str:
    return _json(parameters or {})


# ── Judge ──

AGENT_JUDGE_TEMPLATE = """You are evaluating an AI agent's performance on a data analysis task. The agent was given this goal:

GOAL: {goal}

The agent took {step_count} steps to complete the task. Here is the agent's process:
{steps}

{criteria}
{expectations}
Evaluate the agent on three dimensions:
1. Goal Achievement (0-1): Did the agent accomplish the primary goal?
2. Reasoning Quality (0-1): How logical and clear was the agent's reasoning?
3. Path Efficiency (0-1): Did the agent take an efficient approach with minimal unnecessary steps?

Format your response as:
GOAL_ACHIEVEMENT: [0-1 score]
REASONING_QUALITY: [0-1 score]
PATH_EFFICIENCY: [0-1 score]
OVERALL_SCORE: [0-1 overall score]
PASSED: [true/false]
REASONING: [detailed explanation]
"""

STANDARD_JUDGE_TEMPLATE = """Evaluation of {step_count} tool call{plural}:

GOAL: {goal}
{steps}

Validation instructions: {criteria}
{expectations}
Score this response (0-1) and explain your reasoning. Format your response as:
SCORE: [0-1 number]
PASSED: [true/false]
REASONING: [your detailed explanation]
"""
