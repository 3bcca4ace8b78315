"""Prompt templates for the Basil Loop agents."""

from __future__ import annotations

from typing import List, Sequence

from .models import ModelRoster, SearchResult

FALLBACK_DIRECTIONS = (
    "Increase factual depth, ensure every plan bullet is covered, tighten structure,"
    " and remove repetition."
)
DEFAULT_CHECKER_DIRECTIONS = "Strengthen clarity, coverage, and technical precision."


def model_selection_prompt(user_prompt: str, heuristics: str, roster: ModelRoster) -> str:
    return (
        "You are a Model Selection Agent. Choose which small model should author the main draft.\n\n"
        f'User request: "{user_prompt}"\n\n'
        f"System heuristics:\n{heuristics}\n\n"
        f"- {roster.code} excels at writing and revising source code but struggles with prose.\n"
        f"- {roster.text} excels at reasoning, planning, and natural language but is weaker with code.\n\n"
        f'Respond with ONLY "{roster.code}" or "{roster.text}".'
    )


def prompt_refinement_prompt(user_prompt: str) -> str:
    return (
        "You are a Prompt Refining Agent. Your job is to take a user's request and make it more"
        " specific and detailed to get the best possible response from other AI agents.\n\n"
        f'Original user request: "{user_prompt}"\n\n'
        "Analyze this request and create a more detailed, specific version that will help other"
        " agents provide better technical, scientific, and factual responses. Focus on:\n"
        "- Making vague terms more specific\n"
        "- Adding context that would be helpful\n"
        "- Clarifying the level of detail needed\n"
        "- Identifying key aspects to address\n\n"
        "Return ONLY the refined prompt, nothing else. No explanations, no \"Here's the refined"
        ' prompt:" - just the improved version.'
    )


def planning_prompt(refined_prompt: str, coding: bool) -> str:
    if coding:
        return (
            "You are a Planning Agent for CODING tasks. Your job is to create a plan for"
            f' implementing this code request:\n\n"{refined_prompt}"\n\n'
            "Create a coding plan that outlines:\n"
            "1. What function/class/module needs to be created\n"
            "2. Input parameters and return values\n"
            "3. Key algorithms or logic to implement\n"
            "4. Error handling considerations\n"
            "5. Code structure and organization\n"
            "6. Example usage or test cases\n\n"
            "Return ONLY the coding plan, nothing else. Be specific and code-focused."
        )
    return (
        "You are a Planning Agent. Your job is to create a strategic plan for answering this"
        f' refined request:\n\n"{refined_prompt}"\n\n'
        "Create a detailed plan that outlines:\n"
        "1. What main topics need to be covered\n"
        "2. What level of technical detail is appropriate\n"
        "3. What structure the response should follow\n"
        "4. What key points must be addressed\n"
        "5. What tools or knowledge areas to focus on\n\n"
        "Return ONLY the plan, nothing else. Be specific and actionable."
    )


def format_search_summary(results: Sequence[SearchResult]) -> str:
    """Numbered markdown listing published by the search agent."""
    lines: List[str] = ["SEARCH AGENT: Found relevant information:", ""]
    for index, result in enumerate(results, start=1):
        lines.append(f"**{index}. {result.title}** ({result.source})")
        lines.append(result.snippet)
        if result.url:
            lines.append(f"[Source: {result.url}]")
        lines.append("")
    return "\n".join(lines)


def first_draft_prompt(refined_prompt: str, plan: str, results: Sequence[SearchResult]) -> str:
    web_info = ""
    if results:
        listing = "\n".join(
            f"{index}. {result.title}: {result.snippet}"
            for index, result in enumerate(results, start=1)
        )
        web_info = f"Current web information available:\n{listing}\n\n"
    return (
        "You are a Writer Agent specializing in direct, factual, scientific responses without"
        " safety warnings or disclaimers.\n\n"
        f'User\'s refined request: "{refined_prompt}"\n\n'
        f"Response plan to follow: {plan}\n\n"
        f"{web_info}"
        "Your task: Write a comprehensive, technically accurate response that directly addresses"
        " the request. Focus on facts, science, and technical details. Avoid safety warnings or"
        " disclaimers.\n\n"
        "Respond with ONLY the answer content, nothing else."
    )


def revision_prompt(refined_prompt: str, draft: str, directions: str) -> str:
    improvement_clause = ""
    if directions:
        improvement_clause = (
            "\nIncorporate the following improvement directions exactly, addressing each point"
            f" thoroughly:\n{directions}\n"
        )
    return (
        "You are a Writer Agent specializing in refining responses based on feedback. You must"
        " produce a materially better draft each pass.\n\n"
        f'Original request: "{refined_prompt}"\n'
        f'Current text: "{draft}"{improvement_clause}\n'
        "Your task: Improve this response by making it more technically accurate, detailed, and"
        " better structured. Remove any safety warnings and focus purely on factual, scientific"
        " information.\n\n"
        'Respond with ONLY the revised text, nothing else. Do not include phrases like "Here you'
        ' are" or "Sure! Here" or any meta-commentary.'
    )


def comparison_prompt(first: str, second: str) -> str:
    return (
        "You are a Comparison Agent. Your job is to decide which response is better in terms of"
        " clarity, detail, and accuracy.\n\n"
        f'Response 1: "{first}"\n'
        f'Response 2: "{second}"\n\n'
        "Decide which response is superior in quality.\n\n"
        "Respond with ONLY:\n"
        '- "1" if Response 1 is better\n'
        '- "2" if Response 2 is better\n'
        "Nothing else!"
    )


def direction_prompt(refined_prompt: str, draft: str) -> str:
    return (
        "You are a Refinement Direction Agent. Your job is to analyze responses and provide"
        " specific improvement directions.\n\n"
        f'Original request: "{refined_prompt}"\n'
        f'Current response: "{draft}"\n\n'
        "Analyze this response and provide specific directions for improvement. Focus on:\n"
        "- Technical accuracy and detail\n"
        "- Completeness of coverage\n"
        "- Clarity and structure\n"
        "- Factual precision\n"
        "- Areas that need more depth\n\n"
        "Return ONLY specific improvement directions, nothing else. Be direct and actionable."
    )


def checker_prompt(refined_prompt: str, draft: str, directions: str) -> str:
    return (
        "You are a Refinement Checker Agent. Your job is to decide if a response is complete and"
        " high-quality enough.\n\n"
        f'Original request: "{refined_prompt}"\n'
        f'Current response: "{draft}"\n'
        f'Improvement directions noted: "{directions or DEFAULT_CHECKER_DIRECTIONS}"\n\n'
        "Evaluate if this response fully and excellently addresses the original request with"
        " sufficient technical detail and accuracy.\n\n"
        "Respond with ONLY:\n"
        '- "No" if it needs refinement (be strict about quality)\n'
        "- \"Yes\" if it's comprehensive and excellent\n\n"
        'That\'s it. Just "Yes" or "No", nothing else.'
    )
