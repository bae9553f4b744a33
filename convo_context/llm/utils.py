"""
LLM Provider Utilities
======================

Helpers for mapping model identifiers to providers.
"""


def get_provider_from_model(model: str) -> str:
    """
    Infer the provider from the model name.

    Accepts bare ids ("gpt-4o") as well as routed ids ("openai/gpt-4o",
    "anthropic/claude-sonnet-4").

    Args:
        model: Model identifier

    Returns:
        Provider name: "openai", "anthropic", "google", or "unknown"
    """
    model_lower = (model or "").lower()
    if "gpt" in model_lower or "openai" in model_lower or model_lower.startswith(("o1", "o3", "o4")):
        return "openai"
    elif (
        "claude" in model_lower
        or "anthropic" in model_lower
        or "sonnet" in model_lower
        or "opus" in model_lower
        or "haiku" in model_lower
    ):
        return "anthropic"
    elif "gemini" in model_lower or "google" in model_lower:
        return "google"
    else:
        return "unknown"
