"""AI module: optional Groq rephrasing of product answers.

The checkout never depends on it; when Groq is unavailable the canned copy
in `fallback` is sent as is.
"""

from .groq_client import GroqTextGenerator
from .prompts import build_sales_prompt, build_user_message

__all__ = ["GroqTextGenerator", "build_sales_prompt", "build_user_message"]
