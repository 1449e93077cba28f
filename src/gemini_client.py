"""
Gemini text completion client used by the field mapper.
API key and model are read from config (src/.env).

The mapper only needs ``prompt -> text``; ``generate_text`` is that completer
and raises ``GeminiError`` instead of returning error strings so callers can
fall back cleanly.
"""

from google import genai
from google.genai import types
import logging
import re
import time
from typing import Any, Callable, Optional, Tuple

import config
from errors import GeminiError

# Prompt string in, completion text out
Completer = Callable[[str], str]

# Logger Setup
logger = logging.getLogger("gemini_client")
if not logger.handlers:
    logger.setLevel(logging.INFO)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s")
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)


def _build_config(model: str, max_output_tokens: Optional[int]) -> types.GenerateContentConfig:
    generation_config = types.GenerateContentConfig()
    generation_config.max_output_tokens = max_output_tokens or config.GEMINI_MAX_OUTPUT_TOKENS

    # Gemini 3 uses thinking_level, Gemini 2.5 uses thinking_budget
    if "gemini-3" in model:
        generation_config.thinking_config = types.ThinkingConfig(thinking_level="MINIMAL")
    else:
        generation_config.thinking_config = types.ThinkingConfig(thinking_budget=0)
    return generation_config


def get_gemini_response(
    prompt: str,
    model: Optional[str] = None,
    max_output_tokens: Optional[int] = None
) -> Tuple[Any, str]:
    """
    Send a text prompt to Gemini.

    Args:
        prompt: The text prompt to send to the model
        model: Optional model name (defaults to config.GEMINI_MODEL)
        max_output_tokens: Optional max output tokens (defaults to config.GEMINI_MAX_OUTPUT_TOKENS)

    Returns:
        Tuple of (raw_response, response_text). On failure raw_response is None
        and the text starts with "An error occurred".
    """
    selected_model = model or config.GEMINI_MODEL

    try:
        api_key = config.GEMINI_API_KEY
        if not api_key or "YOUR_GEMINI_API_KEY" in api_key:
            logger.error("GEMINI_API_KEY is not set. Cannot call Gemini API.")
            return None, "An error occurred: API key not set"

        client = genai.Client(api_key=api_key)
        generation_config = _build_config(selected_model, max_output_tokens)

        logger.info(f"[Gemini] Calling {selected_model} (prompt length: {len(prompt):,} chars)")
        call_start = time.time()
        response_raw = client.models.generate_content(
            model=selected_model,
            contents=[prompt],
            config=generation_config
        )
        call_duration = time.time() - call_start
        logger.info(f"[Gemini] Response received in {call_duration:.1f}s")

        if hasattr(response_raw, 'usage_metadata') and response_raw.usage_metadata is not None:
            usage = response_raw.usage_metadata
            input_tokens = getattr(usage, 'prompt_token_count', 'N/A')
            output_tokens = getattr(usage, 'candidates_token_count', 'N/A')
            logger.info(f"[Gemini] Tokens used - Input: {input_tokens}, Output: {output_tokens}")

        response_text = response_raw.text or ""
        logger.info(f"[Gemini] Response text length: {len(response_text):,} chars")
        return response_raw, response_text

    except Exception as e:
        logger.exception(f"An error occurred with gemini call: {e}")
        return None, f"An error occurred: {e}"


def generate_text(prompt: str) -> str:
    """
    Default completer: one Gemini call, no retries.

    Raises:
        GeminiError: on API failure or an empty completion
    """
    raw_response, text = get_gemini_response(prompt)
    if raw_response is None:
        raise GeminiError(text)
    if not text.strip():
        raise GeminiError("Gemini returned an empty response")
    return text


def repair_truncated_json(json_text: str) -> Optional[str]:
    """
    Attempt to repair truncated JSON by adding missing closing brackets.

    This handles common LLM truncation where the output is cut off mid-object.
    Returns None when the brackets are already balanced.
    """
    if not json_text:
        return None

    open_braces = json_text.count('{')
    close_braces = json_text.count('}')
    open_brackets = json_text.count('[')
    close_brackets = json_text.count(']')

    if open_braces == close_braces and open_brackets == close_brackets:
        return None

    repaired = json_text.rstrip()

    # Drop trailing incomplete entries
    repaired = re.sub(r',\s*$', '', repaired)
    repaired = re.sub(r',?\s*"[^"]*":\s*"[^"]*$', '', repaired)  # "key": "incomplete value
    repaired = re.sub(r',?\s*"[^"]*":\s*$', '', repaired)  # "key":
    repaired = re.sub(r',\s*"[^"]*$', '', repaired)  # , "incomplete key

    missing_brackets = repaired.count('[') - repaired.count(']')
    missing_braces = repaired.count('{') - repaired.count('}')

    if missing_brackets > 0:
        repaired += ']' * missing_brackets
    if missing_braces > 0:
        repaired += '}' * missing_braces

    logger.info(f"JSON repair: added {max(missing_brackets, 0)} ']' and {max(missing_braces, 0)} '}}'")
    return repaired
