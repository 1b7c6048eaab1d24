"""
Narrative generation via OpenRouter chat completions.

Turns a round's event and metrics into a short annual-letter paragraph.
Without an API key, or when the call fails, a deterministic narrative is
built from the same inputs so the game never waits on the network.
"""

import logging
import os
from typing import Dict, Optional

import httpx
from dotenv import load_dotenv

from models import GameEvent, Metrics

load_dotenv()

logger = logging.getLogger(__name__)

OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")
MODEL = os.getenv("OPENROUTER_MODEL", "nvidia/nemotron-nano-9b-v2:free")
BASE_URL = "https://openrouter.ai/api/v1/chat/completions"

SYSTEM_PROMPT = (
    "You write the annual shareholder letter for a small holding company. "
    "Two or three sentences, plain and candid, in the voice of a capital allocator. "
    "Never invent numbers that are not in the prompt."
)


def build_headers(api_key: str) -> dict:
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }


def build_payload(system_prompt: str, user_prompt: str, temperature: float = 0.2) -> dict:
    return {
        "model": MODEL,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        "temperature": temperature,
    }


async def send_request(payload: dict, api_key: str) -> dict:
    async with httpx.AsyncClient(timeout=60) as client:
        r = await client.post(BASE_URL, headers=build_headers(api_key), json=payload)
        r.raise_for_status()
        return r.json()


def extract_text(response_json: dict) -> str:
    return response_json["choices"][0]["message"]["content"]


async def call_llm(system_prompt: str, user_prompt: str, temperature: float = 0.2, api_key: Optional[str] = None) -> str:
    key = api_key or OPENROUTER_API_KEY
    if not key:
        raise ValueError("OPENROUTER_API_KEY not found in environment")
    payload = build_payload(system_prompt, user_prompt, temperature)
    response_json = await send_request(payload, key)
    return extract_text(response_json)


def build_round_prompt(holdco_name: str, round_number: int, event: Optional[GameEvent], metrics: Metrics) -> str:
    lines = [
        f"Holding company: {holdco_name}",
        f"Year: {round_number}",
        f"Portfolio EBITDA: ${metrics.total_ebitda}K on revenue of ${metrics.total_revenue}K",
        f"Cash: ${metrics.cash}K, debt: ${metrics.total_debt}K ({metrics.net_debt_to_ebitda:.1f}x net leverage)",
        f"ROIC: {metrics.portfolio_roic:.1%}, MOIC: {metrics.portfolio_moic:.2f}x",
    ]
    if event is not None:
        lines.append(f"This year's event: {event.title}. {event.description}")
    return "\n".join(lines)


def fallback_narrative(holdco_name: str, round_number: int, event: Optional[GameEvent], metrics: Metrics) -> str:
    """Template letter used whenever the model is unavailable."""
    opening = f"Year {round_number} at {holdco_name}"
    if event is None or event.type == "global_quiet":
        opening += " was quiet, which suited us fine."
    else:
        opening += f" was shaped by {event.title.lower()}."

    if metrics.total_ebitda <= 0:
        body = "The portfolio produced no operating earnings, so every decision this year was about survival."
    else:
        body = (f"Our companies earned ${metrics.total_ebitda}K of EBITDA and we ended the year with "
                f"${metrics.cash}K in cash against ${metrics.total_debt}K of debt.")

    if metrics.distress_level in ("stressed", "breach"):
        closing = "Leverage is too high and reducing it comes before anything else."
    elif metrics.portfolio_roic >= 0.15:
        closing = "Returns on capital remain healthy, and we will keep reinvesting where they hold up."
    else:
        closing = "Returns are below where we want them; we will be patient with new capital."
    return f"{opening} {body} {closing}"


async def generate_round_narrative(
    holdco_name: str,
    round_number: int,
    event: Optional[GameEvent],
    metrics: Metrics,
    api_key: Optional[str] = None,
) -> Dict[str, str]:
    """Return {"text": ..., "source": "llm" | "fallback"}."""
    if not (api_key or OPENROUTER_API_KEY):
        logger.warning("OPENROUTER_API_KEY not set, using fallback narrative")
        return {"text": fallback_narrative(holdco_name, round_number, event, metrics), "source": "fallback"}

    prompt = build_round_prompt(holdco_name, round_number, event, metrics)
    try:
        text = await call_llm(SYSTEM_PROMPT, prompt, api_key=api_key)
    except (httpx.HTTPError, KeyError, IndexError) as e:
        logger.warning(f"Narrative request failed ({e}), using fallback narrative")
        return {"text": fallback_narrative(holdco_name, round_number, event, metrics), "source": "fallback"}
    return {"text": text.strip(), "source": "llm"}
