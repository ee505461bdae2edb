"""Anthropic Messages API client that reads the expanded position's breakdown."""
from __future__ import annotations

import json
import logging
import ssl
from datetime import datetime, timezone
from typing import Any

import aiohttp
import certifi

from ..config import VisionConfig
from ..models import ExtractedBreakdown
from ..parsers.capture import parse_breakdown

logger = logging.getLogger(__name__)

# The model reports which pair is expanded; callers never name one.
DISCOVERY_PROMPT = """You are analyzing a screenshot of a DeFi concentrated liquidity portfolio page.

Look for an EXPANDED drawer/panel showing the detailed balance breakdown of one position.

If you see an expanded position drawer, identify:
1. Which token pair it shows (e.g., "cbBTC/USDC", "SOL/USDC", etc.)
2. The individual token amounts
3. The percentages for each token

Return ONLY this JSON (no markdown, no explanation):
{
  "pair": "<token0>/<token1>",
  "token0": "<token0 name>",
  "token1": "<token1 name>",
  "token0Amount": <number>,
  "token1Amount": <number>,
  "token0Percentage": <number>,
  "token1Percentage": <number>
}

If NO position drawer is expanded, return:
{"error": "No expanded position found"}"""


def strip_data_url(screenshot: str) -> str:
    """Drop a ``data:image/png;base64,`` prefix if present."""
    if screenshot.startswith("data:") and "," in screenshot:
        return screenshot.split(",", 1)[1]
    return screenshot


def parse_model_text(text: str) -> dict[str, Any]:
    """Parse the model's JSON answer, tolerating markdown code fences."""
    cleaned = text.strip().replace("```json", "").replace("```", "").strip()
    return json.loads(cleaned)


class AnthropicVisionExtractor:
    """Discover the expanded position in a screenshot via Claude vision."""

    def __init__(self, config: VisionConfig) -> None:
        self.api_url = config.api_url
        self.api_key = config.api_key
        self.model = config.model
        self.max_tokens = config.max_tokens
        self.timeout = config.timeout
        self.anthropic_version = config.anthropic_version

    def _build_payload(self, image_b64: str) -> dict[str, Any]:
        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": "image/png",
                                "data": image_b64,
                            },
                        },
                        {"type": "text", "text": DISCOVERY_PROMPT},
                    ],
                }
            ],
        }

    async def extract(
        self, screenshot: str, captured_at: datetime | None = None
    ) -> ExtractedBreakdown | None:
        """Return the breakdown of the expanded position, or None.

        None covers "no expanded position", HTTP and network failures, and
        unparsable answers; all are logged.
        """
        if not self.api_key:
            logger.warning("Vision API key not configured")
            return None

        headers = {
            "content-type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": self.anthropic_version,
        }
        payload = self._build_payload(strip_data_url(screenshot))

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.post(
                    self.api_url,
                    json=payload,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status != 200:
                        logger.error(
                            "Vision API error: HTTP %s %s",
                            response.status,
                            await response.text(),
                        )
                        return None
                    data = await response.json()
        except Exception as e:
            logger.error("Vision API request failed: %s", e)
            return None

        text = next(
            (c.get("text", "") for c in data.get("content", []) if c.get("type") == "text"),
            "",
        )
        try:
            answer = parse_model_text(text)
        except ValueError as e:
            logger.error("Unparsable vision answer %r: %s", text, e)
            return None
        if not isinstance(answer, dict):
            logger.error("Vision answer is not a JSON object: %r", text)
            return None

        if answer.get("error"):
            logger.info("Vision: %s", answer["error"])
            return None

        breakdown = parse_breakdown(
            answer, extracted_at=captured_at or datetime.now(timezone.utc)
        )
        if breakdown is not None:
            logger.info(
                "Vision found expanded %s: %s / %s",
                breakdown.pair,
                breakdown.token0_amount,
                breakdown.token1_amount,
            )
        return breakdown
