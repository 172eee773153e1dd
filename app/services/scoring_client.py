import logging
from typing import Optional

import httpx
from pydantic import BaseModel

from app.core.config import settings
from app.core.errors import ScoringError

logger = logging.getLogger(__name__)

MIN_SCORE = 1
MAX_SCORE = 10


class ScoreResult(BaseModel):
    rating: int
    feedback: str


class ScoringClient:
    """HTTP client for the external AI scoring function"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = base_url or settings.scoring_api_url
        self.api_key = api_key if api_key is not None else settings.scoring_api_key
        self.timeout = timeout or settings.scoring_timeout_seconds
        self.transport = transport
        self.logger = logging.getLogger(__name__)

    async def score(self, user_id: str, content: str) -> ScoreResult:
        """
        Score a draft. Raises ScoringError for transport failures, error
        responses and scores outside 1-10.
        """
        self.logger.info(f"score: Entry - user: {user_id}, length: {len(content)}")

        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            async with httpx.AsyncClient(follow_redirects=False, transport=self.transport) as client:
                response = await client.post(
                    self.url,
                    json={"userId": user_id, "draft": content},
                    headers=headers,
                    timeout=self.timeout,
                )
                response.raise_for_status()
                result = response.json()
        except httpx.TimeoutException as e:
            self.logger.error(f"score: Timeout - {e}")
            raise ScoringError("Scoring service timed out") from e
        except httpx.HTTPStatusError as e:
            self.logger.error(f"score: HTTP {e.response.status_code} - {e}")
            raise ScoringError(f"Scoring service returned {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            self.logger.error(f"score: Failure - {e}")
            raise ScoringError("Failed to get rating") from e

        # Accepts {rating, feedback} or the {success, data: {rating, suggestions}} envelope
        if isinstance(result, dict) and "data" in result:
            if result.get("success") is False:
                raise ScoringError(result.get("message") or result.get("error") or "Failed to get rating")
            result = result["data"] or {}

        rating = result.get("rating") if isinstance(result, dict) else None
        valid = isinstance(rating, (int, float)) and not isinstance(rating, bool)
        if not valid or not MIN_SCORE <= rating <= MAX_SCORE:
            self.logger.error(f"score: Invalid rating - {rating!r}")
            raise ScoringError(f"Scoring service returned an invalid rating: {rating!r}")

        feedback = result.get("feedback")
        if feedback is None:
            feedback = "\n".join(result.get("suggestions") or [])

        self.logger.info(f"score: Success - user: {user_id}, rating: {rating}")
        return ScoreResult(rating=round(rating), feedback=feedback)
