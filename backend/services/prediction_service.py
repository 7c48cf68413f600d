"""
Prediction Service — best-effort integration with a channel prediction API.

The round engine announces lifecycle events through PredictionHooks. Each hook
schedules its work as a background asyncio task and returns immediately, so a
slow or unavailable prediction backend can never block, fail or roll back a
stage transition. Failures are logged and dropped.

The open prediction id is kept in the run-state table so a resolve or cancel
issued after a restart still finds it.

Environment:
    PREDICTIONS_ENABLED     "true" to talk to Twitch (default: disabled)
    TWITCH_CLIENT_ID        Application client id
    TWITCH_ACCESS_TOKEN     Broadcaster user token with channel:manage:predictions
    TWITCH_BROADCASTER_ID   Channel the predictions are created on
    TWITCH_API_BASE         Override for the Helix base URL
"""

import asyncio
import logging
import os
from typing import Coroutine, Optional, Set

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services import run_state_service
from services.round_engine import verdict_for_average
from state import Verdict

logger = logging.getLogger(__name__)

PREDICTION_TITLE = "Will this get a SMASH or SLASH?"
HIGH_OUTCOME = "Smash"
LOW_OUTCOME = "Slash"

# Twitch accepts prediction windows between 30 seconds and 30 minutes
MIN_WINDOW_SECONDS = 30
MAX_WINDOW_SECONDS = 1800

DEFAULT_API_BASE = "https://api.twitch.tv/helix"


class PredictionService:
    """Interface of the external prediction collaborator."""

    async def open_prediction(self, item_id: str, window_seconds: int) -> Optional[str]:
        """Open a prediction for a round. Returns the prediction id, if any."""
        raise NotImplementedError

    async def resolve_prediction(self, prediction_id: str, verdict: Verdict) -> bool:
        raise NotImplementedError

    async def cancel_prediction(self, prediction_id: str) -> bool:
        raise NotImplementedError


class DisabledPredictionService(PredictionService):
    """Used when predictions are switched off or not configured."""

    async def open_prediction(self, item_id: str, window_seconds: int) -> Optional[str]:
        return None

    async def resolve_prediction(self, prediction_id: str, verdict: Verdict) -> bool:
        return False

    async def cancel_prediction(self, prediction_id: str) -> bool:
        return False


class TwitchPredictionService(PredictionService):
    """
    Twitch Helix predictions client.

    Token acquisition and refresh are handled outside this service; it is
    handed a ready-to-use broadcaster access token.
    """

    def __init__(
        self,
        client_id: str,
        access_token: str,
        broadcaster_id: str,
        api_base: str = DEFAULT_API_BASE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ) -> None:
        self._client_id = client_id
        self._access_token = access_token
        self._broadcaster_id = broadcaster_id
        self._api_base = api_base
        self._transport = transport
        self._timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._api_base,
            headers={
                "Client-ID": self._client_id,
                "Authorization": f"Bearer {self._access_token}",
            },
            transport=self._transport,
            timeout=self._timeout,
        )

    async def open_prediction(self, item_id: str, window_seconds: int) -> Optional[str]:
        window = max(MIN_WINDOW_SECONDS, min(MAX_WINDOW_SECONDS, window_seconds))
        async with self._client() as client:
            response = await client.post(
                "/predictions",
                json={
                    "broadcaster_id": self._broadcaster_id,
                    "title": PREDICTION_TITLE,
                    "outcomes": [{"title": HIGH_OUTCOME}, {"title": LOW_OUTCOME}],
                    "prediction_window": window,
                },
            )
            response.raise_for_status()

        data = response.json().get("data") or []
        if not data:
            logger.error("Prediction create for item %s returned no data", item_id)
            return None

        prediction_id = data[0]["id"]
        logger.info("Opened prediction %s for item %s", prediction_id, item_id)
        return prediction_id

    async def resolve_prediction(self, prediction_id: str, verdict: Verdict) -> bool:
        winner_title = HIGH_OUTCOME if verdict == Verdict.HIGH else LOW_OUTCOME

        async with self._client() as client:
            response = await client.get(
                "/predictions",
                params={"broadcaster_id": self._broadcaster_id, "id": prediction_id},
            )
            response.raise_for_status()
            data = response.json().get("data") or []
            if not data:
                logger.error("Prediction %s not found", prediction_id)
                return False

            prediction = data[0]
            if prediction.get("status") in ("RESOLVED", "CANCELED"):
                logger.info(
                    "Prediction %s already %s, skipping resolution",
                    prediction_id,
                    prediction["status"],
                )
                return True

            outcome_id = next(
                (
                    o["id"]
                    for o in prediction.get("outcomes", [])
                    if o.get("title", "").lower() == winner_title.lower()
                ),
                None,
            )
            if outcome_id is None:
                logger.error(
                    "Prediction %s has no outcome titled %s", prediction_id, winner_title
                )
                return False

            response = await client.patch(
                "/predictions",
                json={
                    "broadcaster_id": self._broadcaster_id,
                    "id": prediction_id,
                    "status": "RESOLVED",
                    "winning_outcome_id": outcome_id,
                },
            )
            response.raise_for_status()

        logger.info("Resolved prediction %s with winner %s", prediction_id, winner_title)
        return True

    async def cancel_prediction(self, prediction_id: str) -> bool:
        async with self._client() as client:
            response = await client.patch(
                "/predictions",
                json={
                    "broadcaster_id": self._broadcaster_id,
                    "id": prediction_id,
                    "status": "CANCELED",
                },
            )
            response.raise_for_status()

        logger.info("Cancelled prediction %s", prediction_id)
        return True


def build_prediction_service() -> PredictionService:
    """Factory that returns the Twitch client if predictions are configured."""
    if os.environ.get("PREDICTIONS_ENABLED", "false").lower() != "true":
        return DisabledPredictionService()

    client_id = os.environ.get("TWITCH_CLIENT_ID")
    access_token = os.environ.get("TWITCH_ACCESS_TOKEN")
    broadcaster_id = os.environ.get("TWITCH_BROADCASTER_ID")
    if not (client_id and access_token and broadcaster_id):
        logger.warning("Predictions enabled but Twitch credentials are not configured")
        return DisabledPredictionService()

    return TwitchPredictionService(
        client_id=client_id,
        access_token=access_token,
        broadcaster_id=broadcaster_id,
        api_base=os.environ.get("TWITCH_API_BASE", DEFAULT_API_BASE),
    )


# ---------------------------------------------------------------------------
# Lifecycle hooks
# ---------------------------------------------------------------------------

class PredictionHooks:
    """
    Fire-and-forget bridge between the round engine and a PredictionService.

    Hook methods are synchronous: they schedule a task and return. Tasks run
    one at a time in scheduling order, so a lock that follows an advance
    always sees the prediction the advance opened.
    """

    def __init__(
        self,
        service: PredictionService,
        session_factory: async_sessionmaker,
    ) -> None:
        self.service = service
        self._session_factory = session_factory
        self._tasks: Set[asyncio.Task] = set()
        self._lock = asyncio.Lock()

    def round_opened(self, item_id: str, window_seconds: int) -> None:
        self._dispatch("open", self._open(item_id, window_seconds))

    def round_locked(self, item_id: str, average: Optional[float]) -> None:
        self._dispatch("resolve", self._resolve(item_id, average))

    def round_reopened(self, item_id: str, window_seconds: int) -> None:
        # _open cancels the stored prediction before creating a new one
        self._dispatch("reopen", self._open(item_id, window_seconds))

    async def drain(self) -> None:
        """Wait for every scheduled hook to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _dispatch(self, action: str, coro: Coroutine) -> None:
        task = asyncio.create_task(self._guard(action, coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _guard(self, action: str, coro: Coroutine) -> None:
        async with self._lock:
            try:
                await coro
            except Exception:
                logger.exception("Prediction %s failed; round state is unaffected", action)

    async def _stored_prediction_id(self) -> Optional[str]:
        async with self._session_factory() as session:
            return await run_state_service.get_value(session, run_state_service.PREDICTION_KEY)

    async def _store_prediction_id(self, prediction_id: Optional[str]) -> None:
        async with self._session_factory() as session:
            await self._write_prediction_id(session, prediction_id)
            await session.commit()

    @staticmethod
    async def _write_prediction_id(session: AsyncSession, prediction_id: Optional[str]) -> None:
        if prediction_id:
            await run_state_service.set_value(
                session, run_state_service.PREDICTION_KEY, prediction_id
            )
        else:
            await run_state_service.clear_value(session, run_state_service.PREDICTION_KEY)

    async def _cancel_stored(self) -> None:
        prediction_id = await self._stored_prediction_id()
        if not prediction_id:
            return
        try:
            await self.service.cancel_prediction(prediction_id)
        finally:
            await self._store_prediction_id(None)

    async def _open(self, item_id: str, window_seconds: int) -> None:
        await self._cancel_stored()
        prediction_id = await self.service.open_prediction(item_id, window_seconds)
        if prediction_id:
            await self._store_prediction_id(prediction_id)

    async def _resolve(self, item_id: str, average: Optional[float]) -> None:
        verdict = verdict_for_average(average)
        if verdict is None:
            logger.info("No judge votes for item %s; prediction left open", item_id)
            return

        prediction_id = await self._stored_prediction_id()
        if not prediction_id:
            return
        try:
            await self.service.resolve_prediction(prediction_id, verdict)
        finally:
            await self._store_prediction_id(None)


_prediction_hooks: Optional[PredictionHooks] = None


def get_prediction_hooks() -> PredictionHooks:
    """FastAPI dependency returning the process-wide PredictionHooks."""
    global _prediction_hooks
    if _prediction_hooks is None:
        from database import async_session

        _prediction_hooks = PredictionHooks(build_prediction_service(), async_session)
    return _prediction_hooks
