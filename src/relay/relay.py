"""Process-wide orchestrator: at most one current call and one current observer."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from config.settings import Settings
from relay.call_link import CallLink
from relay.functions import FunctionDispatcher
from relay.model_link import Connector, ModelLink, realtime_connector
from relay.observer import ObserverFanout, ObserverLink
from relay.schemas import SessionConfig
from relay.session import Session, SessionState
from relay.slots import ConnectionSlot

LOGGER = logging.getLogger(__name__)


class SessionRelay:
    """Wires call links to model links for the lifetime of each call.

    A new call supersedes the current one: the previous Session is fully closed
    before the new call socket is accepted. The negotiated configuration
    outlives Sessions, so observer updates received while idle apply to the
    next handshake.
    """

    def __init__(
        self,
        settings: Settings,
        dispatcher: FunctionDispatcher,
        *,
        connector: Connector | None = None,
    ) -> None:
        self._settings = settings
        self._dispatcher = dispatcher
        self._connector = connector or realtime_connector(settings)
        self._calls: ConnectionSlot[Session] = ConnectionSlot("call")
        self.observer = ObserverFanout(queue_size=settings.observer_queue_size)
        self._config = SessionConfig(voice=settings.default_voice, tools=dispatcher.schemas())

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def current_session(self) -> Session | None:
        return self._calls.current

    @property
    def state(self) -> SessionState:
        session = self._calls.current
        return session.state if session is not None else SessionState.IDLE

    def new_session(self, call: CallLink) -> Session:
        model = ModelLink(
            self._connector,
            self._dispatcher,
            audio_format=call.model_audio_format,
            queue_size=self._settings.model_send_queue_size,
            function_timeout=self._settings.function_timeout_seconds,
        )
        return Session(
            call,
            model,
            self.observer,
            config=lambda: self._config,
            on_config_update=self.apply_session_update,
            handshake_timeout=self._settings.handshake_timeout_seconds,
        )

    async def handle_call(self, call: CallLink) -> None:
        """Serve one call connection until it ends or is superseded."""

        session = self.new_session(call)
        await self._calls.replace(session)
        try:
            await call.accept()
            LOGGER.info("Call connected on %s (session %s)", call.origin, session.id)
            await session.run()
        finally:
            await session.close("call handler finished")
            await self._calls.release(session)

    async def handle_observer(self, link: ObserverLink) -> None:
        await self.observer.serve(link, self.apply_session_update)

    async def apply_session_update(self, update: dict[str, Any]) -> None:
        """Merge a configuration update and push it to the active model link."""

        try:
            self._config = self._config.merged(update)
        except ValidationError as exc:
            LOGGER.warning("Ignoring invalid session.update: %s", exc)
            return

        session = self._calls.current
        if session is None or session.state not in (SessionState.CONNECTING, SessionState.ACTIVE):
            LOGGER.info("Session config cached for next handshake")
            return
        # While the handshake is in flight the model link reads the latest
        # config itself; update_session only sends once the link is ready.
        if not await session.model.update_session(self._config):
            LOGGER.info("Session config cached for the pending handshake")

    async def shutdown(self) -> None:
        session = self._calls.current
        if session is not None:
            await session.close("shutdown")
