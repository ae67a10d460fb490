"""Google OAuth2 for TV and limited-input devices.

Implements the device authorization grant on top of the webhook pattern:

    req_user_code --(codes)--> polling_auth --(tokens)--> authorized
          ^                                                  |
          |                                           (access token expired)
          |                                                  v
          +------(refresh rejected, token erased)------ refresh_token

Every publish parks the manager in ``wait_for_response`` (``last_state``
remembers what was published) until the relay answers or the call times out.
``failed`` is terminal until ``reset()``.

The refresh token is persisted through the token store.  When one is found at
startup the manager begins in ``refresh_token``, so a device that was already
authorized never shows a user code again unless the refresh is rejected.

Response payloads produced by the relay bridge:

- user code: ``device_code~user_code~verification_url~expires_in~interval``
- poll:      ``access_token~expires_in~refresh_token``
- refresh:   ``access_token~expires_in[~refresh_token]``

While the user has not approved yet, Google answers the poll with HTTP 428
(``authorization_pending``), or 403 ``slow_down`` when polled too fast.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from http import HTTPStatus
from typing import TYPE_CHECKING, Any

from loguru import logger

from leavenow.agent.models.enums import OAuth2State
from leavenow.agent.models.oauth2 import DeviceCode, OAuth2Token, StoredToken
from leavenow.agent.parser import FieldReader
from leavenow.agent.timeutil import utcnow
from leavenow.agent.webhooks.base import DEFAULT_TIMEOUT, Clock, WebhookClient

if TYPE_CHECKING:
    from leavenow.agent.relay.base import Relay
    from leavenow.agent.store.base import TokenStore

UserCodeCallback = Callable[[str, str], Awaitable[None]]

# Seconds added to the polling interval for every "slow_down" answer.
SLOW_DOWN_STEP = 5

# Refresh answers meaning the refresh token itself is no good (revoked,
# expired, wrong client).  Anything else leaves the stored token alone.
_TOKEN_REJECTED = frozenset({HTTPStatus.BAD_REQUEST, HTTPStatus.UNAUTHORIZED, HTTPStatus.FORBIDDEN})


async def _log_user_code(user_code: str, verification_url: str) -> None:
    logger.warning("OAuth2: visit {} and enter the code {} to authorize this device", verification_url, user_code)


class OAuth2Manager(WebhookClient):
    """Device-flow state machine with persisted refresh token.

    ``loop()`` is the only driver: call it repeatedly, it performs at most one
    transition or publish per call and never waits on the network.
    """

    name = "oauth2"
    EVENT_REQ_USER_CODE = "oauth_usr_code"
    EVENT_POLL_AUTH = "oauth_poll_auth"
    EVENT_REFRESH_TOKEN = "oauth_ref_token"
    events = (EVENT_REQ_USER_CODE, EVENT_POLL_AUTH, EVENT_REFRESH_TOKEN)
    error_guidance = {
        HTTPStatus.BAD_REQUEST: "Invalid request, or the device code has expired.",
        HTTPStatus.UNAUTHORIZED: "Invalid client id or client secret.",
        HTTPStatus.FORBIDDEN: "The user denied access, or polling was too fast.",
        HTTPStatus.PRECONDITION_REQUIRED: "Authorization pending, the user has not approved yet.",
    }

    def __init__(
        self,
        relay: Relay,
        store: TokenStore,
        client_id: str,
        client_secret: str,
        *,
        on_user_code: UserCodeCallback | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(relay, timeout=timeout, clock=clock)
        self._store = store
        self._client_id = client_id
        self._client_secret = client_secret
        self._on_user_code = on_user_code or _log_user_code

        self.state = OAuth2State.REQ_USER_CODE
        self.last_state = OAuth2State.REQ_USER_CODE
        self._restored = False

        self._token = OAuth2Token()
        self.device: DeviceCode | None = None
        self._device_expires_at = 0.0
        self.polling_rate = 5
        self._next_poll_at = 0.0

    # -- Driver ----------------------------------------------------------------

    async def loop(self) -> None:
        if not self._restored:
            await self.restore()
            return

        now = self._clock()
        match self.state:
            case OAuth2State.REQ_USER_CODE:
                await self._request(self.EVENT_REQ_USER_CODE, {"client_id": self._client_id})
            case OAuth2State.POLLING_AUTH:
                if now >= self._device_expires_at:
                    self.fail(HTTPStatus.BAD_REQUEST, "Error: The device code expired before the user authorized it.")
                    self.change_state_to(OAuth2State.FAILED)
                elif now >= self._next_poll_at:
                    await self._request(
                        self.EVENT_POLL_AUTH,
                        {
                            "client_id": self._client_id,
                            "client_secret": self._client_secret,
                            "device_code": self.device.device_code if self.device else "",
                        },
                    )
            case OAuth2State.REFRESH_TOKEN:
                await self._request(
                    self.EVENT_REFRESH_TOKEN,
                    {
                        "client_id": self._client_id,
                        "client_secret": self._client_secret,
                        "refresh_token": self._token.refresh_token,
                    },
                )
            case OAuth2State.AUTHORIZED:
                if self._token.expired(now):
                    logger.info("OAuth2: access token expired, refreshing")
                    self.change_state_to(OAuth2State.REFRESH_TOKEN)
            case OAuth2State.WAIT_FOR_RESPONSE:
                if await self.check_timeout():
                    self.change_state_to(OAuth2State.FAILED)
            case OAuth2State.FAILED:
                pass

    async def restore(self) -> None:
        """Load the persisted refresh token and pick the starting state."""
        stored = await self._store.read()
        self._restored = True
        if stored is not None and stored.refresh_token.strip():
            self._token = OAuth2Token(refresh_token=stored.refresh_token)
            logger.info("OAuth2: stored refresh token found, skipping device authorization")
            self.change_state_to(OAuth2State.REFRESH_TOKEN)
        else:
            logger.info("OAuth2: no stored refresh token, device authorization required")
            self.change_state_to(OAuth2State.REQ_USER_CODE)

    async def _request(self, event: str, payload: dict[str, Any]) -> None:
        self.last_state = self.state
        self.change_state_to(OAuth2State.WAIT_FOR_RESPONSE)
        await self._publish(event, payload)

    def change_state_to(self, new_state: OAuth2State) -> None:
        if new_state != self.state:
            logger.debug("OAuth2: {} -> {}", self.state, new_state)
        self.state = new_state

    # -- Responses -------------------------------------------------------------

    async def handle_response(self, event: str, data: str) -> None:
        reader = FieldReader(data)
        match event:
            case self.EVENT_REQ_USER_CODE:
                await self._on_user_code_issued(reader)
            case self.EVENT_POLL_AUTH:
                await self._on_tokens_issued(reader)
            case self.EVENT_REFRESH_TOKEN:
                await self._on_token_refreshed(reader)

    async def _on_user_code_issued(self, reader: FieldReader) -> None:
        device_code = reader.next()
        user_code = reader.next()
        verification_url = reader.next()
        expires_in = reader.next_int()
        interval = reader.next_int()
        if not device_code or not user_code:
            self.fail(HTTPStatus.BAD_REQUEST, "Error: Malformed user code response.")
            self.change_state_to(OAuth2State.FAILED)
            return

        self.device = DeviceCode(
            device_code=device_code,
            user_code=user_code,
            verification_url=verification_url,
            expires_in=expires_in if expires_in > 0 else 1800,
            interval=interval if interval > 0 else 5,
        )
        now = self._clock()
        self.polling_rate = self.device.interval
        self._device_expires_at = now + self.device.expires_in
        self._next_poll_at = now + self.polling_rate
        await self._on_user_code(self.device.user_code, self.device.verification_url)
        self.change_state_to(OAuth2State.POLLING_AUTH)

    async def _on_tokens_issued(self, reader: FieldReader) -> None:
        access_token = reader.next()
        lifetime = reader.next_int()
        refresh_token = reader.next()
        if not access_token or not refresh_token or lifetime <= 0:
            self.fail(HTTPStatus.BAD_REQUEST, "Error: Malformed token response.")
            self.change_state_to(OAuth2State.FAILED)
            return

        self._token = OAuth2Token(
            access_token=access_token,
            refresh_token=refresh_token,
            issued_at=self._clock(),
            lifetime=lifetime,
        )
        self.device = None
        await self._store.write(StoredToken(refresh_token=refresh_token, stored_at=utcnow()))
        logger.info("OAuth2: device authorized (access token valid for {}s)", self._token.lifetime)
        self.change_state_to(OAuth2State.AUTHORIZED)

    async def _on_token_refreshed(self, reader: FieldReader) -> None:
        access_token = reader.next()
        lifetime = reader.next_int()
        rotated = reader.next()
        if not access_token or lifetime <= 0:
            self.fail(HTTPStatus.BAD_GATEWAY, "Error: Malformed refresh response.")
            self.change_state_to(OAuth2State.FAILED)
            return

        refresh_token = rotated or self._token.refresh_token
        if rotated:
            await self._store.write(StoredToken(refresh_token=rotated, stored_at=utcnow()))
        self._token = OAuth2Token(
            access_token=access_token,
            refresh_token=refresh_token,
            issued_at=self._clock(),
            lifetime=lifetime,
        )
        logger.info("OAuth2: access token refreshed (valid for {}s)", self._token.lifetime)
        self.change_state_to(OAuth2State.AUTHORIZED)

    async def handle_error(self, event: str, code: int, message: str) -> None:
        match event:
            case self.EVENT_POLL_AUTH:
                self._on_poll_error(code, message)
            case self.EVENT_REFRESH_TOKEN if code in _TOKEN_REJECTED:
                await self._drop_refresh_token(self.error)
            case _:
                self.change_state_to(OAuth2State.FAILED)

    def _on_poll_error(self, code: int, message: str) -> None:
        if code == HTTPStatus.PRECONDITION_REQUIRED:
            logger.debug("OAuth2: authorization pending, next poll in {}s", self.polling_rate)
        elif code == HTTPStatus.FORBIDDEN and "slow_down" in message.lower():
            self.polling_rate += SLOW_DOWN_STEP
            logger.info("OAuth2: asked to slow down, polling every {}s", self.polling_rate)
        else:
            self.change_state_to(OAuth2State.FAILED)
            return
        # Still waiting on the user; not a failure.
        self.status_code = None
        self.error = ""
        self._next_poll_at = self._clock() + self.polling_rate
        self.change_state_to(OAuth2State.POLLING_AUTH)

    async def _drop_refresh_token(self, reason: str) -> None:
        logger.warning("OAuth2: refresh rejected, erasing stored token and re-authorizing ({})", reason)
        await self._store.erase()
        self._token = OAuth2Token()
        self.status_code = None
        self.error = ""
        self.change_state_to(OAuth2State.REQ_USER_CODE)

    # -- Operator actions ------------------------------------------------------

    async def reset(self) -> None:
        """Leave ``failed``: forget pending calls and start over from the store."""
        self.cancel()
        self.device = None
        self._token = OAuth2Token()
        self._restored = False
        self.change_state_to(OAuth2State.REQ_USER_CODE)

    async def reauthorize(self) -> None:
        """Erase the persisted token and force a new device authorization."""
        await self._store.erase()
        self.cancel()
        self.device = None
        self._token = OAuth2Token()
        self._restored = True
        logger.info("OAuth2: stored token erased, device authorization required")
        self.change_state_to(OAuth2State.REQ_USER_CODE)

    # -- Queries ---------------------------------------------------------------

    def authorized(self) -> bool:
        return self.state == OAuth2State.AUTHORIZED and not self._token.expired(self._clock())

    def failed(self) -> bool:
        return self.state == OAuth2State.FAILED

    def awaiting_user(self) -> bool:
        """True while a user code is out and the user has not approved yet."""
        if self.state == OAuth2State.WAIT_FOR_RESPONSE:
            return self.last_state == OAuth2State.POLLING_AUTH
        return self.state == OAuth2State.POLLING_AUTH

    def current_access_token(self) -> str:
        return self._token.access_token

    @property
    def has_refresh_token(self) -> bool:
        return bool(self._token.refresh_token)
